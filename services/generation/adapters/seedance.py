"""
Seedance adapter (BytePlus ModelArk content generation tasks).

Generation parameters travel as flags appended to the text prompt
("--resolution 720p --duration 5 --ratio 16:9"). Seedance renders silent
video, so usage never carries audio seconds.
"""

import logging
from typing import Any, Optional

import httpx

from core.config import DownloadConfig, ProviderConfig
from core.errors import SubmissionError

from ..models import (
    ArtifactLocator,
    Failed,
    Pending,
    PollOutcome,
    PreparedRequest,
    ProviderUsage,
    Succeeded,
    TaskHandle,
)
from ..normalizer import DurationRule
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

SEEDANCE_LITE_T2V = "seedance-1-0-lite-t2v-250428"
SEEDANCE_LITE_I2V = "seedance-1-0-lite-i2v-250428"
SEEDANCE_PRO = "seedance-1-0-pro-250528"


class SeedanceAdapter(ProviderAdapter):
    """ModelArk task API: queued/running -> succeeded/failed/cancelled."""

    provider = "byteplus"
    duration_rule = DurationRule(min_seconds=3, max_seconds=12, default_seconds=5)
    resolutions = ("480p", "720p", "1080p")
    default_resolution = "720p"
    supports_audio = False

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        model_id: str,
        download: Optional[DownloadConfig] = None,
        t2v_model: str = SEEDANCE_LITE_T2V,
        i2v_model: str = SEEDANCE_LITE_I2V,
    ):
        super().__init__(config, http_client, model_id, download)
        self.t2v_model = t2v_model
        self.i2v_model = i2v_model

    def build_payload(self, prepared: PreparedRequest) -> dict[str, Any]:
        ratio = "adaptive" if prepared.image_data_uri else prepared.aspect_ratio
        flags = [
            f"--resolution {prepared.resolution}",
            f"--duration {prepared.duration_seconds}",
            f"--ratio {ratio}",
            "--watermark false",
        ]
        if prepared.seed is not None:
            flags.append(f"--seed {prepared.seed}")

        content: list[dict[str, Any]] = [
            {"type": "text", "text": f"{prepared.prompt} {' '.join(flags)}"},
        ]
        if prepared.image_data_uri:
            content.append({
                "type": "image_url",
                "image_url": {"url": prepared.image_data_uri},
            })

        return {
            "model": self.i2v_model if prepared.image_data_uri else self.t2v_model,
            "content": content,
        }

    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        self._require_api_key()
        payload = self.build_payload(prepared)

        response = await self._post_submission(
            f"{self.config.base_url}/contents/generations/tasks",
            payload,
        )
        data = self._submission_json(response)

        error = data.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise SubmissionError(
                f"Seedance API error: {error.get('message') or error.get('code')}",
                error_code=str(error.get("code") or "SEEDANCE_ERROR"),
                provider=self.provider,
                status_code=400,
            )

        task_id = data.get("id")
        if not task_id:
            raise self._missing_task_id()

        logger.info(f"Seedance task created: {task_id} ({prepared.mode})")
        return TaskHandle(task_id=task_id, provider=self.provider, model=payload["model"])

    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        data = await self._get_status(
            f"{self.config.base_url}/contents/generations/tasks/{handle.task_id}"
        )
        status = (data.get("status") or "").lower()

        if status == "succeeded":
            video_url = (data.get("content") or {}).get("video_url")
            return Succeeded(
                locator=ArtifactLocator(url=video_url) if video_url else None,
                usage=ProviderUsage(
                    actual_duration_seconds=data.get("duration"),
                    resolution=data.get("resolution"),
                ),
            )

        if status == "failed":
            error = data.get("error") or {}
            reason = error.get("message") if isinstance(error, dict) else str(error)
            return Failed(reason=reason or "Video generation failed")

        if status == "cancelled":
            return Failed(reason="Video generation was canceled")

        return Pending()
