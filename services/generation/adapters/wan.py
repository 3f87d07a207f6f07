"""
Wan 2.6 adapter (Alibaba DashScope async video synthesis).

Supports text-to-video and image-to-video with optional audio. Tasks are
created with X-DashScope-Async and polled at /tasks/{task_id}.
"""

import logging
from typing import Any

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

WAN_T2V_MODEL = "wan2.6-t2v"
WAN_I2V_MODEL = "wan2.6-i2v-flash"


class WanAdapter(ProviderAdapter):
    """DashScope task API: PENDING/RUNNING -> SUCCEEDED/FAILED/CANCELED."""

    provider = "dashscope"
    duration_rule = DurationRule(min_seconds=2, max_seconds=15, default_seconds=5)
    resolutions = ("480p", "720p", "1080p")
    default_resolution = "720p"
    supports_audio = True

    def build_payload(self, prepared: PreparedRequest) -> dict[str, Any]:
        """Request body for T2V or I2V."""
        input_: dict[str, Any] = {"prompt": prepared.prompt}
        if prepared.image_data_uri:
            input_["img_url"] = prepared.image_data_uri
        if prepared.negative_prompt:
            input_["negative_prompt"] = prepared.negative_prompt

        parameters: dict[str, Any] = {
            "resolution": prepared.resolution.upper(),
            "duration": prepared.duration_seconds,
            "prompt_extend": True,
            "audio": prepared.generate_audio,
        }
        if prepared.seed is not None:
            parameters["seed"] = prepared.seed

        return {
            "model": WAN_I2V_MODEL if prepared.image_data_uri else WAN_T2V_MODEL,
            "input": input_,
            "parameters": parameters,
        }

    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        self._require_api_key()
        payload = self.build_payload(prepared)

        response = await self._post_submission(
            f"{self.config.base_url}/services/aigc/video-generation/video-synthesis",
            payload,
            headers={"X-DashScope-Async": "enable"},
        )
        data = self._submission_json(response)

        if data.get("code"):
            raise SubmissionError(
                f"DashScope API error: {data.get('message') or data.get('code')}",
                error_code=str(data.get("code")),
                provider=self.provider,
                status_code=400,
            )

        task_id = (data.get("output") or {}).get("task_id")
        if not task_id:
            raise self._missing_task_id()

        logger.info(f"DashScope task created: {task_id} ({prepared.mode})")
        return TaskHandle(task_id=task_id, provider=self.provider, model=payload["model"])

    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        data = await self._get_status(f"{self.config.base_url}/tasks/{handle.task_id}")

        output = data.get("output") or {}
        status = (output.get("task_status") or "").upper()
        logger.debug(f"DashScope task {handle.task_id} status: {status}")

        if status == "SUCCEEDED":
            usage = data.get("usage") or {}
            video_url = output.get("video_url")
            return Succeeded(
                locator=ArtifactLocator(url=video_url) if video_url else None,
                usage=ProviderUsage(
                    actual_duration_seconds=usage.get("video_duration") or None,
                    resolution=usage.get("SR"),
                ),
            )

        if status == "FAILED":
            return Failed(
                reason=output.get("message") or data.get("message") or "Video generation failed"
            )

        if status == "CANCELED":
            return Failed(reason="Video generation was canceled")

        # PENDING, RUNNING, UNKNOWN
        return Pending()
