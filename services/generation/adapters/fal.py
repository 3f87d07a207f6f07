"""
fal queue adapter.

Submissions go to queue.fal.run/{model}; the response carries status and
response URLs. The status endpoint only reports IN_QUEUE/IN_PROGRESS/
COMPLETED, so a completed job's locator is the response document, which
fetch_artifact resolves to the media URL.

NOTE: queue.fal.run expects the model payload as top-level JSON
(not wrapped in {"input": {...}}).
"""

import logging
import uuid
from typing import Any, Optional

import httpx

from core.config import DownloadConfig, ProviderConfig
from core.errors import DownloadError, MissingArtifactError

from ..models import (
    ArtifactLocator,
    Failed,
    Pending,
    PollOutcome,
    PreparedRequest,
    Succeeded,
    TaskHandle,
)
from ..normalizer import DurationRule
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


def extract_media_url(document: dict[str, Any]) -> Optional[str]:
    """Media URL from a fal result document, if any."""
    video = document.get("video")
    if isinstance(video, dict) and video.get("url"):
        return video["url"]
    if document.get("video_url"):
        return document["video_url"]
    images = document.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get("url")
    return None


class FalAdapter(ProviderAdapter):
    """fal queue API: IN_QUEUE/IN_PROGRESS -> COMPLETED."""

    provider = "fal"
    duration_rule = DurationRule(min_seconds=5, max_seconds=10, default_seconds=5, allowed=(5, 10))
    supports_audio = False

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        model_id: str,
        download: Optional[DownloadConfig] = None,
        fal_model: str = "fal-ai/kling-video/v2.5-turbo/pro/text-to-video",
        i2v_fal_model: Optional[str] = "fal-ai/kling-video/v2.5-turbo/pro/image-to-video",
    ):
        super().__init__(config, http_client, model_id, download)
        self.fal_model = fal_model
        self.i2v_fal_model = i2v_fal_model

    def _auth_headers(self) -> dict[str, str]:
        # fal auth uses Authorization: Key <FAL_KEY>
        return {"Authorization": f"Key {self.config.api_key}"}

    def build_payload(self, prepared: PreparedRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": prepared.prompt,
            "duration": str(prepared.duration_seconds),
            "aspect_ratio": prepared.aspect_ratio,
        }
        if prepared.negative_prompt:
            payload["negative_prompt"] = prepared.negative_prompt
        if prepared.image_data_uri:
            payload["image_url"] = prepared.image_data_uri
        return payload

    def _fal_model_for(self, prepared: PreparedRequest) -> str:
        if prepared.image_data_uri and self.i2v_fal_model:
            return self.i2v_fal_model
        return self.fal_model

    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        self._require_api_key()
        fal_model = self._fal_model_for(prepared)

        response = await self._post_submission(
            f"{self.config.base_url.rstrip('/')}/{fal_model}",
            self.build_payload(prepared),
        )
        data = self._submission_json(response)

        # fal can answer with the finished result directly
        media_url = extract_media_url(data)
        if media_url:
            logger.info(f"fal returned a direct result for {fal_model}")
            return TaskHandle(
                task_id=data.get("request_id") or str(uuid.uuid4()),
                provider=self.provider,
                model=fal_model,
                prefetched=Succeeded(locator=ArtifactLocator(url=media_url)),
            )

        request_id = data.get("request_id")
        if not request_id:
            raise self._missing_task_id()

        base = f"{self.config.base_url.rstrip('/')}/{fal_model}/requests/{request_id}"
        logger.info(f"fal request queued: {request_id}")
        return TaskHandle(
            task_id=request_id,
            provider=self.provider,
            model=fal_model,
            metadata={
                "status_url": data.get("status_url") or f"{base}/status",
                "response_url": data.get("response_url") or base,
            },
        )

    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        if handle.prefetched is not None:
            return handle.prefetched

        data = await self._get_status(handle.metadata["status_url"])
        status = (data.get("status") or "").upper()

        if status == "COMPLETED":
            if data.get("error"):
                return Failed(reason=str(data["error"]))
            return Succeeded(
                locator=ArtifactLocator(url=handle.metadata["response_url"], manifest=True)
            )

        if status in ("FAILED", "ERROR"):
            return Failed(reason=str(data.get("error") or "Unknown error"))

        # IN_QUEUE / IN_PROGRESS / unknown => keep polling
        return Pending()

    async def fetch_artifact(self, locator: ArtifactLocator) -> bytes:
        if not locator.manifest:
            return await super().fetch_artifact(locator)

        try:
            response = await self.http.get(
                locator.url,
                headers=self._auth_headers(),
                timeout=self.config.request_timeout,
            )
        except httpx.TransportError as e:
            raise DownloadError(
                f"Failed to fetch fal result: {type(e).__name__}: {e}",
                provider=self.provider,
            ) from e

        if not response.is_success:
            raise DownloadError(
                f"Failed to fetch fal result: {response.status_code}",
                error_code=f"DOWNLOAD_HTTP_{response.status_code}",
                provider=self.provider,
            )

        try:
            document = response.json()
        except ValueError as e:
            raise DownloadError("fal result is not valid JSON", provider=self.provider) from e

        media_url = extract_media_url(document) if isinstance(document, dict) else None
        if not media_url:
            raise MissingArtifactError(
                "No media URL in completed fal result", provider=self.provider
            )
        return await self._download(media_url)
