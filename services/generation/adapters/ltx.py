"""
LTX adapter (synchronous API).

The LTX endpoints render the clip inside the submission request and answer
with the MP4 body, so the handle carries a prefetched terminal outcome with
inline bytes and polling finishes on the first attempt without I/O.
"""

import logging
import uuid
from typing import Any

from core.errors import SubmissionError

from ..models import (
    ArtifactLocator,
    PollOutcome,
    PreparedRequest,
    ProviderUsage,
    Succeeded,
    TaskHandle,
)
from ..normalizer import DurationRule
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

LTX_MODEL = "ltx-2-pro"

RESOLUTION_SIZES = {
    "1080p": "1920x1080",
    "1440p": "2560x1440",
    "2160p": "3840x2160",
}


class LtxAdapter(ProviderAdapter):
    """Synchronous-style backend: submission returns the artifact."""

    provider = "ltx"
    duration_rule = DurationRule(min_seconds=6, max_seconds=10, default_seconds=6, allowed=(6, 8, 10))
    resolutions = tuple(RESOLUTION_SIZES)
    default_resolution = "1080p"
    supports_audio = True

    def build_payload(self, prepared: PreparedRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": prepared.prompt,
            "model": LTX_MODEL,
            "duration": prepared.duration_seconds,
            "resolution": RESOLUTION_SIZES[prepared.resolution],
            "generate_audio": prepared.generate_audio,
        }
        if prepared.image_data_uri:
            payload["image_uri"] = prepared.image_data_uri
        return payload

    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        self._require_api_key()
        endpoint = "image-to-video" if prepared.image_data_uri else "text-to-video"

        response = await self._post_submission(
            f"{self.config.base_url}/{endpoint}",
            self.build_payload(prepared),
        )

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("video/") or not response.content:
            raise SubmissionError(
                f"LTX API returned no video (content-type {content_type or 'missing'})",
                error_code="INVALID_RESPONSE",
                provider=self.provider,
                status_code=500,
            )

        task_id = response.headers.get("x-request-id") or str(uuid.uuid4())
        logger.info(f"LTX render finished in submission: {task_id} ({len(response.content)} bytes)")
        return TaskHandle(
            task_id=task_id,
            provider=self.provider,
            model=LTX_MODEL,
            prefetched=Succeeded(
                locator=ArtifactLocator(content=response.content),
                usage=ProviderUsage(actual_duration_seconds=prepared.duration_seconds),
            ),
        )

    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        if handle.prefetched is None:
            # Only handles produced by submit() are valid for this backend
            raise SubmissionError(
                f"LTX handle {handle.task_id} has no result",
                error_code="INVALID_HANDLE",
                provider=self.provider,
                status_code=500,
            )
        return handle.prefetched
