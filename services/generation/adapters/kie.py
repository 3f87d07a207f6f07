"""
Kie.ai Market API adapter.

One aggregator endpoint fronts several upstream models (Kling, Veo, Flux).
Responses use an envelope: {"code": 200, "msg": ..., "data": {...}}.
See: https://docs.kie.ai/market/quickstart
"""

import json
import logging
from typing import Any, Optional

import httpx

from core.config import DownloadConfig, ProviderConfig
from core.errors import ProviderHTTPError, SubmissionError, ValidationError, caller_status

from ..models import (
    ArtifactLocator,
    Failed,
    GenerationRequest,
    MediaKind,
    Pending,
    PollOutcome,
    PreparedRequest,
    Succeeded,
    TaskHandle,
)
from ..normalizer import DurationRule
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class KieAdapter(ProviderAdapter):
    """Kie market task API: waiting/queuing/generating -> success/fail."""

    provider = "kie"
    # Kie only accepts "5" or "10" second clips
    duration_rule = DurationRule(min_seconds=5, max_seconds=10, default_seconds=5, allowed=(5, 10))
    supports_audio = True

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        model_id: str,
        download: Optional[DownloadConfig] = None,
        market_model: str = "kling-2.6/text-to-video",
        i2v_market_model: Optional[str] = None,
        media_kind: MediaKind = MediaKind.VIDEO,
    ):
        super().__init__(config, http_client, model_id, download)
        self.market_model = market_model
        self.i2v_market_model = i2v_market_model
        self.media_kind = media_kind

    def normalize(self, request: GenerationRequest) -> PreparedRequest:
        """Reject source images for market models without an image-input variant."""
        prepared = super().normalize(request)
        if prepared.image_data_uri and not self.i2v_market_model:
            raise ValidationError(
                f"Model {self.model_id} does not accept a source image",
                error_code="IMAGE_NOT_SUPPORTED",
                provider=self.provider,
            )
        return prepared

    def _market_model_for(self, prepared: PreparedRequest) -> str:
        if prepared.image_data_uri and self.i2v_market_model:
            return self.i2v_market_model
        return self.market_model

    def build_payload(self, prepared: PreparedRequest) -> dict[str, Any]:
        if self.media_kind == MediaKind.IMAGE:
            input_params: dict[str, Any] = {
                "prompt": prepared.prompt,
                "aspectRatio": prepared.aspect_ratio,
            }
            if prepared.negative_prompt:
                input_params["negativePrompt"] = prepared.negative_prompt
        else:
            input_params = {
                "prompt": prepared.prompt,
                "duration": str(prepared.duration_seconds),
                "aspect_ratio": prepared.aspect_ratio,
                "sound": prepared.generate_audio,
            }
            if prepared.negative_prompt:
                input_params["negative_prompt"] = prepared.negative_prompt

        if prepared.image_data_uri:
            input_params["imageUrl"] = prepared.image_data_uri

        return {"model": self._market_model_for(prepared), "input": input_params}

    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        self._require_api_key()
        payload = self.build_payload(prepared)

        response = await self._post_submission(
            f"{self.config.base_url}/jobs/createTask",
            payload,
        )
        data = self._submission_json(response)

        code = data.get("code")
        if code != 200:
            logger.error(f"Kie API error: {data}")
            raise SubmissionError(
                f"Kie API error: {data.get('msg', 'Unknown error')}",
                error_code=f"KIE_{code}",
                provider=self.provider,
                status_code=caller_status(code if isinstance(code, int) else None),
            )

        task_id = (data.get("data") or {}).get("taskId")
        if not task_id:
            raise self._missing_task_id()

        logger.info(f"Kie task created: {task_id} (model={payload['model']})")
        return TaskHandle(task_id=task_id, provider=self.provider, model=payload["model"])

    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        data = await self._get_status(
            f"{self.config.base_url}/jobs/recordInfo?taskId={handle.task_id}"
        )

        # Envelope errors behave like HTTP statuses: 4xx fail, 5xx retry
        code = data.get("code")
        if code != 200:
            logger.warning(f"Kie poll API error: {data}")
            raise ProviderHTTPError(
                code if isinstance(code, int) else 500,
                data.get("msg", ""),
                provider=self.provider,
            )

        record = data.get("data") or {}
        state = (record.get("state") or "").lower()

        if state == "success":
            output_urls = _parse_result_urls(record.get("resultJson"))
            return Succeeded(
                locator=ArtifactLocator(url=output_urls[0]) if output_urls else None,
            )

        if state in ("fail", "failed"):
            return Failed(reason=record.get("failMsg") or "Generation failed (no specific reason)")

        return Pending()


def _parse_result_urls(result_json: Any) -> list[str]:
    """resultJson is a JSON-encoded string: {"resultUrls": [...]}."""
    if isinstance(result_json, dict):
        return list(result_json.get("resultUrls") or [])
    try:
        parsed = json.loads(result_json or "{}")
    except (TypeError, json.JSONDecodeError):
        logger.warning(f"Failed to parse resultJson: {str(result_json)[:100]}")
        return []
    return list(parsed.get("resultUrls") or [])
