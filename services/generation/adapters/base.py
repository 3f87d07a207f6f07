"""
Provider adapter interface.

Every backend implements the same capability contract:
- submit(prepared) -> TaskHandle      one POST, no retry
- poll_once(handle) -> PollOutcome    one GET, no sleep, no retry
- fetch_artifact(locator) -> bytes    download the finished media
- normalize_usage(prepared, outcome)  actual-vs-requested bookkeeping

Adapters may log but must not mutate shared state: every call depends only
on its arguments and the adapter's read-only configuration.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Optional

import httpx

from core.config import DownloadConfig, PollingConfig, ProviderConfig
from core.errors import (
    DownloadError,
    MissingArtifactError,
    ProviderHTTPError,
    SubmissionError,
    ValidationError,
    caller_status,
)

from ..images import fetch_image_as_data_uri, is_data_uri, validate_image_uri
from ..models import (
    ArtifactLocator,
    GenerationRequest,
    MediaKind,
    PollOutcome,
    PreparedRequest,
    Succeeded,
    TaskHandle,
    Usage,
)
from ..normalizer import DurationRule, calculate_video_resolution, resolution_label
from ..progress import DEFAULT_PLAN, ProgressPlan

logger = logging.getLogger(__name__)


def redact_payload(value: Any) -> Any:
    """Copy of a payload with embedded base64 data replaced, for logging."""
    if isinstance(value, dict):
        return {key: redact_payload(item) for key, item in value.items()}
    if isinstance(value, list):
        return [redact_payload(item) for item in value]
    if isinstance(value, str) and value.startswith("data:"):
        return "[base64]"
    return value


class ProviderAdapter(ABC):
    """
    Base class for generation backends.

    Subclasses set the class-level capabilities (duration rule, resolutions,
    audio support) and implement submit/poll_once.
    """

    provider: str = "unknown"
    media_kind: MediaKind = MediaKind.VIDEO
    duration_rule: DurationRule = DurationRule(min_seconds=1, max_seconds=10, default_seconds=5)
    resolutions: Optional[tuple[str, ...]] = None
    default_resolution: str = "720p"
    supports_audio: bool = True
    progress_plan: ProgressPlan = DEFAULT_PLAN

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        model_id: str,
        download: Optional[DownloadConfig] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Credentials, endpoint and polling policy for this backend
            http_client: Shared connection pool
            model_id: Public model identifier this instance is registered under
            download: Input/artifact download settings
        """
        self.config = config
        self.http = http_client
        self.model_id = model_id
        self.download = download or DownloadConfig()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model_id={self.model_id!r})"

    @property
    def polling(self) -> PollingConfig:
        return self.config.polling

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    def normalize(self, request: GenerationRequest) -> PreparedRequest:
        """Clamp duration and resolve resolution/aspect ratio/audio. No I/O."""
        if not request.prompt or not request.prompt.strip():
            raise ValidationError(
                "prompt is required",
                error_code="PROMPT_REQUIRED",
                provider=self.provider,
            )

        image = request.first_image
        if image:
            validate_image_uri(image)

        if self.media_kind == MediaKind.IMAGE:
            duration = 0
        else:
            duration = self.duration_rule.apply(request.duration_seconds)

        aspect_ratio, resolution = calculate_video_resolution(
            width=request.width,
            height=request.height,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
            default_resolution=self.default_resolution,
            allowed_resolutions=self.resolutions,
        )

        return PreparedRequest(
            prompt=request.prompt,
            model=self.model_id,
            media_kind=self.media_kind,
            duration_seconds=duration,
            resolution=resolution,
            aspect_ratio=aspect_ratio,
            generate_audio=self.supports_audio and request.audio is not False,
            image_data_uri=image,
            negative_prompt=request.negative_prompt,
            seed=request.seed,
        )

    async def prepare(self, request: GenerationRequest) -> PreparedRequest:
        """Normalize, then inline the source image as a data URI."""
        prepared = self.normalize(request)
        image = prepared.image_data_uri
        if image and not is_data_uri(image):
            data_uri = await fetch_image_as_data_uri(
                self.http,
                image,
                timeout=self.download.timeout_seconds,
                retry_attempts=self.download.image_retry_attempts,
                retry_multiplier=self.download.image_retry_multiplier,
                max_bytes=self.download.max_image_bytes,
            )
            prepared = replace(prepared, image_data_uri=data_uri)
        return prepared

    # ------------------------------------------------------------------
    # Capability contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def submit(self, prepared: PreparedRequest) -> TaskHandle:
        """Create the remote task. Raises SubmissionError if rejected."""

    @abstractmethod
    async def poll_once(self, handle: TaskHandle) -> PollOutcome:
        """Single status check. Raises ProviderHTTPError on non-2xx."""

    async def fetch_artifact(self, locator: ArtifactLocator) -> bytes:
        """Download the finished artifact."""
        if locator.content is not None:
            return locator.content
        if not locator.url:
            raise MissingArtifactError(
                "Artifact locator has no URL", provider=self.provider
            )
        return await self._download(locator.url)

    def normalize_usage(self, prepared: PreparedRequest, outcome: Succeeded) -> Usage:
        """Prefer the provider-reported duration and resolution over the requested ones."""
        if self.media_kind == MediaKind.IMAGE:
            return Usage(image_count=1)

        actual = outcome.usage.actual_duration_seconds
        duration = actual if actual and actual > 0 else prepared.duration_seconds
        return Usage(
            video_seconds=duration,
            audio_seconds=duration if prepared.generate_audio else 0,
            resolution=resolution_label(outcome.usage.resolution) or prepared.resolution,
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _require_api_key(self) -> str:
        if not self.config.api_key:
            raise SubmissionError(
                f"API key for {self.provider} is not configured",
                error_code="MISSING_CREDENTIALS",
                provider=self.provider,
                status_code=500,
            )
        return self.config.api_key

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def _post_submission(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """POST a task; transport failures and non-2xx become SubmissionError."""
        logger.info(f"{self.provider} API request: {json.dumps(redact_payload(payload))}")

        try:
            response = await self.http.post(
                url,
                json=payload,
                headers={**self._auth_headers(), **(headers or {})},
                timeout=self.config.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise SubmissionError(
                f"{self.provider} API timeout: {type(e).__name__}",
                error_code="TIMEOUT",
                provider=self.provider,
                status_code=500,
            ) from e
        except httpx.TransportError as e:
            raise SubmissionError(
                f"{self.provider} API request failed: {type(e).__name__}: {e}",
                error_code="REQUEST_ERROR",
                provider=self.provider,
                status_code=500,
            ) from e

        if not response.is_success:
            logger.error(f"{self.provider} API failed: {response.status_code} {response.text}")
            raise SubmissionError(
                f"{self.provider} API request failed: {response.text}",
                error_code=f"HTTP_{response.status_code}",
                provider=self.provider,
                status_code=caller_status(response.status_code),
            )
        return response

    def _submission_json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise SubmissionError(
                f"{self.provider} API returned invalid JSON",
                error_code="INVALID_RESPONSE",
                provider=self.provider,
                status_code=500,
            ) from e
        if not isinstance(data, dict):
            raise SubmissionError(
                f"{self.provider} API returned unexpected payload",
                error_code="INVALID_RESPONSE",
                provider=self.provider,
                status_code=500,
            )
        return data

    def _missing_task_id(self) -> SubmissionError:
        return SubmissionError(
            f"{self.provider} API did not return task ID",
            error_code="NO_TASK_ID",
            provider=self.provider,
            status_code=500,
        )

    async def _get_status(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """One status GET. Non-2xx raises ProviderHTTPError for classification."""
        response = await self.http.get(
            url,
            headers=headers if headers is not None else self._auth_headers(),
            timeout=self.config.request_timeout,
        )
        if not response.is_success:
            logger.error(f"{self.provider} poll error: {response.status_code} {response.text}")
            raise ProviderHTTPError(response.status_code, response.text, provider=self.provider)
        return response.json()

    async def _download(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> bytes:
        """GET the artifact bytes; any failure is a DownloadError."""
        try:
            response = await self.http.get(
                url,
                headers=headers,
                follow_redirects=True,
                timeout=self.download.timeout_seconds,
            )
        except httpx.TransportError as e:
            raise DownloadError(
                f"Failed to download {self.media_kind.value}: {type(e).__name__}: {e}",
                provider=self.provider,
            ) from e

        if not response.is_success:
            raise DownloadError(
                f"Failed to download {self.media_kind.value}: {response.status_code}",
                error_code=f"DOWNLOAD_HTTP_{response.status_code}",
                provider=self.provider,
            )

        content = response.content
        if not content:
            raise DownloadError(
                f"Downloaded {self.media_kind.value} is empty",
                provider=self.provider,
            )

        logger.info(f"{self.media_kind.value.capitalize()} downloaded, size: {len(content) / 1024 / 1024:.2f} MB")
        return content
