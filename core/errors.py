"""
Error taxonomy for generation jobs.

Every failure a caller can observe is a GenerationError carrying an
HTTP-equivalent status code:
- 400: request/validation defects (never retried)
- 500: provider or internal failures
- 504: polling exhausted or stopped locally

ProviderHTTPError is internal to the poll loop: adapters raise it for a
non-successful status response and the loop classifies it.
"""

from typing import Any, Optional


class GenerationError(Exception):
    """Base class for all caller-facing generation failures."""

    status_code: int = 500
    default_error_code: str = "GENERATION_FAILED"

    def __init__(
        self,
        message: str,
        error_code: str = None,
        provider: str = None,
        status_code: int = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.provider = provider
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render the caller-facing error body."""
        body = {
            "status_code": self.status_code,
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.provider:
            body["provider"] = self.provider
        return body


class ValidationError(GenerationError):
    """Bad input. Surfaces immediately as a 400."""

    status_code = 400
    default_error_code = "INVALID_REQUEST"


class SubmissionError(GenerationError):
    """Provider rejected the job at creation (400 or 500 class)."""

    default_error_code = "SUBMISSION_FAILED"


class TransientPollError(GenerationError):
    """A poll attempt failed in a way expected to self-resolve.

    Never raised to the caller; recorded in the poll state and reported
    only if polling runs out of attempts.
    """

    status_code = 503
    default_error_code = "POLL_TRANSIENT"


class PermanentPollError(GenerationError):
    """Provider reported an unrecoverable failure mid-job."""

    default_error_code = "JOB_FAILED"


class PollTimeoutError(GenerationError):
    """Attempt ceiling exhausted while the job was still pending."""

    status_code = 504
    default_error_code = "POLL_TIMEOUT"


class JobCancelledError(GenerationError):
    """Polling stopped by an external cancel signal.

    The remote task is not aborted and may keep running on the provider.
    """

    status_code = 504
    default_error_code = "JOB_CANCELLED"


class DownloadError(GenerationError):
    """Artifact fetch failed after the provider reported success."""

    default_error_code = "DOWNLOAD_FAILED"


class MissingArtifactError(GenerationError):
    """Provider claimed success without a retrievable artifact."""

    default_error_code = "MISSING_ARTIFACT"


class ProviderHTTPError(GenerationError):
    """Non-successful HTTP response from a provider status endpoint.

    status_code is the raw provider status, not a caller-facing code.
    """

    default_error_code = "PROVIDER_HTTP_ERROR"

    def __init__(self, status_code: int, body: str = "", provider: str = None):
        self.body = body
        super().__init__(
            f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}",
            error_code=f"HTTP_{status_code}",
            provider=provider,
            status_code=status_code,
        )


def caller_status(status_code: Optional[int]) -> int:
    """Collapse a provider status into the caller-facing 400/500 classes."""
    if status_code is not None and 400 <= status_code < 500:
        return 400
    return 500
