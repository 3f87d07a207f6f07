"""
Input image preparation.

Several providers cannot reliably fetch redirecting or header-gated URLs,
so source images are downloaded up front and re-encoded as data URIs
before the provider payload is built.
"""

import base64
import logging
from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.errors import GenerationError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http://", "https://", "data:")

# Magic numbers for content types servers commonly mislabel
_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


class _RetryableFetch(Exception):
    """Internal marker: the image GET may succeed if repeated."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


def is_data_uri(uri: str) -> bool:
    return uri[:5].lower() == "data:"


def validate_image_uri(uri: str) -> str:
    """Accept only http(s) URLs and data URIs; raise a 400 otherwise.

    Schemes are case-insensitive.
    """
    if not uri.lower().startswith(ALLOWED_SCHEMES):
        raise ValidationError(
            "Invalid image URL: must be http/https or data URI",
            error_code="INVALID_IMAGE_URI",
        )
    return uri


def sniff_mime_type(content: bytes, declared: Optional[str] = None) -> str:
    """Determine the image MIME type from the header or the bytes."""
    if declared:
        declared = declared.split(";")[0].strip().lower()
        if declared.startswith("image/"):
            return declared
    for signature, mime_type in _SIGNATURES:
        if content.startswith(signature):
            return mime_type
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def to_data_uri(content: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


async def _download_once(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
) -> httpx.Response:
    try:
        response = await client.get(url, follow_redirects=True, timeout=timeout)
    except httpx.TransportError as e:
        raise _RetryableFetch(f"{type(e).__name__}: {e}", cause=e) from e

    if response.status_code >= 500:
        raise _RetryableFetch(f"HTTP {response.status_code}")
    return response


async def fetch_image_as_data_uri(
    client: httpx.AsyncClient,
    uri: str,
    timeout: float = 30.0,
    retry_attempts: int = 3,
    retry_multiplier: float = 1.0,
    max_bytes: Optional[int] = None,
) -> str:
    """
    Download an image and re-encode it as a data URI.

    Data URIs pass through untouched. The GET is retried on transport
    errors and 5xx responses with exponential backoff.

    Args:
        client: Shared HTTP client
        uri: http(s) URL or data URI
        timeout: Per-request timeout in seconds
        retry_attempts: Total attempts for the GET
        retry_multiplier: Backoff multiplier (0 disables waiting)
        max_bytes: Reject images larger than this

    Returns:
        data:<mime>;base64,<payload>

    Raises:
        ValidationError: Bad scheme, 4xx, non-image or oversized payload
        GenerationError: Image still unreachable after all attempts (500)
    """
    validate_image_uri(uri)
    if is_data_uri(uri):
        return uri

    logger.info(f"Downloading input image for base64 encoding: {uri}")

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, retry_attempts)),
            wait=wait_exponential(multiplier=retry_multiplier, max=10),
            retry=retry_if_exception_type(_RetryableFetch),
            reraise=True,
        ):
            with attempt:
                response = await _download_once(client, uri, timeout)
    except _RetryableFetch as e:
        raise GenerationError(
            f"Failed to download input image: {e}",
            error_code="IMAGE_FETCH_FAILED",
        ) from e.cause

    if response.status_code >= 400:
        raise ValidationError(
            f"Failed to download input image: HTTP {response.status_code}",
            error_code="IMAGE_FETCH_FAILED",
        )

    content = response.content
    if not content:
        raise ValidationError("Input image is empty", error_code="IMAGE_EMPTY")
    if max_bytes and len(content) > max_bytes:
        raise ValidationError(
            f"Input image too large: {len(content)} bytes (max {max_bytes})",
            error_code="IMAGE_TOO_LARGE",
        )

    declared = response.headers.get("content-type")
    if declared and not declared.lower().startswith(("image/", "application/octet-stream", "binary/")):
        raise ValidationError(
            f"Input URL is not an image (content-type {declared})",
            error_code="IMAGE_NOT_AN_IMAGE",
        )

    mime_type = sniff_mime_type(content, declared)
    logger.info(f"Image downloaded and encoded, mimeType: {mime_type} ({len(content) / 1024:.0f} KB)")
    return to_data_uri(content, mime_type)
