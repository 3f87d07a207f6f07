"""
Failure classification for provider calls.

Maps an HTTP-style status code and/or a raised error into one of three
kinds. Client errors are never retried; server errors and network
exceptions are absorbed by the poll loop as a pending attempt.
"""

from enum import Enum
from typing import Optional

import httpx

from .errors import GenerationError, JobCancelledError, PollTimeoutError


class ErrorKind(str, Enum):
    """Classification of a failed provider interaction."""
    TRANSIENT = "transient"  # worth waiting: network errors, 5xx
    PERMANENT = "permanent"  # fail now: 4xx, explicit provider rejection
    TIMEOUT = "timeout"      # attempts exhausted


def classify_status(status_code: int) -> ErrorKind:
    """Classify a raw HTTP status code."""
    if 400 <= status_code < 500:
        return ErrorKind.PERMANENT
    return ErrorKind.TRANSIENT


def classify(
    status_code: Optional[int] = None,
    error: Optional[BaseException] = None,
) -> ErrorKind:
    """
    Classify a failure.

    Args:
        status_code: HTTP status returned by the provider, if any
        error: Exception raised while talking to the provider, if any

    Returns:
        ErrorKind for the failure. Unattributable failures (malformed
        payloads, unexpected exceptions) are TRANSIENT so the job keeps
        polling until its ceiling.
    """
    if isinstance(error, (PollTimeoutError, JobCancelledError)):
        return ErrorKind.TIMEOUT

    if status_code is not None:
        return classify_status(status_code)

    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)

    if isinstance(error, GenerationError):
        return classify_status(error.status_code)

    # Network errors, timeouts of a single call, and ambiguous failures
    # (malformed JSON, unexpected payloads) all keep the job pending.
    return ErrorKind.TRANSIENT
