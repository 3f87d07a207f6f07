"""
Data model for generation jobs.

GenerationRequest is created once per caller invocation; an adapter turns
it into a PreparedRequest and submits it, producing a TaskHandle. The poll
loop consumes the handle until the first terminal PollOutcome, and the
result assembler produces the GenerationResult returned to the caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class MediaKind(str, Enum):
    """Kind of artifact a model produces."""
    VIDEO = "video"
    IMAGE = "image"


# Fixed MIME type per media kind
MIME_TYPES = {
    MediaKind.VIDEO: "video/mp4",
    MediaKind.IMAGE: "image/jpeg",
}


class JobState(str, Enum):
    """Lifecycle states of one job."""
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (JobState.SUBMITTED, JobState.POLLING)


@dataclass(frozen=True)
class GenerationRequest:
    """Request for a generation job.

    image may be a single reference or an ordered list; adapters only use
    the first entry. audio=None means "enabled".
    """
    prompt: str
    model: str
    duration_seconds: Optional[float] = None
    image: Union[str, tuple[str, ...], list[str], None] = None
    width: Optional[int] = None
    height: Optional[int] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    audio: Optional[bool] = None
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None

    @property
    def first_image(self) -> Optional[str]:
        """First image reference, if any."""
        if not self.image:
            return None
        if isinstance(self.image, str):
            return self.image
        return self.image[0]


@dataclass(frozen=True)
class PreparedRequest:
    """Normalized request as submitted to a provider."""
    prompt: str
    model: str
    media_kind: MediaKind
    duration_seconds: int
    resolution: Optional[str]
    aspect_ratio: Optional[str]
    generate_audio: bool
    image_data_uri: Optional[str] = None
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None

    @property
    def mode(self) -> str:
        """Short label for logs: text-to-X or image-to-X."""
        return "I2V" if self.image_data_uri else "T2V"


@dataclass(frozen=True)
class ArtifactLocator:
    """Where a finished artifact can be fetched from.

    Exactly one of url/content is set. manifest=True means url points at a
    JSON result document that must be resolved to the media URL first.
    """
    url: Optional[str] = None
    content: Optional[bytes] = None
    manifest: bool = False

    def describe(self) -> str:
        if self.content is not None:
            return f"<inline {len(self.content)} bytes>"
        return self.url or "<empty>"


@dataclass(frozen=True)
class ProviderUsage:
    """Usage bookkeeping reported by the provider.

    resolution is whatever the provider reports ("720p", "720P" or 720).
    """
    actual_duration_seconds: Optional[float] = None
    resolution: Union[str, int, None] = None


@dataclass(frozen=True)
class Pending:
    """Job not yet finished."""


@dataclass(frozen=True)
class Succeeded:
    """Terminal: provider finished; locator is None if it delivered nothing."""
    locator: Optional[ArtifactLocator]
    usage: ProviderUsage = field(default_factory=ProviderUsage)


@dataclass(frozen=True)
class Failed:
    """Terminal: provider reported an unrecoverable failure."""
    reason: str


PollOutcome = Union[Pending, Succeeded, Failed]


@dataclass(frozen=True)
class TaskHandle:
    """Provider-assigned task identifier, owned by one job.

    metadata holds adapter-private locator details (queue URLs). prefetched
    is set by synchronous-style adapters whose submission already carries
    the terminal outcome.
    """
    task_id: str
    provider: str
    model: str
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    metadata: dict[str, str] = field(default_factory=dict)
    prefetched: Optional[PollOutcome] = None


@dataclass(frozen=True)
class Usage:
    """Normalized usage record returned to the caller."""
    video_seconds: float = 0.0
    audio_seconds: float = 0.0
    image_count: int = 0
    resolution: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_seconds": self.video_seconds,
            "audio_seconds": self.audio_seconds,
            "image_count": self.image_count,
            "resolution": self.resolution,
        }


@dataclass
class GenerationResult:
    """Result of a finished job. Owned by the caller once returned."""
    content: bytes
    mime_type: str
    duration_seconds: float
    usage: Usage

    job_id: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    task_id: Optional[str] = None
    completed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    def to_dict(self) -> dict[str, Any]:
        """Metadata view (without the artifact bytes)."""
        return {
            "job_id": self.job_id,
            "provider": self.provider,
            "model": self.model,
            "task_id": self.task_id,
            "mime_type": self.mime_type,
            "duration_seconds": self.duration_seconds,
            "size_bytes": self.size_bytes,
            "usage": self.usage.to_dict(),
            "completed_at": self.completed_at.isoformat(),
        }


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update. Purely informational."""
    job_id: str
    percentage: float
    phase: str
    message: str
