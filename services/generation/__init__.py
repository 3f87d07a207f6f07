"""
Generation Jobs

Uniform submit/poll/download lifecycle over async provider APIs:
- Provider adapters (DashScope Wan, BytePlus Seedance, Kie, fal, LTX)
- Poll loop with bounded attempts and failure classification
- Result assembly with normalized usage
- Progress reporting that never fails a job
"""

from .adapters import AdapterRegistry, ProviderAdapter, build_default_registry
from .assembler import ResultAssembler
from .client import GenerationClient
from .models import (
    ArtifactLocator,
    Failed,
    GenerationRequest,
    GenerationResult,
    JobState,
    MediaKind,
    Pending,
    PreparedRequest,
    ProgressEvent,
    Succeeded,
    TaskHandle,
    Usage,
)
from .poller import PollLoop, PollState
from .progress import DEFAULT_PLAN, JobReporter, LoggingReporter, Phase, ProgressPlan

__all__ = [
    # Client
    "GenerationClient",
    # Adapters
    "AdapterRegistry",
    "ProviderAdapter",
    "build_default_registry",
    # Lifecycle
    "PollLoop",
    "PollState",
    "ResultAssembler",
    # Progress
    "JobReporter",
    "LoggingReporter",
    "Phase",
    "ProgressPlan",
    "DEFAULT_PLAN",
    # Models
    "ArtifactLocator",
    "Failed",
    "GenerationRequest",
    "GenerationResult",
    "JobState",
    "MediaKind",
    "Pending",
    "PreparedRequest",
    "ProgressEvent",
    "Succeeded",
    "TaskHandle",
    "Usage",
]
