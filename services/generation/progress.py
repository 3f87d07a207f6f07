"""
Progress reporting for generation jobs.

The sink is an external collaborator (SSE stream, CLI, telemetry). The
client only talks to it through JobReporter, which keeps the
percentage non-decreasing and never lets a sink error fail the job.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from .models import ProgressEvent

logger = logging.getLogger(__name__)


class Phase:
    """Phase labels attached to progress events."""
    STARTING = "starting"
    PREPARING = "preparing"
    SUBMITTING = "submitting"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressPlan:
    """Where each lifecycle phase sits on the 0-100 scale."""
    start: int = 20
    prepare: int = 35
    submit: int = 45
    submitted: int = 50
    poll_start: int = 50
    poll_end: int = 90
    poll_step: float = 0.7
    download: int = 90
    downloaded: int = 95
    complete: int = 100

    def poll_percent(self, attempt: int) -> int:
        """Progress for a poll attempt; non-decreasing in attempt."""
        span = self.poll_end - self.poll_start
        return self.poll_start + min(span, math.floor(attempt * self.poll_step))


DEFAULT_PLAN = ProgressPlan()


class ProgressReporter(Protocol):
    """Sink contract: fire-and-forget, must not block."""

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        ...


ProgressCallback = Callable[[str, float, str, str], None]


class CallbackReporter:
    """Adapts a plain callable (job_id, percentage, phase, message) to a sink."""

    def __init__(self, callback: ProgressCallback):
        self.callback = callback

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        self.callback(job_id, percentage, phase, message)


class LoggingReporter:
    """Sink that writes progress to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        logger.log(self.level, f"[{job_id}] {percentage:5.1f}% {phase}: {message}")


class JobReporter:
    """
    Per-job wrapper around a progress sink.

    Usage:
        reporter = JobReporter(job_id, sink)
        reporter.emit(35, Phase.PREPARING, "Downloading input image")
    """

    def __init__(
        self,
        job_id: str,
        sink: Union[ProgressReporter, ProgressCallback, None] = None,
    ):
        self.job_id = job_id
        if sink is not None and not hasattr(sink, "report"):
            sink = CallbackReporter(sink)
        self.sink: Optional[ProgressReporter] = sink
        self.percentage: float = 0.0
        self.phase: Optional[str] = None
        self.last_event: Optional[ProgressEvent] = None

    def emit(self, percentage: float, phase: str, message: str) -> None:
        """Report progress; never raises."""
        percentage = max(self.percentage, min(100.0, max(0.0, float(percentage))))
        self.percentage = percentage
        self.phase = phase
        self.last_event = ProgressEvent(self.job_id, percentage, phase, message)

        if self.sink is None:
            return
        try:
            self.sink.report(self.job_id, percentage, phase, message)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def failed(self, message: str) -> None:
        """Report a failure at the last reached percentage."""
        self.emit(self.percentage, Phase.FAILED, message)
