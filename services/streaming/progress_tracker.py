"""
Progress Tracker for Generation Jobs

Receives progress reports for one job, keeps a bounded history and formats
events for SSE streaming. The CLI monitor rebuilds events with
StreamEvent.from_dict.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

from services.generation.progress import Phase

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of stream events."""

    # Lifecycle events
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    # Progress events
    PROGRESS = "progress"

    # Info events
    INFO = "info"

    @property
    def terminal(self) -> bool:
        return self in (EventType.COMPLETED, EventType.FAILED, EventType.CANCELLED)


@dataclass
class StreamEvent:
    """A progress event for SSE streaming."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    job_id: str = ""
    event_type: EventType = EventType.INFO
    timestamp: datetime = field(default_factory=datetime.utcnow)

    percentage: float = 0.0
    phase: str = ""
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        event_data = {
            "id": self.event_id,
            "job_id": self.job_id,
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "phase": self.phase,
            "percentage": round(self.percentage, 1),
            "message": self.message,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
        }
        if self.data:
            event_data["data"] = self.data
        return event_data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "StreamEvent":
        """Rebuild an event from its SSE data payload."""
        timestamp = payload.get("timestamp")
        return cls(
            event_id=payload.get("id") or str(uuid4()),
            job_id=payload.get("job_id", ""),
            event_type=EventType(payload.get("type", EventType.INFO.value)),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.utcnow(),
            percentage=float(payload.get("percentage", 0.0)),
            phase=payload.get("phase", ""),
            message=payload.get("message", ""),
            data=payload.get("data") or {},
            elapsed_seconds=float(payload.get("elapsed_seconds", 0.0)),
        )

    def to_sse(self) -> str:
        """Format as SSE message."""
        json_data = json.dumps(self.to_dict())
        return f"id: {self.event_id}\nevent: {self.event_type.value}\ndata: {json_data}\n\n"


class JobProgressTracker:
    """
    Progress sink for one generation job.

    Implements the reporter contract (report(job_id, percentage, phase,
    message)) so it can be handed straight to GenerationClient.generate.
    Lifecycle events (started/completed/failed/cancelled) are emitted by
    whoever owns the job.

    Usage:
        tracker = JobProgressTracker(job_id="abc123")
        tracker.on_event(lambda e: server.publish(e.job_id, e))

        tracker.started("Starting generation")
        result = await client.generate(request, job_id="abc123", on_progress=tracker)
        tracker.completed("Done", data=result.to_dict())
    """

    def __init__(self, job_id: str, history_size: int = 200):
        self.job_id = job_id
        self.history_size = history_size

        self._start_time = datetime.utcnow()
        self._percentage: float = 0.0
        self._finished: Optional[EventType] = None

        self._callbacks: list[Callable[[StreamEvent], None]] = []
        self._event_history: list[StreamEvent] = []

    @property
    def finished(self) -> bool:
        return self._finished is not None

    @property
    def percentage(self) -> float:
        return self._percentage

    def on_event(self, callback: Callable[[StreamEvent], None]):
        """Register callback for progress events."""
        self._callbacks.append(callback)

    def _emit(self, event: StreamEvent):
        """Emit event to all callbacks."""
        event.job_id = self.job_id
        event.elapsed_seconds = (datetime.utcnow() - self._start_time).total_seconds()

        self._event_history.append(event)
        if len(self._event_history) > self.history_size:
            self._event_history = self._event_history[-self.history_size:]

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        """Reporter contract used by the generation client."""
        if self._finished is not None:
            return

        self._percentage = percentage
        self._emit(StreamEvent(
            event_type=EventType.PROGRESS,
            percentage=percentage,
            phase=phase,
            message=message,
        ))

    def started(self, message: str = "Generation started", data: dict = None):
        """Emit job started event."""
        self._emit(StreamEvent(
            event_type=EventType.STARTED,
            percentage=self._percentage,
            phase=Phase.STARTING,
            message=message,
            data=data or {},
        ))

    def completed(self, message: str = "Generation completed", data: dict = None):
        """Emit job completed event."""
        self._finish(EventType.COMPLETED, Phase.COMPLETE, message, data)

    def failed(self, message: str, error: Optional[dict] = None):
        """Emit job failed event."""
        self._finish(EventType.FAILED, Phase.FAILED, message, {"error": error} if error else None)

    def cancelled(self, message: str = "Generation cancelled", error: Optional[dict] = None):
        """Emit job cancelled event."""
        self._finish(EventType.CANCELLED, Phase.FAILED, message, {"error": error} if error else None)

    def _finish(self, event_type: EventType, phase: str, message: str, data: Optional[dict]):
        if self._finished is not None:
            logger.debug(f"Job {self.job_id} already finished ({self._finished.value})")
            return
        self._finished = event_type
        self._emit(StreamEvent(
            event_type=event_type,
            percentage=self._percentage,
            phase=phase,
            message=message,
            data=data or {},
        ))

    def get_history(self) -> list[StreamEvent]:
        """Get all events emitted so far."""
        return self._event_history.copy()

