"""
SSE Progress Streaming Service

HTTP job API plus real-time visibility into generation progress via
Server-Sent Events (SSE). Designed for CLI consumption.

Usage:
    # Start server
    from services.streaming import SSEServer
    server = SSEServer.from_config(get_config())
    await server.start()

    # In CLI
    curl -N http://localhost:8765/stream/{job_id}
"""

from .progress_tracker import EventType, JobProgressTracker, StreamEvent
from .sse_server import GenerateBody, JobRecord, SSEClient, SSEServer

__all__ = [
    "SSEServer",
    "SSEClient",
    "GenerateBody",
    "JobRecord",
    "JobProgressTracker",
    "StreamEvent",
    "EventType",
]
