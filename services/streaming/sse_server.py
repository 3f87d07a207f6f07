"""
SSE Server for Generation Jobs

HTTP front end for the generation client. Jobs run as background tasks in
this process; their state lives in memory only and is lost on restart.

Endpoints:
- POST   /generate                start a job
- GET    /stream/{job_id}         SSE progress stream (history replayed)
- GET    /jobs/{job_id}           job status
- GET    /jobs/{job_id}/artifact  artifact bytes once finished
- DELETE /jobs/{job_id}           stop polling locally
- GET    /models                  model catalog
- GET    /health                  health check

Usage:
    server = SSEServer(client, host="0.0.0.0", port=8765)
    await server.start()

    curl -X POST http://localhost:8765/generate \\
        -H "Content-Type: application/json" \\
        -d '{"prompt": "A fox running through snow", "model": "wan", "duration": 5}'
    curl -N http://localhost:8765/stream/{job_id}
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union
from uuid import uuid4

from aiohttp import web
from pydantic import BaseModel, Field
from pydantic import ValidationError as BodyValidationError

from core.config import Config, ServerConfig
from core.errors import GenerationError, JobCancelledError, PollTimeoutError
from services.generation.client import GenerationClient
from services.generation.models import GenerationRequest, GenerationResult, JobState
from services.generation.progress import Phase

from .progress_tracker import EventType, JobProgressTracker, StreamEvent

logger = logging.getLogger(__name__)


class GenerateBody(BaseModel):
    """JSON body accepted by POST /generate."""

    prompt: str = Field(min_length=1, description="Text description of the media to generate")
    model: str = Field(min_length=1, description="Model id, see GET /models")
    duration: Optional[float] = Field(default=None, description="Requested seconds; clamped per model")
    image: Union[str, list[str], None] = Field(default=None, description="Source image URL or data URI")
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    audio: Optional[bool] = None
    negative_prompt: Optional[str] = None
    seed: Optional[int] = None
    job_id: Optional[str] = None

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            model=self.model,
            duration_seconds=self.duration,
            image=tuple(self.image) if isinstance(self.image, list) else self.image,
            width=self.width,
            height=self.height,
            aspect_ratio=self.aspect_ratio,
            resolution=self.resolution,
            audio=self.audio,
            negative_prompt=self.negative_prompt,
            seed=self.seed,
        )


@dataclass
class SSEClient:
    """Represents a connected SSE client."""

    client_id: str = field(default_factory=lambda: str(uuid4()))
    job_id: str = ""
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_event_id: Optional[str] = None
    user_agent: str = ""


@dataclass
class JobRecord:
    """In-memory record of one job."""

    job_id: str
    request: GenerationRequest
    tracker: JobProgressTracker
    state: JobState = JobState.SUBMITTED
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    result: Optional[GenerationResult] = None
    error: Optional[GenerationError] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def finished(self) -> bool:
        return self.state.terminal

    def to_dict(self) -> dict[str, Any]:
        data = {
            "job_id": self.job_id,
            "model": self.request.model,
            "status": self.state.value,
            "percentage": self.tracker.percentage,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


class SSEServer:
    """
    HTTP job API with Server-Sent Events progress streams.

    Clients connect to /stream/{job_id} to receive events; late joiners get
    the job's event history replayed first.
    """

    def __init__(
        self,
        client: GenerationClient,
        host: str = "0.0.0.0",
        port: int = 8765,
        heartbeat_interval: float = 30,
        event_history_size: int = 200,
        max_jobs: int = 100,
    ):
        self.client = client
        self.host = host
        self.port = port
        self.heartbeat_interval = heartbeat_interval
        self.event_history_size = event_history_size
        self.max_jobs = max_jobs

        # Client tracking
        self._clients: dict[str, SSEClient] = {}  # client_id -> client
        self._job_clients: dict[str, set[str]] = {}  # job_id -> client_ids

        # Insertion-ordered so the oldest finished job is evicted first
        self._jobs: "OrderedDict[str, JobRecord]" = OrderedDict()

        self._runner: Optional[web.AppRunner] = None

    @classmethod
    def from_config(cls, config: Config, client: Optional[GenerationClient] = None) -> "SSEServer":
        server: ServerConfig = config.server
        return cls(
            client or GenerationClient(config=config),
            host=server.host,
            port=server.port,
            heartbeat_interval=server.heartbeat_interval,
            event_history_size=server.event_history_size,
            max_jobs=server.max_jobs,
        )

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/models", self._handle_models)
        app.router.add_post("/generate", self._handle_generate)
        app.router.add_get("/stream/{job_id}", self._handle_stream)
        app.router.add_get("/jobs/{job_id}", self._handle_job_status)
        app.router.add_delete("/jobs/{job_id}", self._handle_cancel)
        app.router.add_get("/jobs/{job_id}/artifact", self._handle_artifact)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def start(self):
        """Start the server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info(f"SSE server started at http://{self.host}:{self.port}")

    async def stop(self):
        """Stop the server, cancelling running jobs."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("SSE server stopped")

    async def _on_cleanup(self, app: web.Application):
        tasks = [record.task for record in self._jobs.values() if record.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for client_id in list(self._clients.keys()):
            self._disconnect_client(client_id)

        await self.client.close()

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_index(self, request: web.Request) -> web.Response:
        """Handle index route - show usage info."""
        return web.Response(text=__doc__, content_type="text/plain")

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "connected_clients": len(self._clients),
            "active_jobs": sum(1 for record in self._jobs.values() if not record.finished),
            "tracked_jobs": len(self._jobs),
        })

    async def _handle_models(self, request: web.Request) -> web.Response:
        return web.json_response({"models": await self.client.available_models()})

    async def _handle_generate(self, request: web.Request) -> web.Response:
        """Validate the body and start the job in the background."""
        try:
            data = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        try:
            body = GenerateBody.model_validate(data)
        except BodyValidationError as e:
            return web.json_response(
                {
                    "error": "Invalid request body",
                    "details": [
                        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                        for err in e.errors()
                    ],
                },
                status=400,
            )

        job_id = body.job_id or str(uuid4())
        existing = self._jobs.get(job_id)
        if existing is not None and not existing.finished:
            return web.json_response({"error": f"Job {job_id} is already running"}, status=409)

        generation_request = body.to_request()

        # Surface bad models and inputs as 400 before any provider call
        try:
            registry = await self.client.get_registry()
            registry.get(generation_request.model).normalize(generation_request)
        except GenerationError as e:
            return web.json_response(e.to_dict(), status=e.status_code)

        if not self._make_room(job_id):
            return web.json_response(
                {"error": f"Too many running jobs (max {self.max_jobs})"},
                status=503,
            )

        logger.info(f"Starting job {job_id}: model={body.model}")

        tracker = JobProgressTracker(job_id, history_size=self.event_history_size)
        record = JobRecord(job_id=job_id, request=generation_request, tracker=tracker)
        tracker.on_event(lambda event: self._on_event(record, event))
        self._jobs[job_id] = record

        tracker.started(f"Starting generation with {body.model}")
        record.task = asyncio.create_task(self._run_generation(record))

        return web.json_response({
            "job_id": job_id,
            "status": "started",
            "stream_url": f"/stream/{job_id}",
            "status_url": f"/jobs/{job_id}",
            "result_url": f"/jobs/{job_id}/artifact",
        })

    async def _run_generation(self, record: JobRecord):
        """Run one job and record its outcome."""
        tracker = record.tracker
        try:
            result = await self.client.generate(
                record.request,
                job_id=record.job_id,
                cancel_event=record.cancel_event,
                on_progress=tracker,
            )
        except JobCancelledError as e:
            record.error = e
            record.state = JobState.CANCELLED
            tracker.cancelled(str(e), error=e.to_dict())
        except PollTimeoutError as e:
            record.error = e
            record.state = JobState.TIMED_OUT
            tracker.failed(f"Generation timed out: {e}", error=e.to_dict())
        except GenerationError as e:
            record.error = e
            record.state = JobState.FAILED
            tracker.failed(f"Generation failed: {e}", error=e.to_dict())
        except asyncio.CancelledError:
            record.error = JobCancelledError("Server shutting down")
            record.state = JobState.CANCELLED
            tracker.cancelled("Server shutting down", error=record.error.to_dict())
            raise
        else:
            record.result = result
            record.state = JobState.SUCCEEDED
            tracker.completed("Generation completed", data=result.to_dict())
        finally:
            record.finished_at = datetime.utcnow()
            record.task = None

    async def _handle_job_status(self, request: web.Request) -> web.Response:
        record = self._jobs.get(request.match_info["job_id"])
        if record is None:
            return web.json_response({"error": "Job not found"}, status=404)
        return web.json_response(record.to_dict())

    async def _handle_artifact(self, request: web.Request) -> web.Response:
        """Artifact bytes for a finished job; the error body for a failed one."""
        record = self._jobs.get(request.match_info["job_id"])
        if record is None:
            return web.json_response({"error": "Job not found"}, status=404)

        if not record.finished:
            return web.json_response(
                {"error": "Job is still running", "status": record.state.value},
                status=409,
            )

        if record.result is None:
            error = record.error or GenerationError("Job finished without a result")
            return web.json_response(error.to_dict(), status=error.status_code)

        result = record.result
        return web.Response(
            body=result.content,
            content_type=result.mime_type,
            headers={
                "X-Job-Id": record.job_id,
                "X-Duration-Seconds": str(result.duration_seconds),
            },
        )

    async def _handle_cancel(self, request: web.Request) -> web.Response:
        """Stop polling locally. The provider task is not aborted."""
        record = self._jobs.get(request.match_info["job_id"])
        if record is None:
            return web.json_response({"error": "Job not found"}, status=404)

        if record.finished:
            return web.json_response(
                {"error": "Job already finished", "status": record.state.value},
                status=409,
            )

        record.cancel_event.set()
        logger.info(f"Cancel requested for job {record.job_id}")
        return web.json_response({"job_id": record.job_id, "status": "cancelling"}, status=202)

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Handle SSE stream connection."""
        job_id = request.match_info["job_id"]
        record = self._jobs.get(job_id)
        if record is None:
            return web.json_response({"error": "Job not found"}, status=404)

        last_event_id = request.headers.get("Last-Event-ID")

        response = web.StreamResponse(
            status=200,
            reason="OK",
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            },
        )
        await response.prepare(request)

        # Register and snapshot history with no await in between so that
        # every event lands either in the replay or in the queue, never both.
        client = SSEClient(
            job_id=job_id,
            last_event_id=last_event_id,
            user_agent=request.headers.get("User-Agent", ""),
        )
        self._clients[client.client_id] = client
        self._job_clients.setdefault(job_id, set()).add(client.client_id)
        history = self._events_after(record.tracker.get_history(), last_event_id)

        logger.info(f"Client {client.client_id} connected for job {job_id}")

        try:
            connect_event = StreamEvent(
                job_id=job_id,
                event_type=EventType.INFO,
                message="Connected to progress stream",
                data={"client_id": client.client_id},
            )
            await response.write(connect_event.to_sse().encode())

            for event in history:
                await response.write(event.to_sse().encode())
                client.last_event_id = event.event_id
                if event.event_type.terminal:
                    return response

            while True:
                try:
                    event = await asyncio.wait_for(
                        client.queue.get(),
                        timeout=self.heartbeat_interval,
                    )
                except asyncio.TimeoutError:
                    await response.write(b": heartbeat\n\n")
                    continue

                # Disconnect signal
                if event is None:
                    break

                await response.write(event.to_sse().encode())
                client.last_event_id = event.event_id
                if event.event_type.terminal:
                    break

        except ConnectionResetError:
            logger.debug(f"Client {client.client_id} went away")
        finally:
            self._disconnect_client(client.client_id)

        return response

    # ------------------------------------------------------------------
    # Event fan-out
    # ------------------------------------------------------------------

    def _on_event(self, record: JobRecord, event: StreamEvent):
        if record.state == JobState.SUBMITTED and event.phase == Phase.POLLING:
            record.state = JobState.POLLING
        self.publish(record.job_id, event)

    def publish(self, job_id: str, event: StreamEvent):
        """Queue an event for every client watching a job."""
        for client_id in self._job_clients.get(job_id, set()):
            client = self._clients.get(client_id)
            if client:
                client.queue.put_nowait(event)

    def _events_after(self, events: list[StreamEvent], last_event_id: Optional[str]) -> list[StreamEvent]:
        """Events after last_event_id, or all of them if it is unknown."""
        if not last_event_id:
            return events
        for i, event in enumerate(events):
            if event.event_id == last_event_id:
                return events[i + 1:]
        return events

    def _disconnect_client(self, client_id: str):
        """Disconnect and cleanup client."""
        client = self._clients.pop(client_id, None)
        if client:
            job_id = client.job_id
            if job_id in self._job_clients:
                self._job_clients[job_id].discard(client_id)
                if not self._job_clients[job_id]:
                    del self._job_clients[job_id]
            client.queue.put_nowait(None)

            logger.info(f"Client {client_id} disconnected")

    def _make_room(self, job_id: str) -> bool:
        """Evict the oldest finished jobs until a new record fits."""
        self._jobs.pop(job_id, None)
        while len(self._jobs) >= self.max_jobs:
            oldest = next((jid for jid, record in self._jobs.items() if record.finished), None)
            if oldest is None:
                return False
            logger.debug(f"Evicting finished job {oldest}")
            del self._jobs[oldest]
        return True

    def get_client_count(self, job_id: str = None) -> int:
        """Get number of connected clients."""
        if job_id:
            return len(self._job_clients.get(job_id, set()))
        return len(self._clients)
