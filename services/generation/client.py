"""
Generation client: one uniform job lifecycle over every registered backend.

    prepare -> submit -> poll -> download -> result

Progress is reported at each phase transition. The caller gets either a
full GenerationResult or exactly one GenerationError with a status code.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Optional, Union

import httpx

from core.config import Config, get_config
from core.errors import GenerationError

from .adapters.registry import AdapterRegistry, build_default_registry
from .assembler import ResultAssembler
from .models import GenerationRequest, GenerationResult
from .poller import ClockFunc, PollLoop, SleepFunc
from .progress import JobReporter, Phase, ProgressCallback, ProgressReporter

logger = logging.getLogger(__name__)


class GenerationClient:
    """
    Unified client for generation jobs.

    Usage:
        async with GenerationClient(on_progress=print_progress) as client:
            result = await client.generate(
                GenerationRequest(prompt="A fox running through snow", model="wan", duration_seconds=5)
            )
            Path("out.mp4").write_bytes(result.content)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[AdapterRegistry] = None,
        on_progress: Union[ProgressReporter, ProgressCallback, None] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc = time.monotonic,
    ):
        """
        Initialize the generation client.

        Args:
            config: Optional config override (defaults to environment)
            registry: Adapter registry (defaults to every built-in model)
            on_progress: Sink or callback (job_id, percentage, phase, message)
            http_client: Shared connection pool; created lazily if omitted
            sleep: Inter-poll delay function
            clock: Monotonic clock used for elapsed time
        """
        self.config = config or get_config()
        self.on_progress = on_progress
        self.sleep = sleep
        self.clock = clock

        self._http_client = http_client
        self._owns_client = http_client is None
        self._registry = registry

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=600.0)
        return self._http_client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def get_registry(self) -> AdapterRegistry:
        if self._registry is None:
            self._registry = build_default_registry(self.config, await self._get_client())
        return self._registry

    async def available_models(self) -> list[dict[str, Any]]:
        """Model catalog: id, provider, media kind, duration range."""
        registry = await self.get_registry()
        return registry.describe()

    async def generate(
        self,
        request: GenerationRequest,
        job_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Union[ProgressReporter, ProgressCallback, None] = None,
    ) -> GenerationResult:
        """
        Run one generation job to completion.

        Args:
            request: What to generate and with which model
            job_id: Identifier used for progress events (generated if None)
            cancel_event: Set it to stop polling locally
            on_progress: Per-call sink overriding the client's

        Returns:
            GenerationResult with the artifact bytes and usage

        Raises:
            GenerationError: Any failure, with status_code 400, 500 or 504
        """
        job_id = job_id or str(uuid.uuid4())
        reporter = JobReporter(job_id, on_progress or self.on_progress)

        try:
            registry = await self.get_registry()
            adapter = registry.get(request.model)
        except GenerationError as e:
            logger.error(f"Generation failed: {e}")
            reporter.failed(f"Failed: {e}")
            raise

        plan = adapter.progress_plan
        kind = adapter.media_kind.value

        try:
            reporter.emit(plan.start, Phase.STARTING, f"Starting {kind} generation with {request.model}")

            reporter.emit(plan.prepare, Phase.PREPARING, "Preparing request...")
            prepared = await adapter.prepare(request)
            logger.info(
                f"{adapter.provider} {prepared.mode} generation: model={request.model}, "
                f"duration={prepared.duration_seconds}s, resolution={prepared.resolution}, "
                f"aspect={prepared.aspect_ratio}, audio={prepared.generate_audio}"
            )

            reporter.emit(plan.submit, Phase.SUBMITTING, f"Submitting to {adapter.provider}...")
            handle = await adapter.submit(prepared)
            reporter.emit(plan.submitted, Phase.SUBMITTING, f"Task submitted: {handle.task_id}")

            poller = PollLoop(adapter, reporter, plan=plan, sleep=self.sleep, clock=self.clock)
            outcome = await poller.run(handle, cancel_event=cancel_event)

            assembler = ResultAssembler(adapter, reporter, plan=plan)
            result = await assembler.assemble(prepared, handle, outcome)

            reporter.emit(plan.complete, Phase.COMPLETE, "Generation complete")
            logger.info(
                f"Job {job_id} complete: {result.size_bytes} bytes, "
                f"{result.duration_seconds}s ({adapter.provider}/{handle.task_id})"
            )
            return result

        except GenerationError as e:
            if e.provider is None:
                e.provider = adapter.provider
            logger.error(f"Generation failed: {e}")
            reporter.failed(f"Failed: {e}")
            raise

        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            logger.error(f"Generation failed: {error_msg}")
            reporter.failed(f"Failed: {error_msg}")
            raise GenerationError(
                error_msg,
                error_code="INTERNAL_ERROR",
                provider=adapter.provider,
            ) from e
