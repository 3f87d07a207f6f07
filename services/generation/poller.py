"""
Poll loop for submitted tasks.

States: SUBMITTED -> POLLING -> {SUCCEEDED | FAILED | TIMED_OUT | CANCELLED}

Each iteration calls adapter.poll_once exactly once and threads an explicit
PollState forward. Transient failures (5xx, network errors, ambiguous
payloads) count as a pending attempt; client errors and provider-reported
failures end the job on the same attempt. After max_attempts non-terminal
attempts the job times out without an extra status call.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from core.classifier import ErrorKind, classify
from core.config import PollingConfig
from core.errors import (
    GenerationError,
    JobCancelledError,
    PermanentPollError,
    PollTimeoutError,
    ProviderHTTPError,
    TransientPollError,
)

from .adapters.base import ProviderAdapter
from .models import Failed, JobState, Pending, PollOutcome, Succeeded, TaskHandle
from .progress import JobReporter, Phase, ProgressPlan

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]
ClockFunc = Callable[[], float]


@dataclass(frozen=True)
class PollState:
    """Explicit loop state, replaced (never mutated) on every attempt."""
    state: JobState = JobState.SUBMITTED
    attempt: int = 0
    elapsed_seconds: float = 0.0
    consecutive_transient: int = 0
    transient_total: int = 0
    last_error: Optional[TransientPollError] = None

    def after_attempt(self, elapsed: float) -> "PollState":
        return replace(
            self,
            state=JobState.POLLING,
            attempt=self.attempt + 1,
            elapsed_seconds=elapsed,
        )

    def after_transient(self, error: TransientPollError) -> "PollState":
        return replace(
            self,
            consecutive_transient=self.consecutive_transient + 1,
            transient_total=self.transient_total + 1,
            last_error=error,
        )

    def after_response(self) -> "PollState":
        return replace(self, consecutive_transient=0)

    def finished(self, state: JobState) -> "PollState":
        return replace(self, state=state)


class PollLoop:
    """
    Drives repeated status checks for one task.

    Usage:
        loop = PollLoop(adapter, reporter)
        outcome = await loop.run(handle)   # Succeeded, or raises
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        reporter: JobReporter,
        polling: Optional[PollingConfig] = None,
        plan: Optional[ProgressPlan] = None,
        sleep: SleepFunc = asyncio.sleep,
        clock: ClockFunc = time.monotonic,
    ):
        self.adapter = adapter
        self.reporter = reporter
        self.polling = polling or adapter.polling
        self.plan = plan or adapter.progress_plan
        self.sleep = sleep
        self.clock = clock
        self.state = PollState()

    async def run(
        self,
        handle: TaskHandle,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Succeeded:
        """
        Poll until a terminal outcome.

        Returns:
            The Succeeded outcome (its locator may still be None)

        Raises:
            PermanentPollError: Provider failure or client error while polling
            PollTimeoutError: max_attempts non-terminal attempts
            JobCancelledError: cancel_event was set
        """
        max_attempts = self.polling.max_attempts
        started = self.clock()
        state = PollState()
        kind = self.adapter.media_kind.value

        logger.info(f"Polling task: {handle.task_id} (max {max_attempts} x {self.polling.delay_seconds}s)")

        while state.attempt < max_attempts:
            self._check_cancelled(cancel_event, state, handle)

            attempt = state.attempt + 1
            logger.debug(f"Poll attempt {attempt}/{max_attempts}...")
            self.reporter.emit(
                self.plan.poll_percent(attempt),
                Phase.POLLING,
                f"Generating {kind}... ({attempt}/{max_attempts})",
            )

            outcome, error = await self._poll(handle)
            state = state.after_attempt(self.clock() - started)

            if isinstance(error, PermanentPollError):
                self.state = state.finished(JobState.FAILED)
                logger.error(f"Task {handle.task_id} poll failed on attempt {attempt}: {error}")
                raise error

            if error is not None:
                state = state.after_transient(error)
                logger.warning(
                    f"Transient poll error for {handle.task_id} "
                    f"(attempt {attempt}, consecutive {state.consecutive_transient}): {error}"
                )
                self._check_consecutive_limit(state, handle)
            else:
                state = state.after_response()

            if isinstance(outcome, Succeeded):
                self.state = state.finished(JobState.SUCCEEDED)
                logger.info(f"Task {handle.task_id} succeeded after {attempt} attempts")
                return outcome

            if isinstance(outcome, Failed):
                self.state = state.finished(JobState.FAILED)
                logger.error(f"Task {handle.task_id} failed: {outcome.reason}")
                raise PermanentPollError(outcome.reason, provider=self.adapter.provider)

            self.state = state
            if state.attempt < max_attempts:
                await self._wait(self.polling.delay_seconds, cancel_event)

        self.state = state.finished(JobState.TIMED_OUT)
        message = (
            f"{kind.capitalize()} generation timed out after "
            f"{_format_budget(self.polling.budget_seconds)} ({max_attempts} attempts)"
        )
        if state.last_error is not None:
            message += f"; last poll error: {state.last_error}"
        raise PollTimeoutError(message, provider=self.adapter.provider)

    async def _poll(self, handle: TaskHandle) -> tuple[PollOutcome, Optional[GenerationError]]:
        """One status check, with failures classified.

        Returns the outcome plus a TransientPollError (the attempt counts as
        pending) or a PermanentPollError (the job ends on this attempt).
        """
        try:
            return await self.adapter.poll_once(handle), None
        except ProviderHTTPError as e:
            if classify(status_code=e.status_code) == ErrorKind.PERMANENT:
                # Client errors won't self-resolve (auth, bad request)
                error = PermanentPollError(
                    f"{self.adapter.provider} poll failed ({e.status_code}): {e.body}",
                    error_code=e.error_code,
                    provider=self.adapter.provider,
                )
            else:
                error = TransientPollError(str(e), provider=self.adapter.provider)
            error.__cause__ = e
        except GenerationError:
            raise
        except Exception as e:
            if classify(error=e) == ErrorKind.PERMANENT:
                error = PermanentPollError(f"{self.adapter.provider} poll failed: {e}", provider=self.adapter.provider)
            else:
                error = TransientPollError(f"{type(e).__name__}: {e}", provider=self.adapter.provider)
            error.__cause__ = e
        return Pending(), error

    def _check_consecutive_limit(self, state: PollState, handle: TaskHandle) -> None:
        limit = self.polling.max_consecutive_transient
        if limit is not None and state.consecutive_transient >= limit:
            self.state = state.finished(JobState.FAILED)
            raise PermanentPollError(
                f"Too many consecutive errors while polling {handle.task_id}: {state.last_error}",
                error_code="POLL_ERROR",
                provider=self.adapter.provider,
            )

    def _check_cancelled(
        self,
        cancel_event: Optional[asyncio.Event],
        state: PollState,
        handle: TaskHandle,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            self.state = state.finished(JobState.CANCELLED)
            logger.info(f"Polling cancelled for {handle.task_id}; remote task is left running")
            raise JobCancelledError(
                f"Generation cancelled after {state.attempt} poll attempts",
                provider=self.adapter.provider,
            )

    async def _wait(self, delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        """Inter-poll delay that wakes early when cancelled."""
        if cancel_event is None:
            await self.sleep(delay)
            return

        sleeper = asyncio.ensure_future(self.sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()


def _format_budget(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds:g} seconds"
