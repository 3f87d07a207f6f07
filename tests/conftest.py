"""
Shared fixtures: fake provider HTTP, fake clock/sleep and recording sinks.
"""

import json
import os
import sys
from typing import Callable, Union

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import DownloadConfig, PollingConfig, ProviderConfig  # noqa: E402

Responder = Union[httpx.Response, list, Callable[[httpx.Request], httpx.Response]]


class FakeProvider:
    """
    Routing handler for httpx.MockTransport.

    Routes are keyed by (method, url without query). A list responder is
    consumed in order and its last entry repeats; an exception instance in
    the list is raised instead of returned.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Responder] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, responder: Responder) -> "FakeProvider":
        self.routes[(method.upper(), url)] = responder
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        responder = self.routes.get(key)
        if responder is None:
            return httpx.Response(404, json={"error": f"no route for {key}"})

        if isinstance(responder, list):
            item = responder.pop(0) if len(responder) > 1 else responder[0]
        else:
            item = responder

        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        # Fresh copy so a repeated responder is never a consumed response
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def calls(self, method: str, url: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method.upper() and str(r.url).split("?")[0] == url
        )

    def json_body(self, method: str, url: str, index: int = 0) -> dict:
        matching = [
            r for r in self.requests
            if r.method == method.upper() and str(r.url).split("?")[0] == url
        ]
        return json.loads(matching[index].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and advances a clock."""

    def __init__(self, clock: "FakeClock" = None):
        self.delays: list[float] = []
        self.clock = clock
        self.on_sleep: Callable[[int], None] = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.now += delay
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class RecordingSink:
    """Progress sink that keeps every report."""

    def __init__(self):
        self.events: list[tuple[str, float, str, str]] = []

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        self.events.append((job_id, percentage, phase, message))

    @property
    def percentages(self) -> list[float]:
        return [event[1] for event in self.events]

    @property
    def phases(self) -> list[str]:
        return [event[2] for event in self.events]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(fake_clock) -> RecordingSleep:
    return RecordingSleep(fake_clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def download_config() -> DownloadConfig:
    # No backoff waits in tests
    return DownloadConfig(timeout_seconds=5.0, image_retry_attempts=3, image_retry_multiplier=0)


@pytest.fixture
def make_provider_config():
    def _make(
        base_url: str,
        max_attempts: int = 3,
        delay_seconds: float = 5.0,
        api_key: str = "test-key",
        max_consecutive_transient: int = None,
    ) -> ProviderConfig:
        return ProviderConfig(
            api_key=api_key,
            base_url=base_url,
            polling=PollingConfig(
                delay_seconds=delay_seconds,
                max_attempts=max_attempts,
                max_consecutive_transient=max_consecutive_transient,
            ),
        )
    return _make
