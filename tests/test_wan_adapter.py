"""
Wan (DashScope) end-to-end job tests through GenerationClient.

The provider is faked with httpx.MockTransport; polling uses a recording
sleep so no test waits in real time.

Run with:
    python -m pytest tests/test_wan_adapter.py -v
"""

import httpx
import pytest

from core.config import Config
from core.errors import (
    GenerationError,
    MissingArtifactError,
    PermanentPollError,
    PollTimeoutError,
    SubmissionError,
    ValidationError,
)
from services.generation import GenerationClient, GenerationRequest
from services.generation.adapters import AdapterRegistry, WanAdapter

BASE = "https://dashscope.test/api/v1"
SUBMIT_URL = f"{BASE}/services/aigc/video-generation/video-synthesis"
TASK_URL = f"{BASE}/tasks/task-123"
VIDEO_URL = "https://oss.test/out/video.mp4"
IMAGE_URL = "https://images.test/start.png"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def task_created():
    return httpx.Response(200, json={
        "request_id": "req-1",
        "output": {"task_id": "task-123", "task_status": "PENDING"},
    })


def task_status(status, **extra):
    body = {"request_id": "req-2", "output": {"task_id": "task-123", "task_status": status}}
    body["output"].update(extra.pop("output", {}))
    body.update(extra)
    return httpx.Response(200, json=body)


def succeeded(video_duration=None, video_url=VIDEO_URL):
    output = {"video_url": video_url} if video_url else {}
    usage = {"video_duration": video_duration, "SR": 720} if video_duration is not None else {}
    return task_status("SUCCEEDED", output=output, usage=usage)


@pytest.fixture
def wan_setup(fake_provider, fake_sleep, fake_clock, sink, make_provider_config, download_config):
    """Client with only the Wan adapter registered against the fake provider."""
    http = fake_provider.client()
    registry = AdapterRegistry()
    adapter = WanAdapter(make_provider_config(BASE, max_attempts=3), http, "wan", download_config)
    registry.register(adapter)
    client = GenerationClient(
        config=Config(),
        registry=registry,
        on_progress=sink,
        http_client=http,
        sleep=fake_sleep,
        clock=fake_clock,
    )
    return client, adapter


class TestWanScenarios:
    """Lifecycle scenarios against the DashScope task API."""

    @pytest.mark.asyncio
    async def test_short_duration_is_clamped_to_minimum(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=2))
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        result = await client.generate(GenerationRequest(prompt="a cat", model="wan", duration_seconds=1))

        payload = fake_provider.json_body("POST", SUBMIT_URL)
        assert payload["parameters"]["duration"] == 2
        assert result.duration_seconds == 2

    @pytest.mark.asyncio
    async def test_actual_duration_overrides_requested(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, [task_status("RUNNING"), succeeded(video_duration=7)])
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        result = await client.generate(GenerationRequest(prompt="a cat", model="wan", duration_seconds=5))

        assert result.content == VIDEO_BYTES
        assert result.mime_type == "video/mp4"
        assert result.duration_seconds == 7
        assert result.usage.video_seconds == 7
        # Audio defaults to enabled on Wan
        assert result.usage.audio_seconds == 7
        # DashScope reports SR as a bare number
        assert result.usage.resolution == "720p"
        assert result.task_id == "task-123"
        assert result.provider == "dashscope"

    @pytest.mark.asyncio
    async def test_provider_failure_is_500_with_reason(self, wan_setup, fake_provider, fake_sleep):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, [
            task_status("FAILED", output={"message": "unsafe content"}),
            succeeded(video_duration=5),
        ])

        with pytest.raises(PermanentPollError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 500
        assert "unsafe content" in exc_info.value.message
        assert fake_provider.calls("GET", TASK_URL) == 1
        assert fake_provider.calls("GET", VIDEO_URL) == 0

    @pytest.mark.asyncio
    async def test_never_finishing_job_times_out(self, wan_setup, fake_provider, fake_sleep):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, task_status("RUNNING"))

        with pytest.raises(PollTimeoutError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 504
        assert fake_provider.calls("GET", TASK_URL) == 3
        assert fake_sleep.delays == [5.0, 5.0]


class TestWanPayload:
    """Request body construction."""

    @pytest.mark.asyncio
    async def test_text_to_video_payload(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=5))
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        await client.generate(GenerationRequest(
            prompt="a cat", model="wan", resolution="1080p", audio=False,
            negative_prompt="blurry", seed=42,
        ))

        request = next(r for r in fake_provider.requests if r.method == "POST")
        assert request.headers["X-DashScope-Async"] == "enable"
        assert request.headers["Authorization"] == "Bearer test-key"

        payload = fake_provider.json_body("POST", SUBMIT_URL)
        assert payload["model"] == "wan2.6-t2v"
        assert payload["input"] == {"prompt": "a cat", "negative_prompt": "blurry"}
        assert payload["parameters"] == {
            "resolution": "1080P",
            "duration": 5,
            "prompt_extend": True,
            "audio": False,
            "seed": 42,
        }

    @pytest.mark.asyncio
    async def test_image_to_video_inlines_image(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("GET", IMAGE_URL, httpx.Response(
            200, content=PNG_BYTES, headers={"content-type": "image/png"},
        ))
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=5))
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        await client.generate(GenerationRequest(
            prompt="make it move", model="wan", image=[IMAGE_URL, "https://images.test/ignored.png"],
        ))

        payload = fake_provider.json_body("POST", SUBMIT_URL)
        assert payload["model"] == "wan2.6-i2v-flash"
        assert payload["input"]["img_url"].startswith("data:image/png;base64,")
        assert fake_provider.calls("GET", "https://images.test/ignored.png") == 0

    @pytest.mark.asyncio
    async def test_no_audio_seconds_when_audio_disabled(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=5))
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        result = await client.generate(GenerationRequest(prompt="a cat", model="wan", audio=False))

        assert result.usage.video_seconds == 5
        assert result.usage.audio_seconds == 0


class TestWanErrors:
    """Submission, polling and download failures."""

    @pytest.mark.asyncio
    async def test_invalid_image_scheme_rejected_before_network(self, wan_setup, fake_provider):
        client, _ = wan_setup

        with pytest.raises(ValidationError) as exc_info:
            await client.generate(GenerationRequest(prompt="x", model="wan", image="ftp://images.test/a.png"))

        assert exc_info.value.status_code == 400
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_before_network(
        self, fake_provider, fake_sleep, make_provider_config, download_config,
    ):
        http = fake_provider.client()
        registry = AdapterRegistry()
        registry.register(WanAdapter(make_provider_config(BASE, api_key=""), http, "wan", download_config))
        client = GenerationClient(config=Config(), registry=registry, http_client=http, sleep=fake_sleep)

        with pytest.raises(SubmissionError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "MISSING_CREDENTIALS"
        assert fake_provider.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider_status,caller_status", [(400, 400), (401, 400), (500, 500), (503, 500)])
    async def test_submission_http_errors(self, wan_setup, fake_provider, provider_status, caller_status):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, httpx.Response(provider_status, json={"code": "Bad", "message": "nope"}))

        with pytest.raises(SubmissionError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == caller_status
        assert fake_provider.calls("POST", SUBMIT_URL) == 1

    @pytest.mark.asyncio
    async def test_submission_error_code_in_body(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, httpx.Response(200, json={
            "code": "InvalidParameter", "message": "duration out of range",
        }))

        with pytest.raises(SubmissionError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "InvalidParameter"

    @pytest.mark.asyncio
    async def test_missing_task_id(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, httpx.Response(200, json={"output": {}}))

        with pytest.raises(SubmissionError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "NO_TASK_ID"

    @pytest.mark.asyncio
    async def test_poll_client_error_fails_fast(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, httpx.Response(403, text="forbidden"))

        with pytest.raises(PermanentPollError):
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert fake_provider.calls("GET", TASK_URL) == 1

    @pytest.mark.asyncio
    async def test_poll_server_error_keeps_polling(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, [
            httpx.Response(502, text="bad gateway"),
            httpx.ConnectError("reset"),
            succeeded(video_duration=5),
        ])
        fake_provider.add("GET", VIDEO_URL, httpx.Response(200, content=VIDEO_BYTES))

        result = await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert result.duration_seconds == 5
        assert fake_provider.calls("GET", TASK_URL) == 3

    @pytest.mark.asyncio
    async def test_success_without_url_is_missing_artifact(self, wan_setup, fake_provider):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=5, video_url=None))

        with pytest.raises(MissingArtifactError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(404),
        httpx.Response(200, content=b""),
    ])
    async def test_download_failures(self, wan_setup, fake_provider, response):
        client, _ = wan_setup
        fake_provider.add("POST", SUBMIT_URL, task_created())
        fake_provider.add("GET", TASK_URL, succeeded(video_duration=5))
        fake_provider.add("GET", VIDEO_URL, response)

        with pytest.raises(GenerationError) as exc_info:
            await client.generate(GenerationRequest(prompt="a cat", model="wan"))

        assert exc_info.value.error_code.startswith("DOWNLOAD")
        assert exc_info.value.status_code == 500
        # Downloads are not retried
        assert fake_provider.calls("GET", VIDEO_URL) == 1
