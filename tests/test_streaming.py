"""
Progress tracker and CLI rendering tests.
"""

import io
import json

from cli.progress_monitor import (
    Colors,
    ProgressMonitor,
    ProgressPrinter,
    format_duration,
    format_event,
    parse_sse_line,
    progress_bar,
)
from services.streaming import EventType, JobProgressTracker, StreamEvent


class TestJobProgressTracker:
    """Event history and lifecycle events."""

    def test_report_emits_progress_events(self):
        tracker = JobProgressTracker("job-1")
        seen = []
        tracker.on_event(seen.append)

        tracker.report("job-1", 35.0, "preparing", "Preparing request...")

        assert len(seen) == 1
        event = seen[0]
        assert event.event_type == EventType.PROGRESS
        assert event.job_id == "job-1"
        assert event.percentage == 35.0
        assert event.phase == "preparing"
        assert tracker.percentage == 35.0

    def test_single_terminal_event(self):
        tracker = JobProgressTracker("job-1")
        tracker.started()
        tracker.completed("done", data={"size_bytes": 10})
        tracker.failed("late failure")
        tracker.report("job-1", 99.0, "polling", "late report")

        types = [event.event_type for event in tracker.get_history()]
        assert types == [EventType.STARTED, EventType.COMPLETED]
        assert tracker.finished

    def test_failed_carries_error_body(self):
        tracker = JobProgressTracker("job-1")
        tracker.failed("Generation failed", error={"status_code": 500, "error_code": "JOB_FAILED"})

        event = tracker.get_history()[-1]
        assert event.event_type.terminal
        assert event.data == {"error": {"status_code": 500, "error_code": "JOB_FAILED"}}

    def test_history_is_bounded(self):
        tracker = JobProgressTracker("job-1", history_size=5)
        for i in range(12):
            tracker.report("job-1", float(i), "polling", f"attempt {i}")

        history = tracker.get_history()
        assert len(history) == 5
        assert history[0].message == "attempt 7"

    def test_callback_errors_are_contained(self):
        tracker = JobProgressTracker("job-1")

        def broken(event):
            raise RuntimeError("subscriber crashed")

        tracker.on_event(broken)
        tracker.report("job-1", 50.0, "polling", "still going")

        assert len(tracker.get_history()) == 1


class TestStreamEvent:
    def test_sse_format(self):
        event = StreamEvent(event_id="evt-1", job_id="job-1", event_type=EventType.PROGRESS, percentage=51.25)

        text = event.to_sse()

        assert text.startswith("id: evt-1\nevent: progress\ndata: ")
        assert text.endswith("\n\n")
        payload = json.loads(text.split("data: ", 1)[1])
        assert payload["percentage"] == 51.2
        assert "data" not in payload

    def test_dict_round_trip(self):
        event = StreamEvent(job_id="job-1", event_type=EventType.FAILED, message="boom", data={"error": {"x": 1}})
        restored = StreamEvent.from_dict(event.to_dict())
        assert restored.event_type == EventType.FAILED
        assert restored.data == {"error": {"x": 1}}
        assert restored.timestamp == event.timestamp


class TestCliRendering:
    def test_parse_sse_line(self):
        assert parse_sse_line('data: {"type": "progress", "percentage": 50}\n') == {
            "type": "progress", "percentage": 50,
        }
        assert parse_sse_line("event: progress") is None
        assert parse_sse_line(": heartbeat") is None
        assert parse_sse_line("data: not-json") is None
        assert parse_sse_line("data: [1, 2]") is None

    def test_progress_bar_is_clamped(self):
        assert progress_bar(150).endswith("100.0%")
        assert progress_bar(-5).endswith("  0.0%")

    def test_format_duration(self):
        assert format_duration(75) == "01:15"
        assert format_duration(3725) == "1:02:05"
        assert format_duration(-1) == "--:--"

    def test_progress_line(self):
        line = format_event({"type": "progress", "phase": "polling", "percentage": 51, "message": "Generating video"})
        assert line.startswith(Colors.CLEAR_LINE)
        assert "[polling]" in line
        assert "51.0%" in line

    def test_failed_event_shows_error(self):
        line = format_event({
            "type": "failed",
            "message": "Generation failed",
            "data": {"error": {"status_code": 504, "error_code": "POLL_TIMEOUT"}},
        })
        assert "Generation failed" in line
        assert "Error 504: POLL_TIMEOUT" in line

    def test_completed_event_shows_artifact(self):
        line = format_event({
            "type": "completed",
            "message": "Generation completed",
            "data": {"mime_type": "video/mp4", "duration_seconds": 5, "size_bytes": 2 * 1024 * 1024},
        })
        assert "video/mp4 | 5s | 2.00 MB" in line

    def test_printer(self):
        stream = io.StringIO()
        printer = ProgressPrinter(stream)

        printer.report("job-1", 45.0, "submitting", "Submitting to dashscope...")
        printer.report("job-1", 100.0, "complete", "Generation complete")

        output = stream.getvalue()
        assert "Submitting to dashscope..." in output
        assert output.endswith("\n")
        assert output.count("\n") == 1

    def test_monitor_stops_on_terminal_event(self, capsys):
        monitor = ProgressMonitor("job-1", server_url="http://localhost:8765/")
        monitor._running = True
        assert monitor.stream_url == "http://localhost:8765/stream/job-1"

        monitor.handle_event({"type": "progress", "percentage": 50, "phase": "polling", "message": "m"})
        assert monitor.final_event is None

        monitor.handle_event({"type": "cancelled", "message": "Generation cancelled"})
        assert monitor.final_event.event_type == EventType.CANCELLED
        assert monitor.final_event.message == "Generation cancelled"
        assert not monitor._running
        assert "Generation cancelled" in capsys.readouterr().out

    def test_monitor_rebuilds_server_events(self, capsys):
        tracker = JobProgressTracker("job-9")
        tracker.report("job-9", 40.0, "polling", "Generating video... (3/60)")
        tracker.failed("Generation failed", error={"status_code": 504, "error_code": "POLL_TIMEOUT"})
        payloads = [json.loads(event.to_sse().split("data: ", 1)[1]) for event in tracker.get_history()]

        monitor = ProgressMonitor("job-9")
        monitor._running = True
        for payload in payloads:
            monitor.handle_event(payload)

        final = monitor.final_event
        assert final.event_id == tracker.get_history()[-1].event_id
        assert final.event_type == EventType.FAILED
        assert final.data["error"]["error_code"] == "POLL_TIMEOUT"
        assert monitor._last_percentage == 40.0
        assert "Error 504: POLL_TIMEOUT" in capsys.readouterr().out
