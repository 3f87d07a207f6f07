"""
Progress reporting tests.
"""

import logging

from services.generation.models import ProgressEvent
from services.generation.progress import (
    DEFAULT_PLAN,
    CallbackReporter,
    JobReporter,
    LoggingReporter,
    Phase,
    ProgressPlan,
)


class TestProgressPlan:
    """Poll progress formula."""

    def test_poll_percent_formula(self):
        assert DEFAULT_PLAN.poll_percent(1) == 50
        assert DEFAULT_PLAN.poll_percent(2) == 51
        assert DEFAULT_PLAN.poll_percent(10) == 57
        assert DEFAULT_PLAN.poll_percent(100) == 90

    def test_poll_percent_caps_at_poll_end(self):
        assert DEFAULT_PLAN.poll_percent(10_000) == 90

    def test_poll_percent_non_decreasing(self):
        values = [DEFAULT_PLAN.poll_percent(n) for n in range(1, 200)]
        assert values == sorted(values)

    def test_custom_plan(self):
        plan = ProgressPlan(poll_start=10, poll_end=20, poll_step=1.0)
        assert plan.poll_percent(3) == 13
        assert plan.poll_percent(50) == 20


class TestJobReporter:
    """Per-job wrapper around a sink."""

    def test_forwards_to_sink(self, sink):
        reporter = JobReporter("job-1", sink)
        reporter.emit(20, Phase.STARTING, "Starting")
        assert sink.events == [("job-1", 20.0, "starting", "Starting")]

    def test_percentage_never_decreases(self, sink):
        reporter = JobReporter("job-1", sink)
        reporter.emit(50, Phase.POLLING, "a")
        reporter.emit(35, Phase.PREPARING, "b")
        reporter.emit(60, Phase.POLLING, "c")
        assert sink.percentages == [50.0, 50.0, 60.0]

    def test_percentage_clamped(self, sink):
        reporter = JobReporter("job-1", sink)
        reporter.emit(-5, Phase.STARTING, "a")
        reporter.emit(150, Phase.COMPLETE, "b")
        assert sink.percentages == [0.0, 100.0]

    def test_sink_errors_are_swallowed(self, caplog):
        class BrokenSink:
            def report(self, job_id, percentage, phase, message):
                raise RuntimeError("sink down")

        reporter = JobReporter("job-1", BrokenSink())
        with caplog.at_level(logging.WARNING):
            reporter.emit(20, Phase.STARTING, "Starting")

        assert reporter.percentage == 20.0
        assert "Progress callback failed: sink down" in caplog.text

    def test_plain_callable_is_wrapped(self):
        seen = []
        reporter = JobReporter("job-2", lambda *args: seen.append(args))
        reporter.emit(45, Phase.SUBMITTING, "Submitting")

        assert isinstance(reporter.sink, CallbackReporter)
        assert seen == [("job-2", 45.0, "submitting", "Submitting")]

    def test_failed_reports_last_percentage(self, sink):
        reporter = JobReporter("job-1", sink)
        reporter.emit(52, Phase.POLLING, "polling")
        reporter.failed("Failed: boom")
        assert sink.events[-1] == ("job-1", 52.0, "failed", "Failed: boom")

    def test_no_sink(self):
        reporter = JobReporter("job-1")
        reporter.emit(20, Phase.STARTING, "Starting")
        assert reporter.percentage == 20.0
        assert reporter.last_event == ProgressEvent("job-1", 20.0, "starting", "Starting")


class TestLoggingReporter:
    def test_logs_progress(self, caplog):
        with caplog.at_level(logging.INFO):
            LoggingReporter().report("job-9", 45, Phase.SUBMITTING, "Submitting")
        assert "[job-9]" in caplog.text
        assert "submitting: Submitting" in caplog.text
