"""
Tests for telemetry, progress state and run control
"""

import pytest

from webprobe.core.exceptions import InvalidStateTransitionError
from webprobe.observability.telemetry import (
    CommandType,
    ExecutionStatus,
    StopReason,
    TelemetryEngine,
    TelemetryEventType,
)


@pytest.fixture
def executing(telemetry):
    telemetry.start("3 questions, 2 domains")
    telemetry.begin_execution()
    return telemetry


class TestStatus:
    """Tests for the status state machine"""

    def test_lifecycle(self, telemetry):
        assert telemetry.status == ExecutionStatus.IDLE

        telemetry.start("planning")
        assert telemetry.status == ExecutionStatus.PLANNING

        telemetry.begin_execution("1 question")
        assert telemetry.status == ExecutionStatus.EXECUTING
        assert telemetry.get_progress().plan_summary == "1 question"

    def test_illegal_transition(self, telemetry):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            telemetry.update_status(ExecutionStatus.COMPLETED)

        assert exc_info.value.details == {"current": "idle", "target": "completed"}

    def test_status_changes_are_events(self, executing):
        changes = executing.get_events(TelemetryEventType.STATUS_CHANGE)

        assert [e.data["to"] for e in changes] == ["planning", "executing"]


class TestProgress:
    """Tests for progress counters"""

    def test_page_loads_counted(self, executing, metrics):
        executing.record_page_load("https://acme.com", success=True, duration_ms=120)
        executing.record_page_load("https://acme.com/about", success=False, error="timeout")

        assert executing.get_progress().pages_visited == 2
        assert metrics.sample("webprobe_page_loads_total", {"outcome": "success"}) == 1.0
        assert metrics.sample("webprobe_page_loads_total", {"outcome": "failure"}) == 1.0

    def test_claims_counted(self, executing, metrics):
        executing.record_claim_found("claim-1", "price: $10", 0.5)

        assert executing.get_progress().claims_found == 1
        assert metrics.sample("webprobe_claims_total") == 1.0

    def test_progress_is_a_copy(self, executing):
        progress = executing.get_progress()
        progress.pages_visited = 99

        assert executing.get_progress().pages_visited == 0

    def test_elapsed_time(self, executing, clock):
        clock.advance(2.5)

        assert executing.get_progress().elapsed_ms == pytest.approx(2500)

    def test_confidence_clamped(self, executing):
        executing.update_confidence(1.5)

        assert executing.get_progress().confidence == 1.0

    def test_path_termination_decrements_active_paths(self, executing):
        executing.update_active_paths(2)
        executing.record_path_terminated("path-1", "3 consecutive failures")

        assert executing.get_progress().active_paths == 1

    def test_strategy_shift_sets_phase(self, executing):
        executing.record_strategy_shift("verification", "Primary sources exhausted")

        assert executing.get_progress().current_phase == "verification"

    def test_progress_subscription(self, executing):
        subscription = executing.subscribe_progress(maxsize=10)
        executing.record_page_load("https://acme.com", success=True)

        snapshots = subscription.drain()

        assert snapshots[-1].pages_visited == 1


class TestControl:
    """Tests for pause, resume and stop"""

    def test_pause_requires_executing(self, telemetry):
        assert telemetry.pause() is False
        assert telemetry.status == ExecutionStatus.IDLE

    def test_pause_and_resume(self, executing):
        assert executing.pause("operator") is True
        assert executing.is_paused() is True
        assert executing.pause() is False

        assert executing.resume() is True
        assert executing.status == ExecutionStatus.EXECUTING
        assert executing.resume() is False

        commands = [c.type for c in executing.get_pending_commands()]
        assert commands == [CommandType.PAUSE, CommandType.RESUME]
        assert executing.get_pending_commands() == []

    def test_stop_emits_exactly_one_condition(self, executing):
        stops = executing.subscribe_stop()

        first = executing.stop("user requested")
        second = executing.stop("again", StopReason.TIME_BUDGET)

        assert second is first
        assert first.reason == StopReason.USER_STOP
        assert len(stops.drain()) == 1
        assert executing.status == ExecutionStatus.COMPLETED
        assert executing.has_pending_stop() is True

    def test_stop_from_paused(self, executing):
        executing.pause()

        condition = executing.stop("done")

        assert condition.reason == StopReason.USER_STOP
        assert executing.status == ExecutionStatus.COMPLETED

    def test_stop_from_idle(self, telemetry):
        telemetry.stop()

        assert telemetry.status == ExecutionStatus.COMPLETED

    def test_stop_carries_reason_and_confidence(self, executing):
        executing.update_confidence(0.82)

        condition = executing.stop("Confidence reached", StopReason.CONFIDENCE_REACHED)

        assert condition.reason == StopReason.CONFIDENCE_REACHED
        assert condition.confidence == pytest.approx(0.82)
        assert condition.message == "Confidence reached"
        assert executing.get_stop_condition() is condition

    def test_stop_queues_command(self, executing):
        commands = executing.subscribe_commands()

        executing.stop()

        assert [c.type for c in commands.drain()] == [CommandType.STOP]

    def test_stop_latency_observed(self, executing, metrics):
        executing.stop()

        assert metrics.sample("webprobe_stop_latency_seconds_count") == 1.0
        assert executing.get_stats()["stop_latency_ms"] is not None

    def test_pause_after_stop_is_rejected(self, executing):
        executing.stop()

        assert executing.pause() is False
        assert executing.resume() is False


class TestErrors:
    """Tests for error reporting"""

    def test_recoverable_error_keeps_running(self, executing):
        errors = executing.subscribe_errors()

        executing.record_error("Navigation failed", recoverable=True, details={"url": "x"})

        assert executing.status == ExecutionStatus.EXECUTING
        assert errors.drain() == []
        assert executing.get_events(TelemetryEventType.ERROR)[0].data["url"] == "x"

    def test_unrecoverable_error_fails_run(self, executing, metrics):
        errors = executing.subscribe_errors()

        executing.record_error("Corrupted state", recoverable=False)

        assert executing.status == ExecutionStatus.FAILED
        received = errors.drain()
        assert len(received) == 1
        assert received[0].recoverable is False
        assert metrics.sample("webprobe_errors_total", {"recoverable": "false"}) == 1.0

    def test_stop_after_failure_reports_error(self, executing):
        executing.record_error("boom", recoverable=False)

        condition = executing.stop("cleanup")

        assert condition.reason == StopReason.ERROR
        assert executing.status == ExecutionStatus.FAILED

    def test_unrecoverable_error_while_idle_keeps_status(self, telemetry):
        telemetry.record_error("bad snapshot", recoverable=False)

        assert telemetry.status == ExecutionStatus.IDLE


class TestEvents:
    """Tests for the event log and subscriptions"""

    def test_filter_and_limit(self, executing):
        for i in range(5):
            executing.record_page_load(f"https://acme.com/{i}", success=True)
        executing.record_blocked("https://pinterest.com", "deny list")

        loads = executing.get_events(TelemetryEventType.PAGE_LOAD, limit=2)

        assert [e.data["url"] for e in loads] == ["https://acme.com/3", "https://acme.com/4"]
        assert len(executing.get_events(TelemetryEventType.BLOCKED)) == 1

    def test_slow_subscriber_drops_oldest(self, clock):
        telemetry = TelemetryEngine(clock=clock)
        subscription = telemetry.subscribe_events(maxsize=2)

        for i in range(3):
            telemetry.record_blocked(f"https://x.example/{i}")

        received = subscription.drain()
        assert [e.data["url"] for e in received] == ["https://x.example/1", "https://x.example/2"]
        assert subscription.dropped == 1

    def test_failing_callback_does_not_break_publishing(self, executing):
        def broken(event):
            raise RuntimeError("subscriber bug")

        executing.subscribe_events(callback=broken)
        good = executing.subscribe_events()

        executing.record_extraction("https://acme.com", "pricing", 1)

        assert len(good.drain()) == 1

    def test_cleanup_drops_old_events(self, executing, clock):
        executing.record_blocked("https://x.example")
        clock.advance(executing.config.max_event_age_seconds + 1)
        executing.record_blocked("https://y.example")

        removed = executing.cleanup()

        assert removed == 3
        assert [e.data["url"] for e in executing.get_events()] == ["https://y.example"]

    def test_export(self, executing):
        executing.stop("done")

        exported = executing.export()

        assert exported["session_id"] == "session-test"
        assert exported["stop_condition"]["reason"] == "user_stop"
        assert exported["progress"]["status"] == "completed"

    def test_stats(self, executing):
        executing.subscribe_events()
        executing.record_page_load("https://acme.com", success=True)

        stats = executing.get_stats()

        assert stats["events_by_type"]["page_load"] == 1
        assert stats["subscribers"]["events"] == 1
