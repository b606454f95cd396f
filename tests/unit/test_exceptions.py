"""
Tests for webprobe exceptions
"""

import pytest

from webprobe.core.exceptions import (
    ConfigLoadError,
    ConfigurationError,
    EngineBusyError,
    InvalidConfigValueError,
    InvalidStateTransitionError,
    PlanningError,
    ResearchError,
    StateError,
    StateImportError,
    WebProbeError,
)


class TestWebProbeError:
    def test_basic_exception(self):
        exc = WebProbeError("Test error")

        assert exc.message == "Test error"
        assert exc.error_code == "WP_000"
        assert exc.recoverable is True
        assert exc.details == {}
        assert exc.suggestions == []
        assert exc.traceback is None

    def test_exception_with_cause(self):
        cause = ValueError("Original error")
        exc = WebProbeError("Wrapped error", cause=cause)

        assert exc.cause is cause
        assert exc.traceback is not None
        assert exc.to_dict()["cause"] == "Original error"

    def test_to_dict(self):
        exc = WebProbeError(
            "Test error",
            details={"count": 5},
            suggestions=["Retry"],
            context={"session_id": "session-1"},
        )

        result = exc.to_dict()

        assert result["error_code"] == "WP_000"
        assert result["details"]["count"] == 5
        assert result["suggestions"] == ["Retry"]
        assert result["context"]["session_id"] == "session-1"
        assert "timestamp" in result

    def test_str_representation(self):
        exc = WebProbeError("Test error", details={"x": 1}, suggestions=["Fix it"])

        s = str(exc)
        assert s.startswith("[WP_000] Test error")
        assert "Details: {'x': 1}" in s
        assert "Suggestions: Fix it" in s


class TestSubclasses:
    def test_hierarchy(self):
        assert issubclass(ConfigLoadError, ConfigurationError)
        assert issubclass(StateImportError, StateError)
        assert issubclass(EngineBusyError, ResearchError)
        assert issubclass(PlanningError, WebProbeError)

    def test_invalid_config_value(self):
        exc = InvalidConfigValueError("engine.parallelism", "lots", "int")

        assert exc.details == {
            "key": "engine.parallelism",
            "value": "lots",
            "expected_type": "int",
        }
        assert exc.error_category == "configuration"

    def test_state_import_is_unrecoverable(self):
        exc = StateImportError("cache", "missing key")

        assert exc.recoverable is False
        assert exc.severity == "critical"
        assert exc.details == {"component": "cache", "reason": "missing key"}
        assert exc.message == "Corrupted cache state"

    def test_state_transition(self):
        exc = InvalidStateTransitionError("completed", "executing")

        assert "completed -> executing" in exc.message

    def test_engine_busy(self):
        with pytest.raises(ResearchError) as exc_info:
            raise EngineBusyError("session-1")

        assert exc_info.value.details["session_id"] == "session-1"
        assert exc_info.value.error_code == "WP_RES_003"
