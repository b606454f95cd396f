"""
webprobe Exceptions
===================

Exception hierarchy for the research core.

Only structural or programmer-error conditions are raised: corrupted
persisted state, illegal status transitions, bad configuration. Everything
the open web can do wrong is reported through telemetry instead.
"""

from __future__ import annotations

import traceback
from datetime import datetime
from typing import Any

# =============================================================================
# Base Exception
# =============================================================================


class WebProbeError(Exception):
    """
    Base exception for all webprobe errors.

    Carries:
    - a stable error code
    - structured details
    - suggestions for the operator
    - the wrapped cause, when there is one
    """

    error_code: str = "WP_000"
    error_category: str = "general"
    severity: str = "error"  # debug, info, warning, error, critical

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        cause: Exception | None = None,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []
        self.cause = cause
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback = traceback.format_exc() if cause else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and telemetry payloads."""
        return {
            "error_code": self.error_code,
            "error_category": self.error_category,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(WebProbeError):
    """Invalid or unusable configuration."""

    error_code = "WP_CFG_001"
    error_category = "configuration"


class InvalidConfigValueError(ConfigurationError):
    error_code = "WP_CFG_002"

    def __init__(self, key: str, value: Any, expected_type: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Invalid configuration value for '{key}'",
            details={"key": key, "value": str(value), "expected_type": expected_type},
            suggestions=[f"Provide a valid {expected_type} value for '{key}'"],
            **kwargs,
        )


class ConfigLoadError(ConfigurationError):
    error_code = "WP_CFG_003"

    def __init__(self, config_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Failed to load configuration from '{config_path}'",
            details={"path": config_path, "reason": reason},
            suggestions=[
                "Check if the file exists",
                "Verify the file format (YAML/JSON)",
            ],
            **kwargs,
        )


# =============================================================================
# State Exceptions
# =============================================================================


class StateError(WebProbeError):
    """Problems with engine state."""

    error_code = "WP_STA_001"
    error_category = "state"


class StateImportError(StateError):
    """Persisted state could not be restored."""

    error_code = "WP_STA_002"
    severity = "critical"

    def __init__(self, component: str, reason: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", False)
        super().__init__(
            message=f"Corrupted {component} state",
            details={"component": component, "reason": reason},
            suggestions=["Discard the persisted snapshot and start with a fresh state"],
            **kwargs,
        )


class InvalidStateTransitionError(StateError):
    error_code = "WP_STA_003"

    def __init__(self, current: str, target: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Illegal status transition {current} -> {target}",
            details={"current": current, "target": target},
            **kwargs,
        )


# =============================================================================
# Research Exceptions
# =============================================================================


class ResearchError(WebProbeError):
    error_code = "WP_RES_001"
    error_category = "research"


class PlanningError(ResearchError):
    """Plan could not be produced at all (as opposed to an invalid plan)."""

    error_code = "WP_RES_002"


class EngineBusyError(ResearchError):
    error_code = "WP_RES_003"

    def __init__(self, session_id: str, **kwargs: Any) -> None:
        super().__init__(
            message="Research engine is already running",
            details={"session_id": session_id},
            suggestions=["Create a separate ResearchEngine per concurrent objective"],
            **kwargs,
        )
