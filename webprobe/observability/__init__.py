"""
webprobe Observability
======================

Progress telemetry and run control, Prometheus metrics and OpenTelemetry
tracing.
"""

from .metrics import ResearchMetrics
from .telemetry import (
    CommandType,
    ControlCommand,
    ExecutionStatus,
    ProgressState,
    StopCondition,
    StopReason,
    TelemetryEngine,
    TelemetryError,
    TelemetryEvent,
    TelemetryEventType,
)
from .tracing import ResearchTracer, SpanAttributes

__all__ = [
    "ResearchMetrics",
    "CommandType",
    "ControlCommand",
    "ExecutionStatus",
    "ProgressState",
    "StopCondition",
    "StopReason",
    "TelemetryEngine",
    "TelemetryError",
    "TelemetryEvent",
    "TelemetryEventType",
    "ResearchTracer",
    "SpanAttributes",
]
