"""
Telemetry & Control
===================

Owns the run's progress state machine, the event log and the control
command queue.

Status flow:
    IDLE -> PLANNING -> EXECUTING <-> PAUSED -> STOPPING -> COMPLETED
    PLANNING / EXECUTING -> FAILED on an unrecoverable error

``pause``, ``resume`` and ``stop`` are signals: they change status and
enqueue a command, and the execution driver acts on them between path
steps. ``stop`` never waits for in-flight work and is measured against a
200 ms reporting target.

Usage:
    telemetry = TelemetryEngine(session_id=plan.id)
    progress = telemetry.subscribe_progress(maxsize=50)

    telemetry.start(plan.summary())
    telemetry.begin_execution()
    telemetry.record_page_load("https://acme.com", success=True)
    condition = telemetry.stop("user requested")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from webprobe.core.config import TelemetryConfig
from webprobe.core.events import EventChannel, Subscription
from webprobe.core.exceptions import InvalidStateTransitionError
from webprobe.core.helpers import generate_id

from .metrics import ResearchMetrics
from .tracing import ResearchTracer, SpanAttributes

logger = logging.getLogger("webprobe.observability.telemetry")


class ExecutionStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    PAUSED = "paused"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.IDLE: frozenset({ExecutionStatus.PLANNING, ExecutionStatus.STOPPING}),
    ExecutionStatus.PLANNING: frozenset(
        {ExecutionStatus.EXECUTING, ExecutionStatus.STOPPING, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.EXECUTING: frozenset(
        {ExecutionStatus.PAUSED, ExecutionStatus.STOPPING, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.PAUSED: frozenset({ExecutionStatus.EXECUTING, ExecutionStatus.STOPPING}),
    ExecutionStatus.STOPPING: frozenset({ExecutionStatus.COMPLETED}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})


class TelemetryEventType(str, Enum):
    PAGE_LOAD = "page_load"
    EXTRACTION = "extraction"
    CLAIM_FOUND = "claim_found"
    VERIFICATION = "verification"
    STRATEGY_SHIFT = "strategy_shift"
    PATH_TERMINATED = "path_terminated"
    ERROR = "error"
    BLOCKED = "blocked"
    STATUS_CHANGE = "status_change"


class StopReason(str, Enum):
    CONFIDENCE_REACHED = "confidence_reached"
    MARGINAL_GAIN_LOW = "marginal_gain_low"
    TIME_BUDGET = "time_budget"
    PAGE_BUDGET = "page_budget"
    PATHS_EXHAUSTED = "paths_exhausted"
    USER_STOP = "user_stop"
    ERROR = "error"


class CommandType(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


@dataclass
class TelemetryEvent:
    type: TelemetryEventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: generate_id("evt"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }


@dataclass
class ProgressState:
    status: ExecutionStatus = ExecutionStatus.IDLE
    plan_summary: str = ""
    current_phase: str = "idle"
    pages_visited: int = 0
    claims_found: int = 0
    confidence: float = 0.0
    active_paths: int = 0
    elapsed_ms: float = 0.0
    estimated_remaining_ms: float | None = None
    started_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "plan_summary": self.plan_summary,
            "current_phase": self.current_phase,
            "pages_visited": self.pages_visited,
            "claims_found": self.claims_found,
            "confidence": self.confidence,
            "active_paths": self.active_paths,
            "elapsed_ms": self.elapsed_ms,
            "estimated_remaining_ms": self.estimated_remaining_ms,
        }


@dataclass
class StopCondition:
    reason: StopReason
    confidence: float
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason.value,
            "confidence": self.confidence,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass
class ControlCommand:
    type: CommandType
    reason: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class TelemetryError:
    message: str
    recoverable: bool
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class TelemetryEngine:
    """
    Progress state, event log and control signals for one research session.

    ``ProgressState`` is only ever handed out as a copy.
    """

    def __init__(
        self,
        config: TelemetryConfig | None = None,
        session_id: str | None = None,
        metrics: ResearchMetrics | None = None,
        tracer: ResearchTracer | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or TelemetryConfig()
        self.session_id = session_id or generate_id("session")
        self.metrics = metrics
        self.tracer = tracer or ResearchTracer()
        self._clock = clock

        self._lock = threading.RLock()
        self._events: deque[TelemetryEvent] = deque(maxlen=self.config.max_events)
        self._progress = ProgressState()
        self._commands: deque[ControlCommand] = deque()
        self._commands_issued = 0
        self._stop_condition: StopCondition | None = None
        self._stop_latency_ms: float | None = None

        size = self.config.subscriber_buffer_size
        self.events: EventChannel[TelemetryEvent] = EventChannel("events", size)
        self.progress: EventChannel[ProgressState] = EventChannel("progress", size)
        self.commands: EventChannel[ControlCommand] = EventChannel("commands", size)
        self.stops: EventChannel[StopCondition] = EventChannel("stop", size)
        self.errors: EventChannel[TelemetryError] = EventChannel("errors", size)

        self._logger = logger

    # ------------------------------------------------------------------
    # Subscriptions

    def subscribe_events(
        self, callback: Callable[[TelemetryEvent], None] | None = None, maxsize: int | None = None
    ) -> Subscription[TelemetryEvent]:
        return self.events.subscribe(callback, maxsize)

    def subscribe_progress(
        self, callback: Callable[[ProgressState], None] | None = None, maxsize: int | None = None
    ) -> Subscription[ProgressState]:
        return self.progress.subscribe(callback, maxsize)

    def subscribe_commands(
        self, callback: Callable[[ControlCommand], None] | None = None, maxsize: int | None = None
    ) -> Subscription[ControlCommand]:
        return self.commands.subscribe(callback, maxsize)

    def subscribe_stop(
        self, callback: Callable[[StopCondition], None] | None = None, maxsize: int | None = None
    ) -> Subscription[StopCondition]:
        return self.stops.subscribe(callback, maxsize)

    def subscribe_errors(
        self, callback: Callable[[TelemetryError], None] | None = None, maxsize: int | None = None
    ) -> Subscription[TelemetryError]:
        return self.errors.subscribe(callback, maxsize)

    # ------------------------------------------------------------------
    # Status

    @property
    def status(self) -> ExecutionStatus:
        with self._lock:
            return self._progress.status

    def _transition(self, target: ExecutionStatus) -> None:
        current = self._progress.status
        if target == current:
            return
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransitionError(current.value, target.value)
        self._progress.status = target
        self._record(
            TelemetryEventType.STATUS_CHANGE, {"from": current.value, "to": target.value}
        )
        self._logger.debug(f"[{self.session_id}] {current.value} -> {target.value}")

    def update_status(self, status: ExecutionStatus) -> None:
        with self._lock:
            self._transition(status)
            self._broadcast_progress()

    def start(self, plan_summary: str = "") -> None:
        with self._lock:
            self._transition(ExecutionStatus.PLANNING)
            self._progress.started_at = self._clock()
            self._progress.plan_summary = plan_summary
            self._progress.current_phase = "planning"
            self._broadcast_progress()

    def begin_execution(self, plan_summary: str | None = None) -> None:
        with self._lock:
            self._transition(ExecutionStatus.EXECUTING)
            if plan_summary is not None:
                self._progress.plan_summary = plan_summary
            self._progress.current_phase = "executing"
            self._broadcast_progress()

    # ------------------------------------------------------------------
    # Event recording

    def _record(self, event_type: TelemetryEventType, data: dict[str, Any]) -> TelemetryEvent:
        event = TelemetryEvent(
            type=event_type, session_id=self.session_id, data=data, timestamp=self._clock()
        )
        self._events.append(event)
        if self.metrics is not None:
            self.metrics.record_event(event_type.value)
        self.events.publish(event)
        return event

    def _snapshot(self) -> ProgressState:
        snapshot = replace(self._progress)
        if snapshot.started_at is not None and snapshot.status not in TERMINAL_STATUSES:
            snapshot.elapsed_ms = (self._clock() - snapshot.started_at) * 1000
        return snapshot

    def _broadcast_progress(self) -> None:
        snapshot = self._snapshot()
        self._progress.elapsed_ms = snapshot.elapsed_ms
        self.progress.publish(snapshot)

    def record_page_load(
        self,
        url: str,
        success: bool,
        duration_ms: float = 0.0,
        error: str | None = None,
    ) -> TelemetryEvent:
        with self._lock:
            self._progress.pages_visited += 1
            event = self._record(
                TelemetryEventType.PAGE_LOAD,
                {"url": url, "success": success, "duration_ms": duration_ms, "error": error},
            )
            if self.metrics is not None:
                self.metrics.record_page_load(success)
            self._broadcast_progress()
            return event

    def record_extraction(self, url: str, schema_name: str, count: int) -> TelemetryEvent:
        with self._lock:
            return self._record(
                TelemetryEventType.EXTRACTION,
                {"url": url, "schema_name": schema_name, "count": count},
            )

    def record_claim_found(self, claim_id: str, text: str, confidence: float) -> TelemetryEvent:
        with self._lock:
            self._progress.claims_found += 1
            event = self._record(
                TelemetryEventType.CLAIM_FOUND,
                {"claim_id": claim_id, "text": text, "confidence": confidence},
            )
            if self.metrics is not None:
                self.metrics.record_claim()
            self._broadcast_progress()
            return event

    def record_verification(
        self,
        claim_id: str,
        outcome: str,
        confidence_before: float,
        confidence_after: float,
    ) -> TelemetryEvent:
        with self._lock:
            return self._record(
                TelemetryEventType.VERIFICATION,
                {
                    "claim_id": claim_id,
                    "outcome": outcome,
                    "confidence_before": confidence_before,
                    "confidence_after": confidence_after,
                },
            )

    def record_strategy_shift(self, phase: str, reason: str = "") -> TelemetryEvent:
        with self._lock:
            self._progress.current_phase = phase
            return self._record(
                TelemetryEventType.STRATEGY_SHIFT, {"phase": phase, "reason": reason}
            )

    def record_path_terminated(self, path_id: str, reason: str = "") -> TelemetryEvent:
        with self._lock:
            self._progress.active_paths = max(0, self._progress.active_paths - 1)
            if self.metrics is not None:
                self.metrics.set_active_paths(self._progress.active_paths)
            event = self._record(
                TelemetryEventType.PATH_TERMINATED, {"path_id": path_id, "reason": reason}
            )
            self._broadcast_progress()
            return event

    def record_error(
        self,
        message: str,
        recoverable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> TelemetryEvent:
        """
        Log an error event. Unrecoverable errors are also published on the
        error channel and fail a run that is planning or executing.
        """
        details = details or {}
        with self._lock:
            event = self._record(
                TelemetryEventType.ERROR,
                {"message": message, "recoverable": recoverable, **details},
            )
            if self.metrics is not None:
                self.metrics.record_error(recoverable)
            if not recoverable:
                self.errors.publish(TelemetryError(message, recoverable, details))
                if self._progress.status in (ExecutionStatus.PLANNING, ExecutionStatus.EXECUTING):
                    self._transition(ExecutionStatus.FAILED)
                    self._broadcast_progress()
                self._logger.error(f"[{self.session_id}] Unrecoverable: {message}")
            else:
                self._logger.debug(f"[{self.session_id}] Recoverable error: {message}")
            return event

    def record_blocked(self, url: str, reason: str = "") -> TelemetryEvent:
        with self._lock:
            return self._record(TelemetryEventType.BLOCKED, {"url": url, "reason": reason})

    def update_confidence(self, confidence: float) -> None:
        with self._lock:
            self._progress.confidence = max(0.0, min(1.0, confidence))
            if self.metrics is not None:
                self.metrics.set_confidence(self._progress.confidence)
            self._broadcast_progress()

    def update_active_paths(self, count: int) -> None:
        with self._lock:
            self._progress.active_paths = max(0, count)
            if self.metrics is not None:
                self.metrics.set_active_paths(self._progress.active_paths)
            self._broadcast_progress()

    def update_estimated_remaining(self, remaining_ms: float | None) -> None:
        with self._lock:
            self._progress.estimated_remaining_ms = remaining_ms

    # ------------------------------------------------------------------
    # Control

    def _enqueue(self, command: ControlCommand) -> None:
        self._commands.append(command)
        self._commands_issued += 1
        self.commands.publish(command)

    def pause(self, reason: str = "") -> bool:
        """Signal a pause; only meaningful while executing."""
        with self._lock:
            if self._progress.status != ExecutionStatus.EXECUTING:
                return False
            self._transition(ExecutionStatus.PAUSED)
            self._enqueue(ControlCommand(CommandType.PAUSE, reason, self._clock()))
            self._broadcast_progress()
        self._logger.info(f"[{self.session_id}] Paused {reason}".rstrip())
        return True

    def resume(self, reason: str = "") -> bool:
        with self._lock:
            if self._progress.status != ExecutionStatus.PAUSED:
                return False
            self._transition(ExecutionStatus.EXECUTING)
            self._enqueue(ControlCommand(CommandType.RESUME, reason, self._clock()))
            self._broadcast_progress()
        self._logger.info(f"[{self.session_id}] Resumed")
        return True

    def stop(
        self,
        reason: str | None = None,
        stop_reason: StopReason = StopReason.USER_STOP,
    ) -> StopCondition:
        """
        Stop the run and report it.

        STOPPING, stop command queued, one StopCondition emitted, COMPLETED.
        Later calls return the first StopCondition without emitting again.
        """
        started = time.perf_counter()
        with self.tracer.span(
            "webprobe.stop",
            {SpanAttributes.SESSION_ID: self.session_id, SpanAttributes.STOP_REASON: stop_reason.value},
        ):
            with self._lock:
                if self._stop_condition is not None:
                    return self._stop_condition

                failed = self._progress.status == ExecutionStatus.FAILED
                if not failed:
                    self._transition(ExecutionStatus.STOPPING)
                    self._enqueue(ControlCommand(CommandType.STOP, reason or "", self._clock()))

                condition = StopCondition(
                    reason=StopReason.ERROR if failed else stop_reason,
                    confidence=self._progress.confidence,
                    message=reason or "",
                    timestamp=self._clock(),
                )
                self._stop_condition = condition
                self.stops.publish(condition)

                if not failed:
                    self._progress.current_phase = "stopped"
                    self._transition(ExecutionStatus.COMPLETED)
                self._broadcast_progress()

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._stop_latency_ms = elapsed_ms
        if self.metrics is not None:
            self.metrics.observe_stop_latency(elapsed_ms / 1000)
        if elapsed_ms > self.config.stop_target_ms:
            self._logger.warning(
                f"[{self.session_id}] Stop took {elapsed_ms:.1f}ms "
                f"(target {self.config.stop_target_ms:.0f}ms)"
            )
        self._logger.info(
            f"[{self.session_id}] Stopped: {condition.reason.value} "
            f"confidence={condition.confidence:.2f} in {elapsed_ms:.1f}ms"
        )
        return condition

    def has_pending_stop(self) -> bool:
        with self._lock:
            return self._stop_condition is not None or any(
                c.type == CommandType.STOP for c in self._commands
            )

    def is_paused(self) -> bool:
        return self.status == ExecutionStatus.PAUSED

    def get_pending_commands(self) -> list[ControlCommand]:
        """Drain the command queue."""
        with self._lock:
            commands = list(self._commands)
            self._commands.clear()
            return commands

    # ------------------------------------------------------------------
    # Queries

    def get_progress(self) -> ProgressState:
        with self._lock:
            return self._snapshot()

    def get_stop_condition(self) -> StopCondition | None:
        with self._lock:
            return self._stop_condition

    def get_events(
        self,
        event_type: TelemetryEventType | None = None,
        since: float | None = None,
        limit: int | None = None,
    ) -> list[TelemetryEvent]:
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        if limit is not None:
            events = events[-limit:]
        return events

    def cleanup(self) -> int:
        """Drop events older than the configured maximum age."""
        cutoff = self._clock() - self.config.max_event_age_seconds
        with self._lock:
            before = len(self._events)
            kept = [e for e in self._events if e.timestamp >= cutoff]
            self._events = deque(kept, maxlen=self.config.max_events)
            return before - len(kept)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._commands.clear()
            self._progress = ProgressState()
            self._stop_condition = None
            self._stop_latency_ms = None

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            by_type: dict[str, int] = {}
            for event in self._events:
                by_type[event.type.value] = by_type.get(event.type.value, 0) + 1
            return {
                "session_id": self.session_id,
                "status": self._progress.status.value,
                "total_events": len(self._events),
                "events_by_type": by_type,
                "commands_issued": self._commands_issued,
                "pending_commands": len(self._commands),
                "subscribers": {
                    channel.name: channel.subscriber_count()
                    for channel in (self.events, self.progress, self.commands, self.stops, self.errors)
                },
                "stop_latency_ms": self._stop_latency_ms,
            }

    def export(self) -> dict[str, Any]:
        with self._lock:
            return {
                "session_id": self.session_id,
                "progress": self._snapshot().to_dict(),
                "events": [e.to_dict() for e in self._events],
                "stop_condition": self._stop_condition.to_dict() if self._stop_condition else None,
            }
