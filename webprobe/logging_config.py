"""
webprobe Logging Configuration
==============================

Structured logging with correlation and session ids.

Features:
- JSON formatter for machine consumption
- Per-module log levels
- Correlation/session ids carried in context variables, so concurrent
  research runs keep their log lines apart

Usage:
    from webprobe.logging_config import setup_logging, session_context

    setup_logging(level="DEBUG", json_format=True)

    with session_context("plan-1a2b3c"):
        logger.info("Path completed")
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_session_id: ContextVar[str] = ContextVar("session_id", default="")

DEFAULT_MODULE_LEVELS = {
    "webprobe": "INFO",
    "webprobe.cache": "WARNING",
    "webprobe.core": "WARNING",
    "webprobe.research": "INFO",
    "webprobe.observability": "INFO",
    "asyncio": "WARNING",
}

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, indent: int | None = None):
        super().__init__()
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_dict["correlation_id"] = correlation_id

        session_id = get_session_id()
        if session_id:
            log_dict["session_id"] = session_id

        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_dict.update(record.extra)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str, indent=self.indent)


class ContextFilter(logging.Filter):
    """Inject correlation and session ids into records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.session_id = get_session_id()
        return True


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    return f"corr-{uuid.uuid4().hex[:12]}"


def get_session_id() -> str:
    return _session_id.get()


def set_session_id(session_id: str) -> None:
    _session_id.set(session_id)


@contextmanager
def session_context(session_id: str, correlation_id: str | None = None) -> Iterator[None]:
    """
    Bind a session (and optionally a correlation id) for the enclosed block.

    Usage:
        with session_context(plan.id):
            await run_paths()
    """
    session_token = _session_id.set(session_id)
    correlation_token = _correlation_id.set(correlation_id) if correlation_id else None
    try:
        yield
    finally:
        _session_id.reset(session_token)
        if correlation_token is not None:
            _correlation_id.reset(correlation_token)


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    module_levels: dict[str, str] | None = None,
    stream: Any = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Default log level
        json_format: Emit JSON lines instead of plain text
        module_levels: Per-logger level overrides
        stream: Output stream, stdout by default
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    levels = {**DEFAULT_MODULE_LEVELS, **(module_levels or {})}
    for module, mod_level in levels.items():
        logging.getLogger(module).setLevel(getattr(logging, mod_level.upper()))

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    logging.getLogger("webprobe").debug(f"Logging configured (level={level}, json={json_format})")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
