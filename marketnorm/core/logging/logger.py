"""Structured logging utilities with trace propagation.

Every event is rendered as one JSON line carrying the active trace id, the
provider ``source``, the ``symbol`` being transformed and the pipeline
``stage`` that emitted it. Console output goes to stderr so that JSON Lines
written by the CLI on stdout stay parseable.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from loguru import logger

from marketnorm.core.logging.config import LogConfig

_TRACE_ID_VAR: ContextVar[str | None] = ContextVar("marketnorm_trace_id", default=None)
_CONTEXT_VAR: ContextVar[dict[str, Any]] = ContextVar("marketnorm_log_context", default={})

PROMOTED_KEYS = ("source", "symbol", "stage")
_INTERNAL_KEYS = {"trace_id", "logger_name", "json_line", *PROMOTED_KEYS}
_PACKAGE_PREFIX = "marketnorm."


def _ensure_trace_id() -> str:
    trace_id = _TRACE_ID_VAR.get()
    if trace_id is None:
        trace_id = uuid4().hex
        _TRACE_ID_VAR.set(trace_id)
    return trace_id


def stage_from_name(name: str | None) -> str | None:
    """``marketnorm.core.services.splits`` -> ``splits``."""

    if not name or not name.startswith(_PACKAGE_PREFIX):
        return None
    return name.rsplit(".", 1)[-1]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _render(record: dict[str, Any]) -> dict[str, Any]:
    extra = record["extra"]
    level = record.get("level")
    payload: dict[str, Any] = {
        "timestamp": record["time"].isoformat() if "time" in record else datetime.now(UTC).isoformat(),
        "level": getattr(level, "name", None) or "INFO",
        "message": record.get("message"),
        "trace_id": extra.get("trace_id"),
    }
    for key in PROMOTED_KEYS:
        payload[key] = extra.get(key)
    context = {key: value for key, value in extra.items() if key not in _INTERNAL_KEYS}
    if context:
        payload["context"] = context
    if record.get("exception"):
        payload["exception"] = str(record["exception"])
    return payload


def _patch_record(record: dict[str, Any]) -> None:
    extra = record["extra"]
    if extra.get("trace_id"):
        _TRACE_ID_VAR.set(extra["trace_id"])
    else:
        extra["trace_id"] = _ensure_trace_id()

    for key, value in _CONTEXT_VAR.get({}).items():
        if key != "trace_id" and extra.get(key) is None:
            extra[key] = value
    if extra.get("stage") is None:
        extra["stage"] = stage_from_name(extra.get("logger_name"))

    extra["json_line"] = json.dumps(_render(record), ensure_ascii=False, default=_json_default)


def _json_format(_: dict[str, Any]) -> str:
    # callable format: loguru does not append tracebacks after the JSON line
    return "{extra[json_line]}\n"


def _console_sink(config: LogConfig) -> Any:
    stream = config.console_stream

    def write(message: str) -> None:
        target = stream or sys.stderr
        target.write(message)
        target.flush()

    return write


def _configure_from_config(config: LogConfig) -> None:
    level = config.level.upper()
    handlers: list[dict[str, Any]] = []
    if config.console_output:
        handlers.append({"sink": _console_sink(config), "level": level, "format": _json_format})
    if config.file_output and config.file_path:
        handlers.append(
            {
                "sink": config.file_path,
                "level": level,
                "format": _json_format,
                "rotation": config.rotation,
                "retention": config.retention,
                "encoding": "utf-8",
            }
        )

    configure_kwargs: dict[str, Any] = {"handlers": handlers, "patcher": _patch_record}
    if config.extra:
        configure_kwargs["extra"] = config.extra
    logger.configure(**configure_kwargs)


def configure_logging(level: str = "INFO", **kwargs: Any) -> None:
    """Configure structured logging with the provided level and options."""

    _configure_from_config(LogConfig(level=level, **kwargs))


class StructuredLogger:
    """Configured loguru logger with trace-aware context helpers."""

    def __init__(self, config: LogConfig | None = None) -> None:
        self.config = config or LogConfig()
        _configure_from_config(self.config)
        self.logger = logger

    def configure(self, **kwargs: Any) -> None:
        self.config = self.config.model_copy(update=kwargs)
        _configure_from_config(self.config)

    @contextmanager
    def context(self, *, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
        with log_context(trace_id=trace_id, **extra) as active_trace:
            yield active_trace


def get_logger(name: str | None = None) -> Any:
    """Return the loguru logger bound to a module ``name``."""

    if name:
        return logger.bind(logger_name=name)
    return logger


def bind(**kwargs: Any) -> Any:
    return logger.bind(**kwargs)


@contextmanager
def log_context(*, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Propagate a trace id and metadata such as ``source``/``symbol`` to nested events."""

    context_token = _CONTEXT_VAR.set({**_CONTEXT_VAR.get({}), **extra})
    active_trace = trace_id or uuid4().hex
    trace_token = _TRACE_ID_VAR.set(active_trace)
    try:
        yield active_trace
    finally:
        _TRACE_ID_VAR.reset(trace_token)
        _CONTEXT_VAR.reset(context_token)


def current_trace_id() -> str:
    """Return the currently active trace id, generating one if required."""

    return _ensure_trace_id()


configure_logging("WARNING")


__all__ = [
    "PROMOTED_KEYS",
    "StructuredLogger",
    "bind",
    "configure_logging",
    "current_trace_id",
    "get_logger",
    "log_context",
    "logger",
    "stage_from_name",
]
