"""Logging configuration primitives for structured logging."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LogConfig(BaseModel):
    """Sinks and level for the JSON log stream.

    ``console_stream`` defaults to ``sys.stderr`` resolved at write time;
    ``file_path`` enables a rotating JSON Lines file next to the console sink.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = "INFO"
    console_output: bool = True
    console_stream: Any = None
    file_output: bool = False
    file_path: str | None = None
    rotation: str = "10 MB"
    retention: str = "14 days"
    extra: dict[str, Any] = Field(default_factory=dict)


__all__ = ["LogConfig"]
