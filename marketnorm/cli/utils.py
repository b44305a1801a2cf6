"""Helpers shared across CLI commands: option resolution, input loading, errors."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

import typer

from marketnorm.core.config.settings import ConfigManager, MarketNormConfig
from marketnorm.core.exceptions import ErrorCode, MarketNormError, format_error_response
from marketnorm.core.logging import configure_logging

from .constants import VALIDATION_EXIT_CODE
from .formatters import OutputFormatter, create_formatter

STDIN_MARKER = "-"


@dataclass(slots=True)
class CLIOptions:
    """Resolved options derived from the Typer context."""

    format: str = "table"
    output_path: Path | None = None
    log_level: str = "WARNING"
    no_color: bool = False
    camel_case: bool = False


def get_cli_options(ctx: typer.Context) -> CLIOptions:
    ctx.ensure_object(dict)
    data = ctx.obj or {}
    return CLIOptions(
        format=str(data.get("format", "table")),
        output_path=data.get("output_path"),
        log_level=str(data.get("log_level", "WARNING")),
        no_color=bool(data.get("no_color", False)),
        camel_case=bool(data.get("camel_case", False)),
    )


def prepare_output(ctx: typer.Context) -> tuple[OutputFormatter, TextIO, ExitStack]:
    """Resolve formatter and writable stream for the current command."""

    options = get_cli_options(ctx)
    try:
        formatter = create_formatter(options.format, no_color=options.no_color, camel_case=options.camel_case)
    except ValueError as exc:  # pragma: no cover - validated in the app callback
        emit_error(str(exc), ErrorCode.INVALID_FORMAT, details={"format": options.format})
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    stack = ExitStack()
    stream: TextIO
    if options.output_path is not None:
        try:
            stream = stack.enter_context(open(options.output_path, "w", encoding="utf-8"))
        except OSError as exc:
            stack.close()
            emit_error(f"Unable to open '{options.output_path}': {exc}", ErrorCode.OUTPUT_WRITE_ERROR)
            raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc
    else:
        stream = sys.stdout

    return formatter, stream, stack


def load_settings(ctx: typer.Context, config_path: Path | None) -> MarketNormConfig | None:
    """Load a TOML configuration file and attach its log file sink, if any."""

    if config_path is None:
        return None
    settings = ConfigManager(config_path).get_config()
    if settings.logging.file:
        configure_logging(get_cli_options(ctx).log_level, file_output=True, file_path=settings.logging.file)
    return settings


def load_json_input(path: str) -> Any:
    """Read a JSON document from ``path`` (``-`` reads stdin); exits on failure."""

    try:
        if path == STDIN_MARKER:
            text = typer.get_text_stream("stdin").read()
        else:
            text = Path(path).read_text(encoding="utf-8")
        return json.loads(text)
    except (OSError, json.JSONDecodeError) as exc:
        emit_error(f"Unable to read input '{path}': {exc}", ErrorCode.INPUT_READ_ERROR, details={"path": path})
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc


def emit_error(message: str, code: ErrorCode | str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    try:
        error_code = ErrorCode(code)
    except ValueError:
        error_code = ErrorCode.GENERAL_ERROR
    payload = format_error_response(error_code, message, **_sanitize_details(details or {}))
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


def emit_exception(error: MarketNormError) -> None:
    emit_error(error.message, error.error_code, details=error.details)


def _sanitize_details(details: Mapping[str, object]) -> dict[str, object]:
    sanitized: dict[str, object] = {}
    for key, value in details.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, Mapping):
            sanitized[key] = {str(inner): str(item) for inner, item in value.items()}
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            sanitized[key] = [str(item) for item in value]
        else:
            sanitized[key] = str(value)
    return sanitized


__all__ = [
    "CLIOptions",
    "emit_error",
    "emit_exception",
    "get_cli_options",
    "load_json_input",
    "load_settings",
    "prepare_output",
]
