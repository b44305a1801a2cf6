"""Payload transformation commands for the marketnorm CLI."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

import typer

from marketnorm.core.config.models import TransformationConfig
from marketnorm.core.exceptions import ErrorCode
from marketnorm.core.models.market import TimeFrame, resolve_timeframe
from marketnorm.core.models.response import StandardFinancialResponse
from marketnorm.core.parsing import ResponseParser
from marketnorm.core.services.pipeline import TransformationPipeline

from .constants import DATA_EXIT_CODE
from .utils import emit_error, load_json_input, load_settings, prepare_output

RECORD_COLUMNS = [
    "date",
    "open",
    "high",
    "low",
    "close",
    "adjusted_close",
    "volume",
    "split_adjustment_factor",
    "date_confidence",
]

PREVIEW_COLUMNS = ["date", "open", "high", "low", "close", "adjusted_close", "volume"]


def get_pipeline(config: TransformationConfig | None = None) -> TransformationPipeline:
    """Factory hook for obtaining a :class:`TransformationPipeline`."""

    return TransformationPipeline(config)


def get_parser() -> ResponseParser:
    return ResponseParser()


def register(app: typer.Typer) -> None:
    """Register transformation commands on the provided application."""

    app.command("transform")(transform_command)
    app.command("parse-test")(parse_test_command)
    app.command("sources")(sources_command)


def transform_command(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="Provider JSON payload ('-' reads stdin)."),
    source: str = typer.Option(..., "--source", "-s", help="Provider that produced the payload."),
    symbol: str = typer.Option(..., "--symbol", help="Instrument symbol."),
    timeframe: str = typer.Option("daily", "--timeframe", "-t", help="Bar interval of the payload."),
    config_path: Path | None = typer.Option(
        None, "--config", exists=True, dir_okay=False, help="TOML configuration file."
    ),
    show_metadata: bool = typer.Option(False, "--metadata", help="Print response metadata to stderr."),
) -> None:
    """Normalize a provider payload into canonical OHLCV records."""

    if resolve_timeframe(timeframe) is None:
        allowed = ", ".join(value.value for value in TimeFrame)
        raise typer.BadParameter(
            f"Unsupported timeframe '{timeframe}'. Allowed values: {allowed}",
            param_hint="--timeframe",
        )

    settings = load_settings(ctx, config_path)
    payload = load_json_input(file)
    pipeline = get_pipeline(settings.transformation if settings is not None else None)
    response = pipeline.transform(payload, source, symbol, timeframe)
    if not response.success:
        emit_error(
            response.errors[-1].message if response.errors else "Transformation failed",
            ErrorCode.PARSING_ERROR,
            details={"errors": [error.message for error in response.errors]},
        )
        raise typer.Exit(code=DATA_EXIT_CODE)

    if show_metadata:
        typer.echo(_metadata_line(response), err=True)

    formatter, stream, stack = prepare_output(ctx)
    try:
        formatter.render(
            _response_to_rows(response),
            stream=stream,
            columns=RECORD_COLUMNS,
            title=f"{response.metadata.symbol} ({response.metadata.source}, {response.metadata.timeframe})",
        )
    finally:
        stack.close()


def parse_test_command(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="Provider JSON payload ('-' reads stdin)."),
    source: str = typer.Option(..., "--source", "-s", help="Provider that produced the payload."),
) -> None:
    """Dry-run the provider parser and preview the first records."""

    payload = load_json_input(file)
    diagnostics = get_parser().test_parsing(payload, source)

    if not diagnostics.can_parse:
        emit_error(
            diagnostics.errors[0] if diagnostics.errors else "Payload could not be parsed",
            ErrorCode.PAYLOAD_STRUCTURE_ERROR,
            details={"structure": diagnostics.structure, "issues": diagnostics.errors},
        )
        raise typer.Exit(code=DATA_EXIT_CODE)

    formatter, stream, stack = prepare_output(ctx)
    try:
        formatter.render(diagnostics.preview, stream=stream, columns=PREVIEW_COLUMNS, title=f"{source} preview")
    finally:
        stack.close()


def sources_command(ctx: typer.Context) -> None:
    """List the registered provider parsers."""

    formatter, stream, stack = prepare_output(ctx)
    try:
        formatter.render([{"source": name} for name in get_parser().supported_sources()], stream=stream)
    finally:
        stack.close()


def _response_to_rows(response: StandardFinancialResponse) -> list[Mapping[str, object]]:
    return [record.model_dump(mode="json") for record in response.data]


def _metadata_line(response: StandardFinancialResponse) -> str:
    payload = {
        "metadata": response.metadata.to_wire(),
        "performance": response.performance.to_wire(),
        "warnings": len(response.warnings),
        "errors": len(response.errors),
    }
    return json.dumps(payload, ensure_ascii=False, default=str)


__all__ = ["register", "transform_command", "parse_test_command", "sources_command", "get_pipeline"]
