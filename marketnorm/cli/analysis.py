"""Outlier analysis command for the marketnorm CLI."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from marketnorm.core.config.models import DetectionConfig
from marketnorm.core.exceptions import DataValidationError, ErrorCode, InsufficientDataError, MarketNormError
from marketnorm.core.services.outliers import OutlierDetector

from .constants import DATA_EXIT_CODE, VALIDATION_EXIT_CODE
from .utils import emit_error, emit_exception, load_json_input, load_settings, prepare_output

EVENT_COLUMNS = [
    "date",
    "type",
    "severity",
    "confidence",
    "deviation_magnitude",
    "description",
]


def register(app: typer.Typer) -> None:
    app.command("analyze")(analyze_command)


def get_detector(config: DetectionConfig) -> OutlierDetector:
    """Factory hook for obtaining an :class:`OutlierDetector`."""

    return OutlierDetector(config)


def analyze_command(
    ctx: typer.Context,
    file: str = typer.Argument(..., help="Canonical series as a JSON array or a transform response."),
    symbol: str | None = typer.Option(None, "--symbol", help="Override the series symbol."),
    min_data_points: int | None = typer.Option(None, "--min-data-points", min=2, help="Minimum series length."),
    sigma: float | None = typer.Option(None, "--sigma", help="Z-score threshold for statistical outliers."),
    volatility: bool = typer.Option(False, "--volatility", help="Enable volatility spike detection."),
    config_path: Path | None = typer.Option(
        None, "--config", exists=True, dir_okay=False, help="TOML configuration file ([detection] section)."
    ),
) -> None:
    """Detect price jumps, volume spikes, gaps and statistical outliers."""

    document = load_json_input(file)
    series = document.get("data") if isinstance(document, Mapping) else document
    if not isinstance(series, list):
        emit_error("Input must be a JSON array of data points or an object with a 'data' array", ErrorCode.DATA_FORMAT_ERROR)
        raise typer.Exit(code=VALIDATION_EXIT_CODE)

    overrides: dict[str, Any] = {}
    if min_data_points is not None:
        overrides["min_data_points"] = min_data_points
    if sigma is not None:
        overrides["sigma_threshold"] = sigma
    if volatility:
        overrides["enable_volatility_spike_detection"] = True

    settings = load_settings(ctx, config_path)
    base = settings.detection if settings is not None else DetectionConfig()
    try:
        config = DetectionConfig.model_validate({**base.model_dump(), **overrides})
    except ValidationError as exc:
        emit_error("Invalid detection options", ErrorCode.CONFIGURATION_ERROR, details={"errors": exc.errors()})
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from exc

    try:
        report = get_detector(config).analyze_outliers(series, symbol)
    except (InsufficientDataError, DataValidationError) as error:
        emit_exception(error)
        raise typer.Exit(code=DATA_EXIT_CODE) from error
    except MarketNormError as error:
        emit_exception(error)
        raise typer.Exit(code=VALIDATION_EXIT_CODE) from error

    formatter, stream, stack = prepare_output(ctx)
    try:
        formatter.render(
            [event.model_dump(mode="json") for event in report.events],
            stream=stream,
            columns=EVENT_COLUMNS,
            title=(
                f"{report.symbol}: {report.outliers_detected} outlier(s) in {report.total_data_points} points, "
                f"risk {report.risk_score}, quality {report.quality_score}"
            ),
        )
    finally:
        stack.close()


__all__ = ["register", "analyze_command", "get_detector"]
