"""Main entry point for the marketnorm command line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from marketnorm.core.logging import configure_logging

from .analysis import register as register_analysis_commands
from .formatters import create_formatter
from .transform import register as register_transform_commands

_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def create_app() -> typer.Typer:
    """Create a Typer application instance for marketnorm."""

    app = typer.Typer(add_completion=False, help="Normalize and analyze market data payloads")

    @app.callback()
    def main(
        ctx: typer.Context,
        format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format (table or jsonl).",
            show_default=True,
        ),
        output: Path | None = typer.Option(
            None,
            "--output",
            "-o",
            help="Write output to a file instead of stdout.",
        ),
        log_level: str = typer.Option(
            "WARNING",
            "--log-level",
            help="Structured log level (logs go to stderr).",
            show_default=True,
        ),
        no_color: bool = typer.Option(
            False,
            "--no-color",
            help="Disable colorized output for table format.",
        ),
        camel_case: bool = typer.Option(
            False,
            "--camel-case",
            help="Use camelCase wire keys in jsonl output.",
        ),
    ) -> None:
        ctx.ensure_object(dict)
        normalized_format = format.strip().lower()
        try:
            create_formatter(normalized_format, no_color=no_color)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--format") from exc

        level = log_level.strip().upper()
        if level not in _LOG_LEVELS:
            raise typer.BadParameter(f"Unknown log level '{log_level}'", param_hint="--log-level")

        ctx.obj.update(
            {
                "format": normalized_format,
                "output_path": output,
                "log_level": level,
                "no_color": no_color,
                "camel_case": camel_case,
            }
        )
        configure_logging(level)

    register_transform_commands(app)
    register_analysis_commands(app)
    return app


app = create_app()
