"""Renderers for CLI command output: Rich tables and JSON Lines."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TextIO

from pydantic.alias_generators import to_camel
from rich.box import SIMPLE
from rich.console import Console
from rich.table import Table
from rich.text import Text

Row = Mapping[str, object]

# outlier severities, lowest first
SEVERITY_STYLES = {
    "low": "dim",
    "medium": "yellow",
    "high": "bold red",
    "critical": "bold white on red",
}


def _columns(rows: Sequence[Row], columns: Sequence[str] | None) -> list[str]:
    if columns:
        return list(columns)
    return list(rows[0].keys()) if rows else []


class OutputFormatter:
    """Base class for CLI output formatters."""

    name: str

    def render(
        self,
        rows: Sequence[Row],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class TableFormatter(OutputFormatter):
    """Rich table; prices and volumes right aligned, severities colored."""

    name: str = "table"
    no_color: bool = False
    float_precision: int = 4

    def render(
        self,
        rows: Sequence[Row],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        console = Console(file=stream, color_system=None if self.no_color else "auto", no_color=self.no_color)
        names = _columns(rows, columns)
        if not rows:
            console.print(f"{title}: no records." if title else "No records.")
            return

        table = Table(box=SIMPLE, title=title, header_style="" if self.no_color else "bold")
        for name in names:
            numeric = any(isinstance(row.get(name), (int, float)) and not isinstance(row.get(name), bool) for row in rows)
            table.add_column(name, justify="right" if numeric else "left", no_wrap=name in {"date", "timestamp"})
        for row in rows:
            table.add_row(*(self._cell(name, row.get(name)) for name in names))
        console.print(table)

    def _cell(self, column: str, value: object) -> Text | str:
        if value is None:
            return "-"
        if isinstance(value, bool):
            return "yes" if value else "no"
        if isinstance(value, float):
            if column == "volume" and value.is_integer():
                return f"{int(value):,}"
            return f"{value:.{self.float_precision}f}".rstrip("0").rstrip(".")
        if column == "severity" and not self.no_color:
            return Text(str(value), style=SEVERITY_STYLES.get(str(value).lower(), ""))
        return str(value)


@dataclass(slots=True)
class JSONLFormatter(OutputFormatter):
    """One JSON object per row; ``camel_case`` switches keys to the wire aliases."""

    name: str = "jsonl"
    camel_case: bool = False

    def render(
        self,
        rows: Sequence[Row],
        *,
        stream: TextIO,
        columns: Sequence[str] | None = None,
        title: str | None = None,
    ) -> None:
        for row in rows:
            selected = {name: row.get(name) for name in columns} if columns else dict(row)
            if self.camel_case:
                selected = {to_camel(key): value for key, value in selected.items()}
            stream.write(json.dumps(selected, ensure_ascii=False, default=str))
            stream.write("\n")
        stream.flush()


FORMATS = ("table", "jsonl")


def create_formatter(name: str, *, no_color: bool = False, camel_case: bool = False) -> OutputFormatter:
    """Instantiate a formatter by name."""

    normalized = name.strip().lower()
    if normalized == "table":
        return TableFormatter(no_color=no_color)
    if normalized == "jsonl":
        return JSONLFormatter(camel_case=camel_case)
    raise ValueError(f"Unsupported format '{name}'. Available formats: {', '.join(FORMATS)}.")


__all__ = ["FORMATS", "JSONLFormatter", "OutputFormatter", "SEVERITY_STYLES", "TableFormatter", "create_formatter"]
