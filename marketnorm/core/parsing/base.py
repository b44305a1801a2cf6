"""Provider parser abstraction and shared record validation."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from marketnorm.core.config.models import ParserConfig
from marketnorm.core.models.market import Severity
from marketnorm.core.models.records import ParsedRecord

PRICE_FIELDS = ("open", "high", "low", "close")

# numeric mantissa followed by a single K/M/B/T unit, resolved by the volume stage
UNIT_SUFFIXED_VOLUME = re.compile(r"^\s*\d[\d,]*(?:\.\d+)?\s*[kmbtKMBT]\s*$")
# plain share counts with thousands separators, e.g. "1,234,567"
GROUPED_VOLUME = re.compile(r"^\s*\d{1,3}(?:,\d{3})+(?:\.\d+)?\s*$")

DEFAULT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date", "Date", "DATE", "datetime", "timestamp", "time"),
    "open": ("open", "Open", "OPEN", "o", "1. open", "fOpen"),
    "high": ("high", "High", "HIGH", "h", "2. high", "fHigh"),
    "low": ("low", "Low", "LOW", "l", "3. low", "fLow"),
    "close": ("close", "Close", "CLOSE", "c", "4. close", "fClose"),
    "adjusted_close": ("adjusted_close", "adjustedClose", "adjClose", "adjclose", "Adj Close", "5. adjusted close"),
    "volume": ("volume", "Volume", "VOLUME", "v", "vol", "5. volume", "6. volume", "fVolume"),
}


class ParsingIssueType(str, Enum):
    STRUCTURE_ERROR = "STRUCTURE_ERROR"
    VALUE_ERROR = "VALUE_ERROR"
    MISSING_FIELD = "MISSING_FIELD"


@dataclass(frozen=True, slots=True)
class ParsingIssue:
    """One structured problem found while parsing a payload."""

    type: ParsingIssueType
    message: str
    severity: Severity
    field: str | None = None
    record: int | None = None
    original_value: Any = None


@dataclass(frozen=True, slots=True)
class ParsedMetadata:
    symbol: str | None = None
    last_refreshed: str | None = None
    timezone: str | None = None
    interval: str | None = None
    output_size: str | None = None


@dataclass(slots=True)
class ParseStats:
    records_parsed: int = 0
    records_skipped: int = 0
    parsing_time_ms: float = 0.0


@dataclass(slots=True)
class ParseReport:
    """Outcome of parsing one payload."""

    source: str
    records: list[ParsedRecord] = field(default_factory=list)
    errors: list[ParsingIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
    metadata: ParsedMetadata | None = None

    @property
    def success(self) -> bool:
        return bool(self.records)


@dataclass(frozen=True, slots=True)
class RawRow:
    """A provider row located inside the payload, before field mapping."""

    index: int
    fields: Mapping[str, Any] | None
    date: Any = None
    raw: Any = None


def epoch_to_iso(value: float, *, milliseconds: bool = False) -> str:
    seconds = value / 1000 if milliseconds else value
    return datetime.fromtimestamp(seconds, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class ProviderParser(ABC):
    """Strategy converting one provider's payload shape into parsed records.

    Subclasses only locate the rows of the time-series container; field
    mapping, numeric validation and OHLC checks are shared.
    """

    source: ClassVar[str]
    field_aliases: ClassVar[dict[str, tuple[str, ...]]] = DEFAULT_FIELD_ALIASES

    @abstractmethod
    def locate_rows(self, payload: Any) -> list[RawRow]:
        """Return the rows of the time-series container.

        Raises:
            PayloadStructureError: 找不到时间序列容器
        """

    def extract_metadata(self, payload: Any) -> ParsedMetadata | None:
        return None

    def parse(self, payload: Any, config: ParserConfig) -> ParseReport:
        report = ParseReport(source=self.source)
        rows = self.locate_rows(payload)
        report.metadata = self.extract_metadata(payload)
        for row in rows:
            record = self._build_record(row, config, report)
            if record is not None:
                report.records.append(record)
        report.stats.records_parsed = len(report.records)
        report.stats.records_skipped = len(rows) - len(report.records)
        return report

    def _lookup(self, fields: Mapping[str, Any], name: str) -> tuple[str | None, Any]:
        for alias in self.field_aliases.get(name, ()):
            if alias in fields:
                value = fields[alias]
                if value is not None and value != "":
                    return alias, value
        return None, None

    def _build_record(self, row: RawRow, config: ParserConfig, report: ParseReport) -> ParsedRecord | None:
        if row.fields is None:
            report.errors.append(
                ParsingIssue(
                    type=ParsingIssueType.VALUE_ERROR,
                    message="Record is not an object",
                    severity=Severity.MEDIUM,
                    record=row.index,
                    original_value=row.raw,
                )
            )
            return None

        date_value = row.date
        if date_value is None:
            _, date_value = self._lookup(row.fields, "date")
        if date_value is None:
            report.errors.append(
                ParsingIssue(
                    type=ParsingIssueType.MISSING_FIELD,
                    message="Record has no date field",
                    severity=Severity.HIGH,
                    field="date",
                    record=row.index,
                )
            )
            return None

        prices: dict[str, float] = {}
        complete = True
        for name in PRICE_FIELDS:
            alias, raw_value = self._lookup(row.fields, name)
            if alias is None:
                report.errors.append(
                    ParsingIssue(
                        type=ParsingIssueType.MISSING_FIELD,
                        message=f"Missing required field {name}",
                        severity=Severity.HIGH,
                        field=name,
                        record=row.index,
                    )
                )
                complete = False
                continue
            price = self._parse_price(raw_value, name, row.index, config, report.errors)
            if price is None:
                complete = False
            else:
                prices[name] = price
        if not complete:
            return None

        adjusted_close: float | None = None
        alias, raw_adjusted = self._lookup(row.fields, "adjusted_close")
        if alias is not None:
            adjusted_close = self._parse_price(raw_adjusted, "adjusted_close", row.index, config, report.errors, Severity.LOW)

        _, raw_volume = self._lookup(row.fields, "volume")
        volume = self._parse_volume(raw_volume, row.index, config, report.errors)

        if config.emit_ohlc_warnings and (
            prices["high"] < max(prices["open"], prices["close"]) or prices["low"] > min(prices["open"], prices["close"])
        ):
            report.warnings.append(
                f"Record {row.index}: possible OHLC inconsistency "
                f"(H:{prices['high']}, L:{prices['low']}, O:{prices['open']}, C:{prices['close']})"
            )

        record: ParsedRecord = {
            "date": date_value if isinstance(date_value, str) else str(date_value),
            "open": prices["open"],
            "high": prices["high"],
            "low": prices["low"],
            "close": prices["close"],
            "adjusted_close": adjusted_close,
            "volume": volume,
            "raw_data": row.raw if row.raw is not None else dict(row.fields),
        }
        return record

    @staticmethod
    def _to_number(value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                return None
        else:
            return None
        return number if math.isfinite(number) else None

    def _parse_price(
        self,
        value: Any,
        name: str,
        index: int,
        config: ParserConfig,
        issues: list[ParsingIssue],
        severity: Severity = Severity.HIGH,
    ) -> float | None:
        number = self._to_number(value)
        if number is None:
            issues.append(
                ParsingIssue(
                    type=ParsingIssueType.VALUE_ERROR,
                    message=f"Non-numeric value for field {name}",
                    severity=severity,
                    field=name,
                    record=index,
                    original_value=value,
                )
            )
            return None
        if number <= 0 or number > config.price_ceiling:
            issues.append(
                ParsingIssue(
                    type=ParsingIssueType.VALUE_ERROR,
                    message=f"Price out of range for field {name} ({number})",
                    severity=severity,
                    field=name,
                    record=index,
                    original_value=value,
                )
            )
            return None
        return number

    def _parse_volume(
        self,
        value: Any,
        index: int,
        config: ParserConfig,
        issues: list[ParsingIssue],
    ) -> float | str:
        if value is None:
            return 0.0
        number = self._to_number(value)
        if number is None and isinstance(value, str) and GROUPED_VOLUME.match(value):
            number = float(value.replace(",", ""))
        if number is None:
            if config.allow_unit_suffixed_volume and isinstance(value, str) and UNIT_SUFFIXED_VOLUME.match(value):
                return value.strip()
            issues.append(
                ParsingIssue(
                    type=ParsingIssueType.VALUE_ERROR,
                    message="Non-numeric value for field volume",
                    severity=Severity.MEDIUM,
                    field="volume",
                    record=index,
                    original_value=value,
                )
            )
            return 0.0
        if number < 0:
            issues.append(
                ParsingIssue(
                    type=ParsingIssueType.VALUE_ERROR,
                    message="Negative volume",
                    severity=Severity.MEDIUM,
                    field="volume",
                    record=index,
                    original_value=value,
                )
            )
            return 0.0
        return number


def as_mapping_rows(items: list[Any]) -> list[RawRow]:
    """Wrap list items as rows; non-mapping items are rejected when the row is built."""

    return [
        RawRow(index=index, fields=item if isinstance(item, Mapping) else None, raw=item)
        for index, item in enumerate(items)
    ]
