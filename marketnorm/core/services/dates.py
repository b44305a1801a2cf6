"""Date normalization with per-record confidence and validation."""

from __future__ import annotations

import re
import warnings
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

from marketnorm.core.config.models import DateNormalizerConfig
from marketnorm.core.exceptions import ConfigurationError
from marketnorm.core.logging import get_logger
from marketnorm.core.models.market import Severity, TimeFrame, resolve_timeframe
from marketnorm.core.models.records import NormalizedRecord, Record
from marketnorm.core.models.response import format_instant
from marketnorm.core.services.calendars import TradingCalendar, TradingCalendarProvider

logger = get_logger(__name__)

Clock = Callable[[], datetime]

TIMEZONE_ALIASES: dict[str, str] = {
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "GMT": "UTC",
    "UTC": "UTC",
    "US/Eastern": "America/New_York",
    "US/Pacific": "America/Los_Angeles",
}

DATE_FIELDS = (
    "date",
    "timestamp",
    "time",
    "datetime",
    "Date",
    "Timestamp",
    "Time",
    "DateTime",
    "DATE",
    "TIMESTAMP",
    "TIME",
    "DATETIME",
)


def normalize_timezone(name: str) -> str:
    """Map common abbreviations onto IANA zone names."""

    return TIMEZONE_ALIASES.get(name.strip(), name.strip())


@dataclass(frozen=True, slots=True)
class DatePattern:
    name: str
    regex: re.Pattern[str]
    confidence: float


DATE_PATTERNS: tuple[DatePattern, ...] = (
    DatePattern("ISO_FULL", re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d{1,6})Z$"), 1.0),
    DatePattern("ISO_SECONDS", re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})Z$"), 1.0),
    DatePattern("ISO_MINUTES", re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})Z$"), 1.0),
    DatePattern(
        "ISO_OFFSET",
        re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2})(?:\.\d{1,6})?)?[+-]\d{2}:?\d{2}$"),
        1.0,
    ),
    DatePattern("ISO_DATE", re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), 1.0),
    DatePattern("ALPHA_VANTAGE_FULL", re.compile(r"^(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2})$"), 1.0),
    DatePattern("ALPHA_VANTAGE_MINUTES", re.compile(r"^(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2})$"), 1.0),
    DatePattern("YAHOO_US", re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), 0.9),
    DatePattern("YAHOO_US_FLEXIBLE", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), 0.9),
    DatePattern("UNIX_SECONDS", re.compile(r"^(\d{10})$"), 1.0),
    DatePattern("UNIX_MILLISECONDS", re.compile(r"^(\d{13})$"), 1.0),
    DatePattern("GENERIC_DMY", re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), 0.7),
    DatePattern("COMPACT_YMD", re.compile(r"^(\d{4})(\d{2})(\d{2})$"), 1.0),
)

FALLBACK_FORMAT = "PANDAS_FALLBACK"
FALLBACK_CONFIDENCE = 0.5


@dataclass(slots=True)
class DateParsingResult:
    success: bool
    original_value: str
    detected_format: str
    timezone: str
    confidence: float = 0.0
    date: str = ""
    timestamp: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def instant(self) -> datetime:
        return datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))


@dataclass(frozen=True, slots=True)
class DateRuleViolation:
    reason: str
    severity: Severity


@dataclass(slots=True)
class DateNormalizationResult:
    records: list[NormalizedRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class DateFormatTest:
    recognized: bool
    format: str
    confidence: float
    parsed: DateParsingResult | None = None


class DateNormalizer:
    """Converts heterogeneous date encodings into canonical dates and instants.

    Each parse carries a confidence score; exact ISO forms score 1.0 while
    locale-ambiguous slash and dash forms score lower. Slash dates are read
    as month/day and dash dates as day/month.
    """

    def __init__(
        self,
        config: DateNormalizerConfig | None = None,
        *,
        clock: Clock | None = None,
        calendar: TradingCalendar | None = None,
    ) -> None:
        self.config = config or DateNormalizerConfig()
        self.timezone = normalize_timezone(self.config.default_timezone)
        try:
            self._zone = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                f"Unknown timezone: {self.config.default_timezone}",
                details={"timezone": self.config.default_timezone},
            ) from exc
        self._clock = clock or (lambda: datetime.now(UTC))
        self._calendar = calendar or TradingCalendarProvider().get_calendar("us")

    def parse_date(self, value: Any) -> DateParsingResult:
        """Parse one date value, trying each known pattern in priority order."""

        if isinstance(value, datetime):
            instant = value if value.tzinfo else value.replace(tzinfo=UTC)
            return self._success(str(value), "NATIVE_DATETIME", instant, instant.date(), 1.0, "UTC")
        if isinstance(value, date):
            instant = datetime.combine(value, time(), tzinfo=UTC)
            return self._success(value.isoformat(), "NATIVE_DATE", instant, value, 1.0, "UTC")

        if isinstance(value, float) and value.is_integer():
            value = int(value)
        original = "" if value is None else str(value).strip()
        if not original or isinstance(value, bool):
            return DateParsingResult(
                success=False,
                original_value=original,
                detected_format="EMPTY",
                timezone=self.timezone,
                errors=["Empty date value"],
            )

        for pattern in DATE_PATTERNS:
            match = pattern.regex.match(original)
            if match is None:
                continue
            try:
                return self._parse_match(pattern, match, original)
            except (ValueError, OverflowError, OSError):
                continue

        if self.config.enable_fallback_parser:
            fallback = self._parse_fallback(original)
            if fallback is not None:
                return fallback

        return DateParsingResult(
            success=False,
            original_value=original,
            detected_format="UNKNOWN",
            timezone=self.timezone,
            errors=[f"Unrecognized date format: {original}"],
        )

    def _success(
        self,
        original: str,
        fmt: str,
        instant: datetime,
        calendar_date: date,
        confidence: float,
        timezone: str,
    ) -> DateParsingResult:
        return DateParsingResult(
            success=True,
            original_value=original,
            detected_format=fmt,
            timezone=timezone,
            confidence=confidence,
            date=calendar_date.isoformat(),
            timestamp=format_instant(instant),
        )

    def _parse_match(self, pattern: DatePattern, match: re.Match[str], original: str) -> DateParsingResult:
        name = pattern.name
        if name in {"ISO_FULL", "ISO_SECONDS", "ISO_MINUTES"}:
            instant = datetime.fromisoformat(original.replace("Z", "+00:00"))
            return self._success(original, name, instant, instant.date(), pattern.confidence, "UTC")
        if name == "ISO_OFFSET":
            local = datetime.fromisoformat(original)
            return self._success(original, name, local, local.date(), pattern.confidence, str(local.tzinfo))
        if name in {"ALPHA_VANTAGE_FULL", "ALPHA_VANTAGE_MINUTES"}:
            local = datetime.fromisoformat(original).replace(tzinfo=self._zone)
            return self._success(original, name, local, local.date(), pattern.confidence, self.timezone)
        if name in {"UNIX_SECONDS", "UNIX_MILLISECONDS"}:
            seconds = int(original) / (1000 if name == "UNIX_MILLISECONDS" else 1)
            instant = datetime.fromtimestamp(seconds, tz=UTC)
            return self._success(original, name, instant, instant.date(), pattern.confidence, "UTC")

        if name == "ISO_DATE" or name == "COMPACT_YMD":
            year, month, day = match.group(1), match.group(2), match.group(3)
        elif name in {"YAHOO_US", "YAHOO_US_FLEXIBLE"}:
            month, day, year = match.group(1), match.group(2), match.group(3)
        else:
            day, month, year = match.group(1), match.group(2), match.group(3)
        calendar_date = date(int(year), int(month), int(day))
        instant = datetime.combine(calendar_date, time(), tzinfo=UTC)
        return self._success(original, name, instant, calendar_date, pattern.confidence, "UTC")

    def _parse_fallback(self, original: str) -> DateParsingResult | None:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                parsed = pd.to_datetime(original, utc=True)
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(parsed):
            return None
        instant = parsed.to_pydatetime()
        return self._success(original, FALLBACK_FORMAT, instant, instant.date(), FALLBACK_CONFIDENCE, "UTC")

    def validate(self, result: DateParsingResult, timeframe: TimeFrame | None = None) -> list[DateRuleViolation]:
        """Evaluate the configured validation rules against a successful parse."""

        rules = self.config.validation
        violations: list[DateRuleViolation] = []
        instant = result.instant
        now = self._clock()

        if not rules.allow_future_dates and instant > now:
            violations.append(DateRuleViolation("Future date not allowed", Severity.HIGH))

        days = abs((now - instant) / timedelta(days=1))
        if days > rules.max_date_range:
            violations.append(DateRuleViolation(f"Date too old ({round(days)} days)", Severity.MEDIUM))
        if days < rules.min_date_range:
            violations.append(DateRuleViolation("Date too recent", Severity.LOW))

        if timeframe is TimeFrame.DAILY:
            calendar_date = date.fromisoformat(result.date)
            if not rules.allow_weekends_for_daily and self._calendar.is_weekend(calendar_date):
                violations.append(DateRuleViolation("Weekend not allowed for daily data", Severity.LOW))
            if not rules.allow_holidays_for_daily and self._calendar.is_holiday(calendar_date):
                violations.append(DateRuleViolation("Market holiday not allowed for daily data", Severity.LOW))

        if result.confidence < rules.min_confidence:
            violations.append(DateRuleViolation("Date parsing confidence too low", Severity.MEDIUM))
        return violations

    @staticmethod
    def find_date_field(record: Mapping[str, Any]) -> str | None:
        for name in DATE_FIELDS:
            if record.get(name) is not None:
                return name
        for key, value in record.items():
            lowered = key.lower()
            if ("date" in lowered or "time" in lowered) and value is not None:
                return key
        return None

    def normalize_with_report(
        self,
        records: Iterable[Record],
        timeframe: str | TimeFrame | None = None,
    ) -> DateNormalizationResult:
        resolved = resolve_timeframe(timeframe)
        result = DateNormalizationResult()
        for index, record in enumerate(records):
            date_field = self.find_date_field(record)
            if date_field is None:
                result.warnings.append(f"Record {index}: no date field found")
                result.skipped += 1
                continue

            parsed = self.parse_date(record[date_field])
            if not parsed.success:
                result.warnings.append(f"Record {index}: {', '.join(parsed.errors)}")
                result.skipped += 1
                continue

            dropped = False
            for violation in self.validate(parsed, resolved):
                result.warnings.append(f"Record {index}: {violation.reason}")
                if violation.severity.at_least(self.config.drop_severity):
                    dropped = True
            if dropped:
                result.skipped += 1
                continue

            normalized: NormalizedRecord = {
                **record,
                "date": parsed.date,
                "timestamp": parsed.timestamp,
                "original_date": record[date_field],
                "date_format": parsed.detected_format,
                "date_confidence": parsed.confidence,
            }
            result.records.append(normalized)

        if result.warnings:
            logger.warning(
                f"Date normalization produced {len(result.warnings)} warnings: {result.warnings[:5]}"
            )
        return result

    def normalize(self, records: Iterable[Record], timeframe: str | TimeFrame | None = None) -> list[NormalizedRecord]:
        return self.normalize_with_report(records, timeframe).records

    def test_date_format(self, value: Any) -> DateFormatTest:
        result = self.parse_date(value)
        return DateFormatTest(
            recognized=result.success,
            format=result.detected_format,
            confidence=result.confidence,
            parsed=result if result.success else None,
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "supported_formats": [pattern.name for pattern in DATE_PATTERNS],
            "timezone": self.timezone,
            "validation_rules": self.config.validation.model_dump(),
        }
