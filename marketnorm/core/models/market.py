"""Source, timeframe and severity enums."""

from enum import Enum


class DataSource(str, Enum):
    """Upstream market-data providers with a built-in parser."""

    ALPHA_VANTAGE = "alpha_vantage"
    YAHOO_FINANCE = "yahoo_finance"
    IEX_CLOUD = "iex_cloud"
    POLYGON = "polygon"
    QUANDL = "quandl"


class TimeFrame(str, Enum):
    """时间框架枚举."""

    MINUTE_1 = "1min"
    MINUTE_5 = "5min"
    MINUTE_15 = "15min"
    MINUTE_30 = "30min"
    HOUR_1 = "1hour"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_TIMEFRAME_ALIASES: dict[str, TimeFrame] = {
    "1m": TimeFrame.MINUTE_1,
    "5m": TimeFrame.MINUTE_5,
    "15m": TimeFrame.MINUTE_15,
    "30m": TimeFrame.MINUTE_30,
    "60min": TimeFrame.HOUR_1,
    "1h": TimeFrame.HOUR_1,
    "1d": TimeFrame.DAILY,
    "day": TimeFrame.DAILY,
    "1w": TimeFrame.WEEKLY,
    "1wk": TimeFrame.WEEKLY,
    "1mo": TimeFrame.MONTHLY,
    "1M": TimeFrame.MONTHLY,
}


def resolve_timeframe(value: str | TimeFrame | None) -> TimeFrame | None:
    """Map free-form timeframe labels onto :class:`TimeFrame`, ``None`` if unknown."""

    if value is None or isinstance(value, TimeFrame):
        return value
    if value in _TIMEFRAME_ALIASES:
        return _TIMEFRAME_ALIASES[value]
    try:
        return TimeFrame(value.strip().lower())
    except ValueError:
        return _TIMEFRAME_ALIASES.get(value.strip().lower())


class Severity(str, Enum):
    """Ordered severity levels for errors, anomalies and validation issues."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "Severity") -> bool:
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ErrorType(str, Enum):
    """Kinds of errors surfaced in a transformation response."""

    PARSING_ERROR = "PARSING_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORMAT_ERROR = "FORMAT_ERROR"
    DATA_QUALITY_ERROR = "DATA_QUALITY_ERROR"


__all__ = ["DataSource", "TimeFrame", "Severity", "ErrorType", "resolve_timeframe"]
