"""Canonical transformation response."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from marketnorm.core.models.base import CamelModel
from marketnorm.core.models.market import ErrorType, Severity
from marketnorm.core.models.records import CanonicalRecord


def utc_now_iso() -> str:
    """Current instant as ``YYYY-MM-DDTHH:MM:SS.sssZ``."""

    return format_instant(datetime.now(UTC))


def format_instant(value: datetime) -> str:
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class TransformationError(CamelModel):
    """Error surfaced by one of the transformation stages."""

    type: ErrorType
    message: str
    field: str | None = None
    original_value: Any = None
    timestamp: str = Field(default_factory=utc_now_iso)
    severity: Severity = Severity.MEDIUM


class ResponseMetadata(CamelModel):
    symbol: str = ""
    source: str = ""
    timeframe: str = ""
    start_date: str = ""
    end_date: str = ""
    timezone: str = "UTC"
    last_refreshed: str | None = None
    data_count: int = 0
    transformation_timestamp: str = Field(default_factory=utc_now_iso)
    split_adjusted: bool = False
    dividend_adjusted: bool = False
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)


class PerformanceStats(CamelModel):
    processing_time_ms: float = 0.0
    records_processed: int = 0
    records_skipped: int = 0
    cache_hit: bool = False


class StandardFinancialResponse(CamelModel):
    """Envelope returned by :meth:`TransformationPipeline.transform`."""

    data: list[CanonicalRecord] = Field(default_factory=list)
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    success: bool = True
    errors: list[TransformationError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    performance: PerformanceStats = Field(default_factory=PerformanceStats)


__all__ = [
    "TransformationError",
    "ResponseMetadata",
    "PerformanceStats",
    "StandardFinancialResponse",
    "format_instant",
    "utc_now_iso",
]
