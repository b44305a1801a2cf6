"""Record shapes flowing through the transformation stages.

Intermediate stages exchange plain dictionaries so that provider-specific keys
survive until the canonical conversion; the ``TypedDict`` declarations below
document the keys each stage guarantees.
"""

from __future__ import annotations

from typing import Any, TypedDict

from pydantic import Field

from marketnorm.core.models.base import CamelModel

Record = dict[str, Any]


class ParsedRecord(TypedDict, total=False):
    """Loosely typed OHLCV row emitted by a provider parser."""

    date: str
    open: float
    high: float
    low: float
    close: float
    adjusted_close: float | None
    volume: float | str
    raw_data: Any


class NormalizedRecord(ParsedRecord, total=False):
    """Parsed row with canonical date fields attached."""

    timestamp: str
    original_date: Any
    date_format: str
    date_confidence: float


class QualityFlags(CamelModel):
    """Per-record data quality annotations."""

    has_gaps: bool = False
    suspicious_volume: bool = False
    price_anomalies: bool = False
    adjusted_for_splits: bool = False
    validated: bool = False
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class CanonicalRecord(CamelModel):
    """Final canonical OHLCV row."""

    date: str
    timestamp: str
    open: float
    high: float
    low: float
    close: float
    adjusted_close: float
    volume: float
    volume_normalized: float
    source: str
    symbol: str
    timeframe: str
    date_format: str | None = None
    date_confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    split_adjustment_factor: float = 1.0
    data_quality: QualityFlags = Field(default_factory=QualityFlags)


__all__ = ["Record", "ParsedRecord", "NormalizedRecord", "QualityFlags", "CanonicalRecord"]
