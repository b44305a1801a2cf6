"""Outlier events and the analysis report produced by the detector."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from marketnorm.core.models.base import CamelModel


class OutlierType(str, Enum):
    PRICE_JUMP = "price_jump"
    VOLUME_SPIKE = "volume_spike"
    STATISTICAL_OUTLIER = "statistical_outlier"
    GAP_MOVE = "gap_move"
    VOLATILITY_SPIKE = "volatility_spike"


class OutlierSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OutlierEvent(CamelModel):
    """One anomalous observation in a price series."""

    id: str
    date: str
    symbol: str
    type: OutlierType
    severity: OutlierSeverity
    confidence: float = Field(ge=0.0, le=1.0)
    value: float
    expected_value: float
    deviation_magnitude: float
    description: str
    explanation: str
    recommendation: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class OutlierSummary(CamelModel):
    price_jumps: int = 0
    volume_spikes: int = 0
    statistical_outliers: int = 0
    gap_moves: int = 0
    volatility_spikes: int = 0
    critical_events: int = 0
    avg_confidence: float = 0.0


class DetectionPerformance(CamelModel):
    processing_time_ms: float = 0.0
    data_points_analyzed: int = 0
    algorithms_used: list[str] = Field(default_factory=list)


class AnalysisReport(CamelModel):
    """Aggregated outcome of one outlier analysis run."""

    symbol: str
    total_data_points: int
    outliers_detected: int
    outlier_percentage: float
    events: list[OutlierEvent] = Field(default_factory=list)
    summary: OutlierSummary = Field(default_factory=OutlierSummary)
    risk_score: int = Field(ge=0, le=100)
    quality_score: int = Field(ge=0, le=100)
    last_analysis_time: str
    performance_metrics: DetectionPerformance = Field(default_factory=DetectionPerformance)


__all__ = [
    "OutlierType",
    "OutlierSeverity",
    "OutlierEvent",
    "OutlierSummary",
    "DetectionPerformance",
    "AnalysisReport",
]
