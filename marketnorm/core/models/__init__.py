"""Core data models."""

from marketnorm.core.models.base import CamelModel
from marketnorm.core.models.market import DataSource, ErrorType, Severity, TimeFrame, resolve_timeframe
from marketnorm.core.models.outliers import (
    AnalysisReport,
    DetectionPerformance,
    OutlierEvent,
    OutlierSeverity,
    OutlierSummary,
    OutlierType,
)
from marketnorm.core.models.records import CanonicalRecord, NormalizedRecord, ParsedRecord, QualityFlags, Record
from marketnorm.core.models.response import (
    PerformanceStats,
    ResponseMetadata,
    StandardFinancialResponse,
    TransformationError,
    format_instant,
    utc_now_iso,
)
from marketnorm.core.models.splits import SplitEvent, merge_split_events
from marketnorm.core.models.volume import VolumeAnomaly, VolumeAnomalyType, VolumeConversion, VolumeUnit

__all__ = [
    "AnalysisReport",
    "CamelModel",
    "CanonicalRecord",
    "DataSource",
    "DetectionPerformance",
    "ErrorType",
    "NormalizedRecord",
    "OutlierEvent",
    "OutlierSeverity",
    "OutlierSummary",
    "OutlierType",
    "ParsedRecord",
    "PerformanceStats",
    "QualityFlags",
    "Record",
    "ResponseMetadata",
    "Severity",
    "SplitEvent",
    "StandardFinancialResponse",
    "TimeFrame",
    "TransformationError",
    "VolumeAnomaly",
    "VolumeAnomalyType",
    "VolumeConversion",
    "VolumeUnit",
    "format_instant",
    "merge_split_events",
    "resolve_timeframe",
    "utc_now_iso",
]
