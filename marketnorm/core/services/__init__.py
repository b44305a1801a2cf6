"""Transformation stages, outlier detection and the orchestrating pipeline."""

from marketnorm.core.services.calendars import TradingCalendar, TradingCalendarProvider, builtin_calendars
from marketnorm.core.services.dates import DateNormalizationResult, DateNormalizer, DateParsingResult
from marketnorm.core.services.outliers import OutlierDetector
from marketnorm.core.services.pipeline import TransformationPipeline
from marketnorm.core.services.quality import QualityValidator
from marketnorm.core.services.split_cache import InMemorySplitEventCache, SplitEventCache
from marketnorm.core.services.splits import SplitAdjuster, SplitAdjustmentResult
from marketnorm.core.services.volume import VolumeNormalizationResult, VolumeNormalizer, parse_volume_value

__all__ = [
    "DateNormalizationResult",
    "DateNormalizer",
    "DateParsingResult",
    "InMemorySplitEventCache",
    "OutlierDetector",
    "QualityValidator",
    "SplitAdjuster",
    "SplitAdjustmentResult",
    "SplitEventCache",
    "TradingCalendar",
    "TradingCalendarProvider",
    "TransformationPipeline",
    "VolumeNormalizationResult",
    "VolumeNormalizer",
    "builtin_calendars",
    "parse_volume_value",
]
