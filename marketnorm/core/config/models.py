"""Validated per-stage configuration models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketnorm.core.models.market import Severity


class _StageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class ParserConfig(_StageConfig):
    """Numeric sanity limits applied while parsing provider payloads."""

    price_ceiling: float = Field(default=1_000_000.0, gt=0)
    allow_unit_suffixed_volume: bool = True
    emit_ohlc_warnings: bool = True


class DateValidationRules(_StageConfig):
    allow_future_dates: bool = False
    max_date_range: int = Field(default=1825, ge=0)
    min_date_range: int = Field(default=0, ge=0)
    allow_weekends_for_daily: bool = True
    allow_holidays_for_daily: bool = True
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_window(self) -> "DateValidationRules":
        if self.min_date_range > self.max_date_range:
            raise ValueError("min_date_range must not exceed max_date_range")
        return self


class DateNormalizerConfig(_StageConfig):
    default_timezone: str = "America/New_York"
    validation: DateValidationRules = Field(default_factory=DateValidationRules)
    drop_severity: Severity = Severity.CRITICAL
    enable_fallback_parser: bool = True


class SplitAdjusterConfig(_StageConfig):
    """Heuristics for split detection and back-adjustment."""

    enable_auto_detection: bool = True
    use_cache: bool = True
    split_threshold: float = Field(default=1.5, gt=1.0)
    canonical_ratios: list[float] = Field(default_factory=lambda: [1.5, 2.0, 2.5, 3.0, 3.5, 4.0, 5.0])
    ratio_tolerance: float = Field(default=0.3, ge=0.0)
    ratio_closeness: float = Field(default=0.1, ge=0.0)
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    base_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    volume_surge_ratio: float = Field(default=1.5, gt=0)
    volume_surge_weight: float = Field(default=0.2, ge=0.0)
    ratio_closeness_weight: float = Field(default=0.2, ge=0.0)
    continuity_tolerance: float = Field(default=0.05, ge=0.0)
    continuity_weight: float = Field(default=0.3, ge=0.0)
    gap_threshold: float = Field(default=0.3, ge=0.0)
    gap_weight: float = Field(default=0.1, ge=0.0)
    adjustment_precision: int = Field(default=6, ge=0, le=12)

    @field_validator("canonical_ratios")
    @classmethod
    def _check_ratios(cls, value: list[float]) -> list[float]:
        if not value or any(ratio <= 1 for ratio in value):
            raise ValueError("canonical_ratios must be a non-empty list of ratios above 1")
        return sorted(value)


class SpecialValueHandling(str, Enum):
    KEEP = "KEEP"
    REMOVE = "REMOVE"
    INTERPOLATE = "INTERPOLATE"


class InterpolationMethod(str, Enum):
    LINEAR = "LINEAR"
    MEDIAN = "MEDIAN"
    AVERAGE = "AVERAGE"


class VolumeNormalizerConfig(_StageConfig):
    special_value_handling: SpecialValueHandling = SpecialValueHandling.KEEP
    interpolation_method: InterpolationMethod = InterpolationMethod.LINEAR
    extreme_volume_threshold: float = Field(default=10.0, gt=1.0)
    detect_anomalies: bool = True


class QualityConfig(_StageConfig):
    price_anomaly_threshold: float = Field(default=0.2, gt=0)
    gap_weight: float = Field(default=0.2, ge=0.0)
    anomaly_weight: float = Field(default=0.3, ge=0.0)
    suspicious_volume_penalty: float = Field(default=0.1, ge=0.0, le=1.0)
    max_interval_gap: int = Field(default=3, ge=1)
    calendar: str = "us"


class DetectionConfig(_StageConfig):
    """Thresholds for the outlier detector."""

    sigma_threshold: float = Field(default=3.0, gt=0)
    rolling_window_size: int = Field(default=30, ge=2)
    min_data_points: int = Field(default=20, ge=2)
    price_jump_threshold: float = Field(default=0.20, gt=0)
    require_volume_confirmation: bool = True
    volume_confirmation_multiplier: float = Field(default=1.5, gt=0)
    volume_spike_threshold: float = Field(default=3.0, gt=0)
    volume_window_size: int = Field(default=20, ge=1)
    volatility_window_size: int = Field(default=5, ge=2)
    volatility_spike_threshold: float = Field(default=2.5, gt=0)
    enable_price_jump_detection: bool = True
    enable_volume_spike_detection: bool = True
    enable_statistical_outlier_detection: bool = True
    enable_gap_detection: bool = True
    enable_volatility_spike_detection: bool = False
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)


class TransformationConfig(_StageConfig):
    """Aggregated pipeline configuration."""

    enable_date_normalization: bool = True
    enable_split_adjustment: bool = True
    enable_volume_normalization: bool = True
    enable_quality_validation: bool = True
    timezone: str = "UTC"
    quality_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    dates: DateNormalizerConfig = Field(default_factory=DateNormalizerConfig)
    splits: SplitAdjusterConfig = Field(default_factory=SplitAdjusterConfig)
    volume: VolumeNormalizerConfig = Field(default_factory=VolumeNormalizerConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)

    def merged(self, overrides: Mapping[str, Any] | TransformationConfig | None) -> TransformationConfig:
        """Return a copy with ``overrides`` deep merged on top of this config."""

        if overrides is None:
            return self
        if isinstance(overrides, TransformationConfig):
            return overrides
        payload = deep_update(self.model_dump(), dict(overrides))
        return TransformationConfig.model_validate(payload)


def deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    """深度更新字典"""

    for key, value in updates.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            target[key] = deep_update(target[key], value)
        else:
            target[key] = value
    return target


__all__ = [
    "DateNormalizerConfig",
    "DateValidationRules",
    "DetectionConfig",
    "InterpolationMethod",
    "ParserConfig",
    "QualityConfig",
    "SpecialValueHandling",
    "SplitAdjusterConfig",
    "TransformationConfig",
    "VolumeNormalizerConfig",
    "deep_update",
]
