"""Volume conversion and anomaly models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from marketnorm.core.models.base import CamelModel
from marketnorm.core.models.market import Severity


class VolumeUnit(str, Enum):
    UNITS = "units"
    THOUSANDS = "K"
    MILLIONS = "M"
    BILLIONS = "B"
    TRILLIONS = "T"
    DIRECT = "DIRECT"


class VolumeAnomalyType(str, Enum):
    ZERO_VOLUME = "ZERO_VOLUME"
    NEGATIVE_VOLUME = "NEGATIVE_VOLUME"
    EXTREME_HIGH = "EXTREME_HIGH"
    EXTREME_LOW = "EXTREME_LOW"
    INCONSISTENT_FORMAT = "INCONSISTENT_FORMAT"


class VolumeConversion(CamelModel):
    """Outcome of converting one raw volume value."""

    original_value: Any = None
    normalized_value: float = 0.0
    detected_unit: VolumeUnit = VolumeUnit.UNITS
    conversion_factor: float = 1.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class VolumeAnomaly(CamelModel):
    """A volume value flagged as unusual, keyed to its record position."""

    type: VolumeAnomalyType
    record: int
    original_value: Any = None
    normalized_value: float | None = None
    severity: Severity
    description: str


__all__ = ["VolumeUnit", "VolumeAnomalyType", "VolumeConversion", "VolumeAnomaly"]
