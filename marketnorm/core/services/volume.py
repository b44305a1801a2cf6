"""Volume normalization and anomaly detection."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from marketnorm.core.config.models import InterpolationMethod, SpecialValueHandling, VolumeNormalizerConfig
from marketnorm.core.logging import get_logger
from marketnorm.core.models.market import Severity
from marketnorm.core.models.records import Record
from marketnorm.core.models.volume import VolumeAnomaly, VolumeAnomalyType, VolumeConversion, VolumeUnit

logger = get_logger(__name__)

VOLUME_FIELDS = ("volume", "Volume", "VOLUME", "vol", "Vol", "VOL", "v", "V")

_VOLUME_PATTERNS: tuple[tuple[re.Pattern[str], VolumeUnit, float], ...] = (
    (re.compile(r"^(\d+(?:\.\d+)?)\s*[kK]$"), VolumeUnit.THOUSANDS, 1e3),
    (re.compile(r"^(\d+(?:\.\d+)?)\s*[mM]$"), VolumeUnit.MILLIONS, 1e6),
    (re.compile(r"^(\d+(?:\.\d+)?)\s*[bB]$"), VolumeUnit.BILLIONS, 1e9),
    (re.compile(r"^(\d+(?:\.\d+)?)\s*[tT]$"), VolumeUnit.TRILLIONS, 1e12),
    (re.compile(r"^(\d+(?:\.\d+)?)$"), VolumeUnit.UNITS, 1.0),
)
_THOUSANDS_SEPARATED = re.compile(r"^\d{1,3}(?:,\d{3})+(?:\.\d+)?\s*[kKmMbBtT]?$")
_CLEAN_FORMAT = re.compile(r"^\d+(\.\d+)?[KMBTkmbt]?$")
_STANDARD_FORMAT = re.compile(r"^\d+[KMB]$")

DIRECT_CONFIDENCE = 0.8


def _conversion_confidence(text: str, unit: VolumeUnit, mantissa: float) -> float:
    confidence = 0.5
    if _CLEAN_FORMAT.match(text):
        confidence += 0.3
    if unit not in (VolumeUnit.UNITS, VolumeUnit.DIRECT):
        confidence += 0.2
    if 0 < mantissa < 1_000_000:
        confidence += 0.2
    if _STANDARD_FORMAT.match(text):
        confidence += 0.1
    return min(confidence, 1.0)


def parse_volume_value(value: Any) -> VolumeConversion | None:
    """Convert a raw volume into shares; ``None`` when it cannot be read."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    candidate = text.replace(",", "") if _THOUSANDS_SEPARATED.match(text) else text

    for pattern, unit, factor in _VOLUME_PATTERNS:
        match = pattern.match(candidate)
        if match is None:
            continue
        mantissa = float(match.group(1))
        return VolumeConversion(
            original_value=value,
            normalized_value=round(mantissa * factor),
            detected_unit=unit,
            conversion_factor=factor,
            confidence=_conversion_confidence(text, unit, mantissa),
        )

    try:
        direct = float(candidate)
    except ValueError:
        return None
    if not np.isfinite(direct) or direct < 0:
        return None
    return VolumeConversion(
        original_value=value,
        normalized_value=round(direct),
        detected_unit=VolumeUnit.DIRECT,
        conversion_factor=1.0,
        confidence=DIRECT_CONFIDENCE,
    )


@dataclass(slots=True)
class VolumeStats:
    records_processed: int = 0
    records_normalized: int = 0
    average_volume: float = 0.0
    median_volume: float = 0.0
    volume_range: tuple[float, float] = (0.0, 0.0)


@dataclass(slots=True)
class VolumeNormalizationResult:
    normalized_data: list[Record] = field(default_factory=list)
    conversions: list[VolumeConversion] = field(default_factory=list)
    anomalies: list[VolumeAnomaly] = field(default_factory=list)
    stats: VolumeStats = field(default_factory=VolumeStats)

    @property
    def success(self) -> bool:
        return bool(self.normalized_data)

    @property
    def suspicious_indices(self) -> set[int]:
        return {anomaly.record for anomaly in self.anomalies}


@dataclass(frozen=True, slots=True)
class VolumeTestResult:
    can_normalize: bool
    conversion: VolumeConversion | None = None
    error: str | None = None


class VolumeNormalizer:
    """Resolves unit-suffixed volumes into shares and flags unusual values."""

    def __init__(self, config: VolumeNormalizerConfig | None = None) -> None:
        self.config = config or VolumeNormalizerConfig()

    @staticmethod
    def find_volume_field(record: Mapping[str, Any]) -> str | None:
        for name in VOLUME_FIELDS:
            if record.get(name) is not None:
                return name
        return None

    def process_volume_data(self, records: Iterable[Record]) -> VolumeNormalizationResult:
        result = VolumeNormalizationResult()
        normalized: list[Record] = []
        unparsed: set[int] = set()

        for index, record in enumerate(records):
            volume_field = self.find_volume_field(record)
            original = record.get(volume_field) if volume_field else None
            conversion = parse_volume_value(original) if volume_field else None

            if conversion is None:
                unparsed.add(index)
                result.anomalies.append(
                    VolumeAnomaly(
                        type=VolumeAnomalyType.INCONSISTENT_FORMAT,
                        record=index,
                        original_value=original,
                        severity=Severity.HIGH if volume_field else Severity.MEDIUM,
                        description=(
                            f"Unable to normalize volume: {original}" if volume_field else "Volume field not found"
                        ),
                    )
                )
                normalized.append({**record, "volume": 0, "volume_normalized": 0, "original_volume": original})
                continue

            result.conversions.append(conversion)
            normalized.append(
                {
                    **record,
                    "volume": conversion.normalized_value,
                    "volume_normalized": conversion.normalized_value,
                    "original_volume": original,
                    "volume_unit": conversion.detected_unit,
                }
            )

        if self.config.detect_anomalies:
            result.anomalies.extend(self._detect_anomalies(normalized, unparsed))

        result.normalized_data = self._handle_special_values(normalized, result.anomalies, unparsed)
        result.stats = self._stats(result.normalized_data, len(result.conversions))
        return result

    def normalize_volume(self, records: list[Record]) -> list[Record]:
        if not records:
            return records
        result = self.process_volume_data(records)
        return result.normalized_data if result.success else records

    def _detect_anomalies(self, records: list[Record], unparsed: set[int]) -> list[VolumeAnomaly]:
        indices = [index for index in range(len(records)) if index not in unparsed]
        if not indices:
            return []
        volumes = np.array([float(records[index]["volume_normalized"]) for index in indices])
        median = float(np.median(volumes))
        threshold = self.config.extreme_volume_threshold
        upper = median * threshold

        anomalies: list[VolumeAnomaly] = []
        for index, volume in zip(indices, volumes.tolist()):
            original = records[index].get("original_volume", volume)
            if volume == 0:
                kind, severity, description = VolumeAnomalyType.ZERO_VOLUME, Severity.LOW, "Zero volume detected"
            elif volume < 0:
                kind, severity, description = VolumeAnomalyType.NEGATIVE_VOLUME, Severity.HIGH, "Negative volume detected"
            elif median > 0 and volume > upper:
                kind, severity = VolumeAnomalyType.EXTREME_HIGH, Severity.MEDIUM
                description = f"Extremely high volume: {volume:g} (threshold: {upper:g})"
            elif median > 0 and volume < median / threshold:
                kind, severity = VolumeAnomalyType.EXTREME_LOW, Severity.LOW
                description = f"Extremely low volume: {volume:g} (median: {median:g})"
            else:
                continue
            anomalies.append(
                VolumeAnomaly(
                    type=kind,
                    record=index,
                    original_value=original,
                    normalized_value=volume,
                    severity=severity,
                    description=description,
                )
            )
        return anomalies

    def _handle_special_values(
        self,
        records: list[Record],
        anomalies: list[VolumeAnomaly],
        unparsed: set[int],
    ) -> list[Record]:
        handling = self.config.special_value_handling
        if handling == SpecialValueHandling.KEEP:
            return records

        targets = set(unparsed)
        targets.update(anomaly.record for anomaly in anomalies if anomaly.type == VolumeAnomalyType.ZERO_VOLUME)
        if handling == SpecialValueHandling.REMOVE:
            return [record for index, record in enumerate(records) if index not in targets]

        volumes = [float(record["volume_normalized"]) for record in records]
        result = list(records)
        for index in sorted(targets):
            value = self._interpolate(volumes, index)
            result[index] = {**records[index], "volume": value, "volume_normalized": value, "volume_interpolated": True}
        return result

    def _interpolate(self, volumes: list[float], index: int) -> float:
        method = self.config.interpolation_method
        positive = np.array([value for value in volumes if value > 0])
        if method == InterpolationMethod.MEDIAN:
            return float(np.median(positive)) if positive.size else 0.0
        if method == InterpolationMethod.AVERAGE:
            return float(positive.mean()) if positive.size else 0.0

        previous = next((i for i in range(index - 1, -1, -1) if volumes[i] > 0), None)
        following = next((i for i in range(index + 1, len(volumes)) if volumes[i] > 0), None)
        if previous is not None and following is not None:
            ratio = (index - previous) / (following - previous)
            return float(round(volumes[previous] + (volumes[following] - volumes[previous]) * ratio))
        if previous is not None:
            return volumes[previous]
        if following is not None:
            return volumes[following]
        return 0.0

    @staticmethod
    def _stats(records: list[Record], normalized_count: int) -> VolumeStats:
        volumes = np.array([float(record.get("volume_normalized", 0)) for record in records])
        volumes = volumes[volumes >= 0]
        if not volumes.size:
            return VolumeStats(records_processed=len(records), records_normalized=normalized_count)
        return VolumeStats(
            records_processed=len(records),
            records_normalized=normalized_count,
            average_volume=float(volumes.mean()),
            median_volume=float(np.median(volumes)),
            volume_range=(float(volumes.min()), float(volumes.max())),
        )

    def test_normalization(self, value: Any) -> VolumeTestResult:
        conversion = parse_volume_value(value)
        if conversion is None:
            return VolumeTestResult(can_normalize=False, error=f"Unable to normalize value: {value}")
        return VolumeTestResult(can_normalize=True, conversion=conversion)

    def get_config(self) -> dict[str, Any]:
        return self.config.model_dump(mode="json")
