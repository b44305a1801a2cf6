"""Tests for volume unit conversion, anomaly detection and special values."""

from __future__ import annotations

import pytest

from marketnorm.core.config import InterpolationMethod, SpecialValueHandling, VolumeNormalizerConfig
from marketnorm.core.models import VolumeAnomalyType, VolumeUnit
from marketnorm.core.services.volume import VolumeNormalizer, parse_volume_value


def test_millions_suffix() -> None:
    conversion = parse_volume_value("1.5M")

    assert conversion is not None
    assert conversion.normalized_value == 1_500_000
    assert conversion.detected_unit == VolumeUnit.MILLIONS
    assert conversion.confidence >= 0.8


@pytest.mark.parametrize(
    ("value", "expected", "unit"),
    [
        ("250", 250, VolumeUnit.UNITS),
        (250, 250, VolumeUnit.UNITS),
        ("12K", 12_000, VolumeUnit.THOUSANDS),
        ("2b", 2_000_000_000, VolumeUnit.BILLIONS),
        ("1,250,000", 1_250_000, VolumeUnit.UNITS),
        (1.2e7, 12_000_000, VolumeUnit.UNITS),
        ("1e3", 1000, VolumeUnit.DIRECT),
    ],
)
def test_parse_volume_value(value: object, expected: float, unit: VolumeUnit) -> None:
    conversion = parse_volume_value(value)

    assert conversion is not None
    assert conversion.normalized_value == expected
    assert conversion.detected_unit == unit


@pytest.mark.parametrize("value", ["lots", None, True, "-5", "1.5X"])
def test_unparseable_volume(value: object) -> None:
    assert parse_volume_value(value) is None


def _records(*volumes: object) -> list[dict[str, object]]:
    return [{"date": f"2024-03-{day:02d}", "close": 10.0, "volume": volume} for day, volume in enumerate(volumes, 1)]


def test_unparseable_string_is_inconsistent_format() -> None:
    result = VolumeNormalizer().process_volume_data(_records("1000", "lots", "1100"))

    anomaly = result.anomalies[0]
    assert anomaly.type == VolumeAnomalyType.INCONSISTENT_FORMAT
    assert anomaly.record == 1
    assert anomaly.description == "Unable to normalize volume: lots"
    assert result.normalized_data[1]["volume"] == 0
    assert result.suspicious_indices == {1}


def test_extreme_and_zero_volumes_are_flagged() -> None:
    result = VolumeNormalizer().process_volume_data(_records(1000, 1000, 0, 1000, 50_000, 1000))

    kinds = {anomaly.record: anomaly.type for anomaly in result.anomalies}
    assert kinds == {2: VolumeAnomalyType.ZERO_VOLUME, 4: VolumeAnomalyType.EXTREME_HIGH}
    assert result.stats.records_normalized == 6
    assert result.stats.median_volume == 1000.0


def test_remove_handling_drops_zero_and_unparsed_records() -> None:
    config = VolumeNormalizerConfig(special_value_handling=SpecialValueHandling.REMOVE)

    result = VolumeNormalizer(config).process_volume_data(_records(1000, 0, "lots", 1200))

    assert [record["volume"] for record in result.normalized_data] == [1000, 1200]


@pytest.mark.parametrize(
    ("method", "expected"),
    [
        (InterpolationMethod.LINEAR, 200.0),
        (InterpolationMethod.MEDIAN, 300.0),
        (InterpolationMethod.AVERAGE, 400.0),
    ],
)
def test_interpolation_methods(method: InterpolationMethod, expected: float) -> None:
    config = VolumeNormalizerConfig(
        special_value_handling=SpecialValueHandling.INTERPOLATE,
        interpolation_method=method,
        detect_anomalies=True,
    )

    result = VolumeNormalizer(config).process_volume_data(_records(100, 0, 300, 800))

    assert result.normalized_data[1]["volume"] == expected
    assert result.normalized_data[1]["volume_interpolated"] is True


def test_normalize_volume_returns_input_when_empty() -> None:
    assert VolumeNormalizer().normalize_volume([]) == []


def test_test_normalization_reports_error() -> None:
    normalizer = VolumeNormalizer()

    assert normalizer.test_normalization("3.2K").conversion.normalized_value == 3200
    assert normalizer.test_normalization("abc").error == "Unable to normalize value: abc"
