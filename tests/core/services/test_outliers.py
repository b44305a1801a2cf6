"""Tests for the outlier detector."""

from __future__ import annotations

from typing import Any

import pandas as pd
import pytest
from prometheus_client import CollectorRegistry

from marketnorm.core.config import DetectionConfig
from marketnorm.core.exceptions import ConfigurationError, DataValidationError, InsufficientDataError
from marketnorm.core.models import OutlierSeverity, OutlierType
from marketnorm.core.monitoring import MetricsCollector
from marketnorm.core.services.outliers import OutlierDetector


def _series(
    length: int = 60,
    jump_at: int | None = 40,
    jump_level: float = 128.0,
    spike_volume: float = 3_000_000,
) -> list[dict[str, Any]]:
    """Gently oscillating prices with an optional level shift on elevated volume."""

    dates = pd.bdate_range("2024-01-02", periods=length)
    points: list[dict[str, Any]] = []
    previous_close: float | None = None
    for i, day in enumerate(dates):
        level = jump_level if jump_at is not None and i >= jump_at else 100.0
        close = level * (1 + 0.004 * ((i % 3) - 1))
        open_ = previous_close if previous_close is not None else close
        points.append(
            {
                "date": day.strftime("%Y-%m-%d"),
                "open": open_,
                "high": max(open_, close) * 1.01,
                "low": min(open_, close) * 0.99,
                "close": close,
                "volume": spike_volume if i == jump_at else 1_000_000,
            }
        )
        previous_close = close
    return points


@pytest.fixture
def detector() -> OutlierDetector:
    return OutlierDetector(metrics=MetricsCollector(registry=CollectorRegistry()))


def test_single_price_jump_on_heavy_volume(detector: OutlierDetector) -> None:
    series = _series()

    report = detector.analyze_outliers(series, "ACME")

    jumps = [event for event in report.events if event.type == OutlierType.PRICE_JUMP]
    assert len(jumps) == 1
    jump = jumps[0]
    assert jump.date == series[40]["date"]
    assert jump.severity in (OutlierSeverity.HIGH, OutlierSeverity.CRITICAL)
    assert jump.deviation_magnitude == pytest.approx(0.28, abs=0.01)
    assert jump.id == f"price_jump_ACME_{series[40]['date']}"
    assert jump.description == "Price jump of 28.5%"
    assert jump.recommendation.startswith("HIGH: Monitor closely. This upward movement with high volume confirmation")
    assert jump.metadata["volumeRatio"] == pytest.approx(3.0)
    assert report.summary.price_jumps == 1
    assert report.summary.gap_moves == 0


def test_price_jump_requires_volume_confirmation(detector: OutlierDetector) -> None:
    report = detector.analyze_outliers(_series(spike_volume=1_000_000), "ACME")

    assert not [event for event in report.events if event.type == OutlierType.PRICE_JUMP]


def test_price_jump_without_confirmation_when_disabled() -> None:
    detector = OutlierDetector({"require_volume_confirmation": False})

    report = detector.analyze_outliers(_series(spike_volume=1_000_000), "ACME")

    jump = next(event for event in report.events if event.type == OutlierType.PRICE_JUMP)
    assert jump.severity == OutlierSeverity.MEDIUM
    assert jump.metadata["volumeRatio"] == 1.0


def test_volume_spike_and_statistical_outlier_on_same_day(detector: OutlierDetector) -> None:
    series = _series()

    report = detector.analyze_outliers(series)

    day = series[40]["date"]
    kinds = {event.type for event in report.events if event.date == day}
    assert {OutlierType.VOLUME_SPIKE, OutlierType.STATISTICAL_OUTLIER} <= kinds
    assert report.symbol == "UNKNOWN"


def test_gap_move_detection(detector: OutlierDetector) -> None:
    series = _series(jump_at=None)
    series[30] = {**series[30], "open": series[29]["close"] * 1.32, "high": series[29]["close"] * 1.34}

    report = detector.analyze_outliers(series, "ACME")

    gaps = [event for event in report.events if event.type == OutlierType.GAP_MOVE]
    assert len(gaps) == 1
    assert gaps[0].date == series[30]["date"]
    assert gaps[0].severity == OutlierSeverity.HIGH
    assert gaps[0].description == "Overnight gap: 32.0%"


def test_quiet_series_scores_clean(detector: OutlierDetector) -> None:
    report = detector.analyze_outliers(_series(jump_at=None), "ACME")

    assert report.outliers_detected == 0
    assert report.risk_score == 0
    assert report.quality_score == 100
    assert report.performance_metrics.data_points_analyzed == 60
    assert report.performance_metrics.algorithms_used == [
        "price_jump",
        "volume_spike",
        "statistical_outlier",
        "gap_move",
    ]


def test_volatility_spike_detection_is_opt_in() -> None:
    series = _series(length=50, jump_at=None)
    for offset, factor in enumerate((1.06, 0.95, 1.07, 0.94, 1.05)):
        i = 44 + offset
        close = series[i - 1]["close"] * factor
        series[i] = {**series[i], "open": series[i - 1]["close"], "close": close, "high": close * 1.02, "low": close * 0.9}

    default_report = OutlierDetector().analyze_outliers(series, "ACME")
    enabled = OutlierDetector({"enable_volatility_spike_detection": True, "enable_price_jump_detection": False})
    report = enabled.analyze_outliers(series, "ACME")

    assert not [event for event in default_report.events if event.type == OutlierType.VOLATILITY_SPIKE]
    spikes = [event for event in report.events if event.type == OutlierType.VOLATILITY_SPIKE]
    assert spikes
    assert spikes[0].deviation_magnitude >= 2.5
    assert "volatility_spike" in report.performance_metrics.algorithms_used


def test_events_are_chronological_and_unique(detector: OutlierDetector) -> None:
    report = detector.analyze_outliers(list(reversed(_series())), "ACME")

    dates = [event.date for event in report.events]
    assert dates == sorted(dates)
    keys = [(event.date, event.symbol, event.type) for event in report.events]
    assert len(keys) == len(set(keys))


def test_insufficient_data_raises(detector: OutlierDetector) -> None:
    with pytest.raises(InsufficientDataError) as excinfo:
        detector.analyze_outliers(_series(length=10, jump_at=None))

    assert excinfo.value.required == 20
    assert excinfo.value.received == 10
    assert excinfo.value.message == "Insufficient data points. Need at least 20, got 10"

    with pytest.raises(InsufficientDataError):
        detector.analyze_outliers([])


def test_malformed_points_raise(detector: OutlierDetector) -> None:
    series = _series(jump_at=None)
    series[3] = {**series[3], "close": -1}
    series[7] = "not a point"

    with pytest.raises(DataValidationError) as excinfo:
        detector.analyze_outliers(series)

    assert set(excinfo.value.validation_errors) == {"3", "7"}


def test_unparseable_dates_raise(detector: OutlierDetector) -> None:
    series = _series(jump_at=None)
    series[5] = {**series[5], "date": "sometime"}

    with pytest.raises(DataValidationError):
        detector.analyze_outliers(series)


def test_outlier_metrics_are_recorded() -> None:
    registry = CollectorRegistry()
    detector = OutlierDetector(metrics=MetricsCollector(registry=registry))

    detector.analyze_outliers(_series(), "ACME")

    assert registry.get_sample_value("marketnorm_outlier_events_total", {"type": "price_jump"}) == 1.0


def test_performance_tracking_and_reset(detector: OutlierDetector) -> None:
    detector.analyze_outliers(_series(jump_at=None))
    detector.analyze_outliers(_series(jump_at=None))

    metrics = detector.get_performance_metrics()
    assert metrics["total_analyses"] == 2
    assert metrics["average_processing_time"] == pytest.approx(metrics["total_processing_time"] / 2)

    detector.reset()
    assert detector.get_performance_metrics()["total_analyses"] == 0


def test_configuration_updates_are_validated(detector: OutlierDetector) -> None:
    detector.update_configuration(min_data_points=30)
    assert detector.get_configuration().min_data_points == 30

    with pytest.raises(ConfigurationError):
        detector.update_configuration(sigma_threshold=-1)
    assert detector.get_configuration().sigma_threshold == 3.0

    snapshot = detector.get_configuration()
    snapshot.min_data_points = 99
    assert detector.config.min_data_points == 30


def test_invalid_mapping_config_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        OutlierDetector({"unknown_option": 1})
    assert OutlierDetector(DetectionConfig(min_data_points=5)).config.min_data_points == 5
