"""Tests for split detection, back-adjustment and the split cache."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from marketnorm.core.config import SplitAdjusterConfig
from marketnorm.core.exceptions import SplitCacheError
from marketnorm.core.models import SplitEvent
from marketnorm.core.services.split_cache import InMemorySplitEventCache, SplitEventCache
from marketnorm.core.services.splits import SOURCE_DETECTED, SOURCE_DETECTED_REVERSE, SplitAdjuster


def _bar(day: str, open_: float, close: float, volume: float = 1_000_000) -> dict[str, object]:
    return {
        "date": day,
        "open": open_,
        "high": max(open_, close) * 1.01,
        "low": min(open_, close) * 0.99,
        "close": close,
        "volume": volume,
    }


@pytest.fixture
def two_for_one() -> list[dict[str, object]]:
    """Series with a 2:1 split effective on 2024-03-06."""

    return [
        _bar("2024-03-01", 199.0, 200.0),
        _bar("2024-03-04", 200.0, 202.0),
        _bar("2024-03-05", 202.0, 204.0),
        _bar("2024-03-06", 102.0, 103.0, volume=2_000_000),
        _bar("2024-03-07", 103.0, 104.0, volume=2_000_000),
    ]


def test_two_for_one_split_round_trip(two_for_one: list[dict[str, object]]) -> None:
    adjuster = SplitAdjuster()

    result = adjuster.adjust_with_report(two_for_one, "ACME")

    assert len(result.applied_splits) == 1
    split = result.applied_splits[0]
    assert split.date == "2024-03-06"
    assert split.split_ratio == 2.0
    assert (split.split_from, split.split_to) == (1, 2)
    assert split.source == SOURCE_DETECTED
    assert split.confidence > 0.7
    assert result.records_adjusted == 3

    for original, adjusted in zip(two_for_one[:3], result.records[:3]):
        for name in ("open", "high", "low", "close"):
            assert adjusted[name] == pytest.approx(original[name] / 2, abs=1e-6)
        assert adjusted["volume"] == original["volume"] * 2
        assert adjusted["split_adjustment_factor"] == 2.0
        assert adjusted["split_adjusted"] is True
    for original, adjusted in zip(two_for_one[3:], result.records[3:]):
        assert adjusted["close"] == original["close"]
        assert adjusted["split_adjustment_factor"] == 1.0


def test_accepted_splits_use_canonical_ratios(two_for_one: list[dict[str, object]]) -> None:
    adjuster = SplitAdjuster()

    report = adjuster.detect_splits(two_for_one, "ACME")

    assert report.detected_splits
    for split in report.detected_splits:
        assert split.confidence > 0.7
        assert split.split_ratio in adjuster.config.canonical_ratios
    assert report.recommendations == ["Splits detected with high confidence"]


def test_reverse_split_is_detected() -> None:
    records = [
        _bar("2024-03-01", 10.0, 10.0),
        _bar("2024-03-04", 10.0, 10.0),
        _bar("2024-03-05", 40.0, 41.0, volume=200_000),
    ]

    split = SplitAdjuster().detect_splits(records, "PENNY").detected_splits[0]

    assert split.source == SOURCE_DETECTED_REVERSE
    assert split.split_ratio == pytest.approx(0.25)
    assert (split.split_from, split.split_to) == (4, 1)


def test_low_confidence_discontinuity_is_ignored() -> None:
    records = [_bar("2024-03-01", 100.0, 100.0), _bar("2024-03-04", 57.0, 57.0, volume=500_000)]

    assert SplitAdjuster().detect_splits(records, "DROP").detected_splits == []


def test_snap_ratio_respects_tolerance() -> None:
    adjuster = SplitAdjuster()

    assert adjuster.snap_ratio(2.1) == 2.0
    assert adjuster.snap_ratio(3.2) == 3.0
    assert adjuster.snap_ratio(4.45) is None


def test_known_splits_for_other_symbols_are_ignored(two_for_one: list[dict[str, object]]) -> None:
    adjuster = SplitAdjuster(SplitAdjusterConfig(enable_auto_detection=False))
    foreign = SplitEvent(date="2024-03-06", symbol="OTHER", split_ratio=2.0)

    result = adjuster.adjust_with_report(two_for_one, "ACME", [foreign])

    assert result.applied_splits == []
    assert result.warnings == ["Ignoring split for OTHER on 2024-03-06 while adjusting ACME"]
    assert result.records[0]["close"] == 200.0


def test_supplied_split_applies_without_detection(two_for_one: list[dict[str, object]]) -> None:
    adjuster = SplitAdjuster(SplitAdjusterConfig(enable_auto_detection=False, use_cache=False))
    supplied = SplitEvent(date="2024-03-06", symbol="acme", split_ratio=2.0, source="provider")

    records = adjuster.adjust_for_splits(two_for_one, "ACME", [supplied])

    assert records[0]["close"] == 100.0


def test_cached_splits_are_reused(two_for_one: list[dict[str, object]]) -> None:
    cache = InMemorySplitEventCache()
    adjuster = SplitAdjuster(cache=cache)

    first = adjuster.adjust_with_report(two_for_one, "ACME")
    second = adjuster.adjust_with_report(two_for_one, "ACME")

    assert not first.cache_hit
    assert second.cache_hit
    assert second.records == first.records
    assert cache.symbols() == ["ACME"]


def test_validate_adjustments_scores_continuity(two_for_one: list[dict[str, object]]) -> None:
    adjuster = SplitAdjuster()
    adjusted = adjuster.adjust_for_splits(two_for_one, "ACME")

    smooth = adjuster.validate_adjustments(two_for_one, adjusted)
    raw = adjuster.validate_adjustments(two_for_one, two_for_one)

    assert smooth.is_valid
    assert smooth.continuity_score > raw.continuity_score
    assert not adjuster.validate_adjustments(two_for_one, adjusted[:2]).is_valid


def test_failing_cache_leaves_records_unadjusted(two_for_one: list[dict[str, object]]) -> None:
    class BrokenCache:
        def get(self, symbol: str) -> list[SplitEvent] | None:
            raise RuntimeError("backend down")

        def put(self, symbol: str, events: list[SplitEvent]) -> None:
            return None

    result = SplitAdjuster(cache=BrokenCache()).adjust_with_report(two_for_one, "ACME")

    assert result.records == two_for_one
    assert result.warnings == ["Split adjustment failed for ACME: backend down"]


class TestInMemorySplitEventCache:
    """Test the per-symbol locking cache."""

    def test_implements_protocol(self):
        assert isinstance(InMemorySplitEventCache(), SplitEventCache)

    def test_put_get_delete(self):
        cache = InMemorySplitEventCache()
        event = SplitEvent(date="2024-03-06", symbol="acme", split_ratio=2.0)

        cache.put(" acme ", [event])

        assert cache.get("ACME") == [event]
        assert len(cache) == 1
        assert cache.delete("Acme") is True
        assert cache.get("ACME") is None

    def test_rejects_events_for_other_symbols(self):
        cache = InMemorySplitEventCache()

        with pytest.raises(SplitCacheError):
            cache.put("ACME", [SplitEvent(date="2024-03-06", symbol="OTHER", split_ratio=2.0)])

    def test_concurrent_writers_for_distinct_symbols(self):
        cache = InMemorySplitEventCache()
        symbols = [f"SYM{index}" for index in range(20)]

        def write(symbol: str) -> None:
            cache.put(symbol, [SplitEvent(date="2024-01-02", symbol=symbol, split_ratio=2.0)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, symbols))

        assert cache.symbols() == sorted(symbols)
        cache.clear()
        assert cache.symbols() == []
