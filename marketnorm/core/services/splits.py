"""Stock split detection and historical back-adjustment."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any

from marketnorm.core.config.models import SplitAdjusterConfig
from marketnorm.core.logging import get_logger
from marketnorm.core.models.records import Record
from marketnorm.core.models.splits import SplitEvent, merge_split_events
from marketnorm.core.services.split_cache import InMemorySplitEventCache, SplitEventCache
from marketnorm.core.services.volume import parse_volume_value

logger = get_logger(__name__)

SOURCE_DETECTED = "AUTO_DETECTION"
SOURCE_DETECTED_REVERSE = "AUTO_DETECTION_REVERSE"

# factors this close to 1 leave a record untouched
_FACTOR_EPSILON = 0.001


def _date_key(record: Record) -> str:
    return str(record.get("date", ""))[:10]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    conversion = parse_volume_value(value)
    return conversion.normalized_value if conversion is not None else None


@dataclass(slots=True)
class SplitAdjustmentResult:
    records: list[Record]
    applied_splits: list[SplitEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cache_hit: bool = False
    records_adjusted: int = 0


@dataclass(slots=True)
class SplitDetectionReport:
    detected_splits: list[SplitEvent]
    confidence: float
    recommendations: list[str]


@dataclass(slots=True)
class AdjustmentValidation:
    is_valid: bool
    issues: list[str]
    continuity_score: float


class SplitAdjuster:
    """Detects splits from price discontinuities and back-adjusts history."""

    def __init__(self, config: SplitAdjusterConfig | None = None, cache: SplitEventCache | None = None) -> None:
        self.config = config or SplitAdjusterConfig()
        self.cache: SplitEventCache = cache if cache is not None else InMemorySplitEventCache()

    def snap_ratio(self, observed: float) -> float | None:
        """Closest canonical ratio within the tolerance window, else ``None``."""

        best: float | None = None
        best_difference = math.inf
        for ratio in self.config.canonical_ratios:
            difference = abs(observed - ratio)
            if difference < best_difference and difference < self.config.ratio_tolerance:
                best, best_difference = ratio, difference
        return best

    def _confidence(self, previous: Record, current: Record, observed: float, snapped: float) -> float:
        cfg = self.config
        confidence = cfg.base_confidence

        prev_volume = _number(previous.get("volume"))
        curr_volume = _number(current.get("volume"))
        if prev_volume is not None and curr_volume is not None and curr_volume > prev_volume * cfg.volume_surge_ratio:
            confidence += cfg.volume_surge_weight

        if abs(observed - snapped) < cfg.ratio_closeness:
            confidence += cfg.ratio_closeness_weight

        prev_adjusted = _number(previous.get("adjusted_close"))
        curr_adjusted = _number(current.get("adjusted_close"))
        if prev_adjusted and curr_adjusted and abs(prev_adjusted / curr_adjusted - 1) < cfg.continuity_tolerance:
            confidence += cfg.continuity_weight

        gap = abs(float(previous["close"]) - float(current["open"])) / float(previous["close"])
        if gap > cfg.gap_threshold:
            confidence += cfg.gap_weight

        return min(confidence, 1.0)

    def _detect(self, records: Sequence[Record], symbol: str) -> list[SplitEvent]:
        ordered = sorted(records, key=_date_key)
        events: list[SplitEvent] = []
        threshold = self.config.split_threshold

        for previous, current in zip(ordered, ordered[1:]):
            prev_close = _number(previous.get("close"))
            curr_open = _number(current.get("open"))
            if not prev_close or not curr_open:
                continue

            price_ratio = prev_close / curr_open
            if price_ratio >= threshold:
                observed, reverse = price_ratio, False
            elif price_ratio <= 1 / threshold:
                observed, reverse = 1 / price_ratio, True
            else:
                continue

            snapped = self.snap_ratio(observed)
            if snapped is None:
                continue
            confidence = self._confidence(previous, current, observed, snapped)
            if confidence <= self.config.min_confidence:
                continue

            fraction = Fraction(snapped).limit_denominator(10)
            if reverse:
                event = SplitEvent(
                    date=_date_key(current),
                    symbol=symbol,
                    split_ratio=1 / snapped,
                    split_from=fraction.numerator,
                    split_to=fraction.denominator,
                    source=SOURCE_DETECTED_REVERSE,
                    confidence=confidence,
                )
            else:
                event = SplitEvent(
                    date=_date_key(current),
                    symbol=symbol,
                    split_ratio=snapped,
                    split_from=fraction.denominator,
                    split_to=fraction.numerator,
                    source=SOURCE_DETECTED,
                    confidence=confidence,
                )
            events.append(event)
        return events

    def _apply(self, records: Sequence[Record], splits: Sequence[SplitEvent]) -> tuple[list[Record], int]:
        precision = self.config.adjustment_precision
        adjusted: list[Record] = []
        changed = 0

        for record in records:
            record_date = _date_key(record)
            factor = 1.0
            for split in splits:
                if record_date < split.date[:10]:
                    factor *= split.split_ratio

            if abs(factor - 1.0) <= _FACTOR_EPSILON:
                adjusted.append(
                    {
                        **record,
                        "adjusted_close": record.get("adjusted_close") or record["close"],
                        "split_adjustment_factor": 1.0,
                        "split_adjusted": False,
                    }
                )
                continue

            volume = _number(record.get("volume")) or 0.0
            close = round(float(record["close"]) / factor, precision)
            adjusted.append(
                {
                    **record,
                    "open": round(float(record["open"]) / factor, precision),
                    "high": round(float(record["high"]) / factor, precision),
                    "low": round(float(record["low"]) / factor, precision),
                    "close": close,
                    "adjusted_close": record.get("adjusted_close") or close,
                    "volume": round(volume * factor),
                    "split_adjustment_factor": factor,
                    "split_adjusted": True,
                }
            )
            changed += 1
        return adjusted, changed

    def adjust_with_report(
        self,
        records: Sequence[Record],
        symbol: str,
        known_splits: Iterable[SplitEvent] | None = None,
    ) -> SplitAdjustmentResult:
        """Detect, merge, cache and apply splits; never raises."""

        if not records:
            return SplitAdjustmentResult(records=list(records))
        warnings: list[str] = []
        supplied: list[SplitEvent] = []
        for split in known_splits or []:
            if split.symbol.upper() == symbol.upper():
                supplied.append(split)
            else:
                warnings.append(f"Ignoring split for {split.symbol} on {split.date} while adjusting {symbol}")
        try:
            detected = self._detect(records, symbol) if self.config.enable_auto_detection else []
            cached = self.cache.get(symbol) if self.config.use_cache else None
            merged = merge_split_events(detected, cached or [], supplied)
            adjusted, changed = self._apply(records, merged)
            if self.config.use_cache:
                self.cache.put(symbol, merged)
        except Exception as exc:
            message = f"Split adjustment failed for {symbol}: {exc}"
            logger.bind(symbol=symbol).warning(message)
            return SplitAdjustmentResult(records=list(records), warnings=[*warnings, message])

        if merged:
            logger.bind(symbol=symbol).info(f"Applied {len(merged)} split event(s) to {changed} record(s)")
        return SplitAdjustmentResult(
            records=adjusted,
            applied_splits=merged,
            warnings=warnings,
            cache_hit=bool(cached),
            records_adjusted=changed,
        )

    def adjust_for_splits(
        self,
        records: Sequence[Record],
        symbol: str,
        known_splits: Iterable[SplitEvent] | None = None,
    ) -> list[Record]:
        return self.adjust_with_report(records, symbol, known_splits).records

    def detect_splits(self, records: Sequence[Record], symbol: str) -> SplitDetectionReport:
        splits = self._detect(records, symbol)
        average = sum(split.confidence for split in splits) / len(splits) if splits else 0.0
        if not splits:
            recommendation = "No splits detected in the data"
        elif average < self.config.min_confidence:
            recommendation = "Splits detected with low confidence - verify manually"
        else:
            recommendation = "Splits detected with high confidence"
        return SplitDetectionReport(detected_splits=splits, confidence=average, recommendations=[recommendation])

    def validate_adjustments(self, original: Sequence[Record], adjusted: Sequence[Record]) -> AdjustmentValidation:
        """Score how smooth the adjusted series is across consecutive records."""

        issues: list[str] = []
        if len(original) != len(adjusted):
            issues.append("Record count changed during adjustment")

        continuity = 1.0
        ordered = sorted(adjusted, key=_date_key)
        if len(ordered) > 1:
            gaps: list[float] = []
            for previous, current in zip(ordered, ordered[1:]):
                reference = float(previous.get("adjusted_close") or previous["close"])
                gaps.append(abs(reference - float(current["open"])) / reference)
            average_gap = sum(gaps) / len(gaps)
            significant = sum(1 for gap in gaps if gap > 0.1) / len(gaps)
            continuity = max(0.0, 1 - average_gap * 2 - significant * 0.5)

        return AdjustmentValidation(is_valid=not issues, issues=issues, continuity_score=continuity)

    def clear_cache(self) -> None:
        clear = getattr(self.cache, "clear", None)
        if callable(clear):
            clear()

    def get_stats(self) -> dict[str, Any]:
        symbols = getattr(self.cache, "symbols", None)
        return {
            "config": self.config.model_dump(),
            "cache": {"symbols_in_split_cache": len(symbols()) if callable(symbols) else None},
        }
