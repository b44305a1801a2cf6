"""OHLC sanity filtering and data-quality scoring."""

from __future__ import annotations

import math
from collections.abc import Collection, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any

from marketnorm.core.config.models import QualityConfig
from marketnorm.core.models.market import TimeFrame, resolve_timeframe
from marketnorm.core.models.records import QualityFlags, Record
from marketnorm.core.services.calendars import TradingCalendar, TradingCalendarProvider

PRICE_FIELDS = ("open", "high", "low", "close")

_INTERVALS: dict[TimeFrame, timedelta] = {
    TimeFrame.MINUTE_1: timedelta(minutes=1),
    TimeFrame.MINUTE_5: timedelta(minutes=5),
    TimeFrame.MINUTE_15: timedelta(minutes=15),
    TimeFrame.MINUTE_30: timedelta(minutes=30),
    TimeFrame.HOUR_1: timedelta(hours=1),
    TimeFrame.WEEKLY: timedelta(weeks=1),
    TimeFrame.MONTHLY: timedelta(days=31),
}


def _price(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) and number > 0 else None


def is_consistent(record: Record) -> bool:
    """True when all four prices are positive numbers and bracket open/close."""

    prices = [_price(record.get(name)) for name in PRICE_FIELDS]
    if any(price is None for price in prices):
        return False
    open_, high, low, close = prices
    return high >= max(open_, close) and low <= min(open_, close)


def _instant(record: Record) -> datetime | None:
    stamp = record.get("timestamp")
    if isinstance(stamp, str):
        try:
            return datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(str(record.get("date", ""))[:10])
    except ValueError:
        return None


class QualityValidator:
    """Filters structurally invalid records and assigns quality flags."""

    def __init__(self, config: QualityConfig | None = None, calendar: TradingCalendar | None = None) -> None:
        self.config = config or QualityConfig()
        self.calendar = calendar or TradingCalendarProvider().get_calendar(self.config.calendar)

    def validate(self, records: Iterable[Record]) -> list[Record]:
        return [record for record in records if is_consistent(record)]

    def _has_gap(self, previous: Record, current: Record, timeframe: TimeFrame | None) -> bool:
        prev_instant, curr_instant = _instant(previous), _instant(current)
        if prev_instant is None or curr_instant is None:
            return False
        if timeframe is None or timeframe is TimeFrame.DAILY:
            return self.calendar.missing_sessions(prev_instant.date(), curr_instant.date()) > 0
        interval = _INTERVALS[timeframe]
        return (curr_instant - prev_instant) > interval * self.config.max_interval_gap

    def annotate(
        self,
        records: Sequence[Record],
        timeframe: str | TimeFrame | None = None,
        suspicious_indices: Collection[int] = (),
        *,
        validated: bool = True,
    ) -> list[QualityFlags]:
        """Compute one :class:`QualityFlags` per record; records must be date ordered."""

        resolved = resolve_timeframe(timeframe)
        flags: list[QualityFlags] = []
        for index, record in enumerate(records):
            previous = records[index - 1] if index > 0 else None
            has_gaps = previous is not None and self._has_gap(previous, record, resolved)
            price_anomaly = False
            if previous is not None:
                prev_close = _price(previous.get("close"))
                close = _price(record.get("close"))
                if prev_close and close:
                    price_anomaly = abs(close / prev_close - 1) >= self.config.price_anomaly_threshold

            suspicious = index in suspicious_indices
            confidence = float(record.get("date_confidence", 1.0))
            if suspicious:
                confidence -= self.config.suspicious_volume_penalty
            flags.append(
                QualityFlags(
                    has_gaps=has_gaps,
                    suspicious_volume=suspicious,
                    price_anomalies=price_anomaly,
                    adjusted_for_splits=abs(float(record.get("split_adjustment_factor", 1.0)) - 1.0) > 1e-9,
                    validated=validated,
                    confidence=min(max(confidence, 0.0), 1.0),
                )
            )
        return flags

    def quality_score(self, flags: Sequence[QualityFlags]) -> float:
        """Aggregate 0-100 score from per-record flags."""

        if not flags:
            return 0.0
        total = len(flags)
        average_confidence = sum(flag.confidence for flag in flags) / total
        gap_penalty = self.config.gap_weight * sum(1 for flag in flags if flag.has_gaps) / total
        anomaly_penalty = self.config.anomaly_weight * sum(1 for flag in flags if flag.price_anomalies) / total
        score = 100 * (average_confidence - gap_penalty - anomaly_penalty)
        return round(min(max(score, 0.0), 100.0), 2)
