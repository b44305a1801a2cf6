"""Trading calendar utilities used for gap and holiday checks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING

from pandas.tseries.holiday import (
    AbstractHolidayCalendar,
    GoodFriday,
    Holiday,
    USLaborDay,
    USMartinLutherKingJr,
    USMemorialDay,
    USPresidentsDay,
    USThanksgivingDay,
    nearest_workday,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, MutableMapping

default_weekend = frozenset({5, 6})


class NYSEHolidayCalendar(AbstractHolidayCalendar):
    """Full-day closures of the New York Stock Exchange."""

    rules = [
        Holiday("New Years Day", month=1, day=1, observance=nearest_workday),
        USMartinLutherKingJr,
        USPresidentsDay,
        GoodFriday,
        USMemorialDay,
        Holiday("Juneteenth", month=6, day=19, start_date="2022-01-01", observance=nearest_workday),
        Holiday("Independence Day", month=7, day=4, observance=nearest_workday),
        USLaborDay,
        USThanksgivingDay,
        Holiday("Christmas", month=12, day=25, observance=nearest_workday),
    ]


@lru_cache(maxsize=128)
def _rule_holidays(rules: type[AbstractHolidayCalendar], year: int) -> frozenset[date]:
    observed = rules().holidays(start=f"{year}-01-01", end=f"{year}-12-31")
    return frozenset(stamp.date() for stamp in observed)


def normalize_market(market: str) -> str:
    """Normalize market identifiers for calendar lookups."""

    return market.strip().lower()


@dataclass(frozen=True)
class TradingCalendar:
    """Represents a trading calendar with optional aliases."""

    market: str
    weekend_days: frozenset[int] = default_weekend
    holidays: frozenset[date] = frozenset()
    aliases: frozenset[str] = frozenset()
    holiday_rules: type[AbstractHolidayCalendar] | None = None

    def is_weekend(self, day: date) -> bool:
        return day.weekday() in self.weekend_days

    def is_holiday(self, day: date) -> bool:
        if day in self.holidays:
            return True
        if self.holiday_rules is None:
            return False
        return day in _rule_holidays(self.holiday_rules, day.year)

    def is_trading_day(self, day: date) -> bool:
        return not self.is_weekend(day) and not self.is_holiday(day)

    def trading_days(self, start: date, end: date) -> list[date]:
        """Return trading days between the provided bounds inclusive."""

        if end < start:
            raise ValueError("end must be on or after start")

        current = start
        days: list[date] = []
        while current <= end:
            if self.is_trading_day(current):
                days.append(current)
            current += timedelta(days=1)
        return days

    def missing_sessions(self, previous: date, current: date) -> int:
        """Number of trading days strictly between ``previous`` and ``current``."""

        if current <= previous + timedelta(days=1):
            return 0
        return len(self.trading_days(previous + timedelta(days=1), current - timedelta(days=1)))


def builtin_calendars() -> Mapping[str, TradingCalendar]:
    """Construct built-in trading calendars."""

    us_calendar = TradingCalendar(
        market="us",
        aliases=frozenset({"us", "nyse", "nasdaq", "xnys"}),
        holiday_rules=NYSEHolidayCalendar,
    )
    weekdays_calendar = TradingCalendar(market="weekdays", aliases=frozenset({"24x5", "forex"}))
    return {
        us_calendar.market: us_calendar,
        weekdays_calendar.market: weekdays_calendar,
    }


class TradingCalendarProvider:
    """Provides trading calendars keyed by market identifiers."""

    def __init__(
        self,
        market_calendars: Mapping[str, TradingCalendar] | None = None,
        default_calendar: TradingCalendar | None = None,
    ) -> None:
        source = market_calendars or builtin_calendars()
        self._calendars: MutableMapping[str, TradingCalendar] = {}
        self._alias_map: MutableMapping[str, TradingCalendar] = {}
        for key, calendar in source.items():
            self._calendars[normalize_market(key)] = calendar
            for alias in calendar.aliases:
                self._alias_map[normalize_market(alias)] = calendar

        self._default_calendar = default_calendar or TradingCalendar(market="default")

    def get_calendar(self, market: str) -> TradingCalendar:
        """Return the matching calendar or fallback to default."""

        key = normalize_market(market)
        if key in self._calendars:
            return self._calendars[key]
        if key in self._alias_map:
            return self._alias_map[key]
        return self._default_calendar


__all__ = [
    "NYSEHolidayCalendar",
    "TradingCalendar",
    "TradingCalendarProvider",
    "builtin_calendars",
    "default_weekend",
    "normalize_market",
]
