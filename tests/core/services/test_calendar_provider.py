"""Tests for trading calendar lookups."""

from __future__ import annotations

from datetime import date

import pytest

from marketnorm.core.services.calendars import TradingCalendar, TradingCalendarProvider


def test_provider_resolves_aliases() -> None:
    provider = TradingCalendarProvider()

    assert provider.get_calendar("NYSE").market == "us"
    assert provider.get_calendar(" forex ").market == "weekdays"
    assert provider.get_calendar("lse").market == "default"


@pytest.mark.parametrize(
    "holiday",
    [
        date(2024, 1, 1),
        date(2024, 1, 15),
        date(2024, 3, 29),
        date(2024, 6, 19),
        date(2024, 7, 4),
        date(2024, 11, 28),
        date(2024, 12, 25),
    ],
)
def test_us_calendar_holidays(holiday: date) -> None:
    calendar = TradingCalendarProvider().get_calendar("us")

    assert calendar.is_holiday(holiday)
    assert not calendar.is_trading_day(holiday)


def test_trading_days_and_missing_sessions() -> None:
    calendar = TradingCalendarProvider().get_calendar("us")

    assert calendar.trading_days(date(2024, 3, 28), date(2024, 4, 2)) == [
        date(2024, 3, 28),
        date(2024, 4, 1),
        date(2024, 4, 2),
    ]
    assert calendar.missing_sessions(date(2024, 3, 28), date(2024, 4, 1)) == 0
    assert calendar.missing_sessions(date(2024, 3, 1), date(2024, 3, 6)) == 2


def test_custom_holidays_and_invalid_range() -> None:
    calendar = TradingCalendar(market="custom", holidays=frozenset({date(2024, 3, 5)}))

    assert calendar.is_holiday(date(2024, 3, 5))
    assert calendar.is_weekend(date(2024, 3, 2))
    with pytest.raises(ValueError):
        calendar.trading_days(date(2024, 3, 5), date(2024, 3, 1))
