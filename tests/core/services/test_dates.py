"""Tests for date parsing, validation and record normalization."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from marketnorm.core.config import DateNormalizerConfig, DateValidationRules
from marketnorm.core.exceptions import ConfigurationError
from marketnorm.core.models import Severity, TimeFrame
from marketnorm.core.services.dates import DateNormalizer, normalize_timezone

NOW = datetime(2024, 3, 8, 12, 0, tzinfo=UTC)


@pytest.fixture
def normalizer() -> DateNormalizer:
    return DateNormalizer(clock=lambda: NOW)


@pytest.mark.parametrize(
    ("value", "fmt", "expected_date", "confidence"),
    [
        ("2023-12-01", "ISO_DATE", "2023-12-01", 1.0),
        ("12/01/2023", "YAHOO_US", "2023-12-01", 0.9),
        ("3/7/2024", "YAHOO_US_FLEXIBLE", "2024-03-07", 0.9),
        ("20231201", "COMPACT_YMD", "2023-12-01", 1.0),
        ("01-12-2023", "GENERIC_DMY", "2023-12-01", 0.7),
        ("2024-03-07T14:30:00Z", "ISO_SECONDS", "2024-03-07", 1.0),
        ("2024-03-07T14:30:00.250Z", "ISO_FULL", "2024-03-07", 1.0),
        ("1709821800", "UNIX_SECONDS", "2024-03-07", 1.0),
        ("1709821800000", "UNIX_MILLISECONDS", "2024-03-07", 1.0),
    ],
)
def test_parse_date_formats(
    normalizer: DateNormalizer, value: str, fmt: str, expected_date: str, confidence: float
) -> None:
    result = normalizer.parse_date(value)

    assert result.success
    assert result.detected_format == fmt
    assert result.date == expected_date
    assert result.confidence == confidence


def test_iso_date_is_utc_midnight(normalizer: DateNormalizer) -> None:
    result = normalizer.parse_date("2023-12-01")

    assert result.timestamp == "2023-12-01T00:00:00.000Z"
    assert result.timezone == "UTC"


def test_alpha_vantage_intraday_uses_default_timezone(normalizer: DateNormalizer) -> None:
    result = normalizer.parse_date("2024-03-07 09:30:00")

    assert result.detected_format == "ALPHA_VANTAGE_FULL"
    assert result.timestamp == "2024-03-07T14:30:00.000Z"
    assert result.timezone == "America/New_York"


def test_offset_timestamps_are_converted_to_utc(normalizer: DateNormalizer) -> None:
    result = normalizer.parse_date("2024-03-07T09:30:00-05:00")

    assert result.detected_format == "ISO_OFFSET"
    assert result.timestamp == "2024-03-07T14:30:00.000Z"


def test_native_values_and_numeric_epochs(normalizer: DateNormalizer) -> None:
    assert normalizer.parse_date(date(2024, 3, 7)).detected_format == "NATIVE_DATE"
    assert normalizer.parse_date(datetime(2024, 3, 7, 15, 0)).timestamp == "2024-03-07T15:00:00.000Z"
    assert normalizer.parse_date(1709821800.0).detected_format == "UNIX_SECONDS"


def test_fallback_parser_has_reduced_confidence(normalizer: DateNormalizer) -> None:
    result = normalizer.parse_date("March 7, 2024")

    assert result.success
    assert result.detected_format == "PANDAS_FALLBACK"
    assert result.confidence == 0.5
    assert result.date == "2024-03-07"


@pytest.mark.parametrize(("value", "fmt"), [(None, "EMPTY"), ("  ", "EMPTY"), ("xyz", "UNKNOWN")])
def test_unparseable_values(normalizer: DateNormalizer, value: object, fmt: str) -> None:
    result = normalizer.parse_date(value)

    assert not result.success
    assert result.detected_format == fmt


def test_invalid_calendar_dates_are_rejected() -> None:
    normalizer = DateNormalizer(DateNormalizerConfig(enable_fallback_parser=False), clock=lambda: NOW)

    result = normalizer.parse_date("2023-02-30")

    assert not result.success
    assert result.errors == ["Unrecognized date format: 2023-02-30"]


def test_validate_rules(normalizer: DateNormalizer) -> None:
    future = normalizer.validate(normalizer.parse_date("2024-04-01"))
    old = normalizer.validate(normalizer.parse_date("2010-01-04"))

    assert [(v.reason, v.severity) for v in future] == [("Future date not allowed", Severity.HIGH)]
    assert old[0].reason.startswith("Date too old")
    assert old[0].severity == Severity.MEDIUM


def test_weekend_and_holiday_rules_for_daily_data() -> None:
    rules = DateValidationRules(allow_weekends_for_daily=False, allow_holidays_for_daily=False)
    normalizer = DateNormalizer(DateNormalizerConfig(validation=rules), clock=lambda: NOW)

    saturday = normalizer.validate(normalizer.parse_date("2024-03-02"), TimeFrame.DAILY)
    christmas = normalizer.validate(normalizer.parse_date("2023-12-25"), TimeFrame.DAILY)
    intraday = normalizer.validate(normalizer.parse_date("2024-03-02"), TimeFrame.HOUR_1)

    assert [v.reason for v in saturday] == ["Weekend not allowed for daily data"]
    assert [v.reason for v in christmas] == ["Market holiday not allowed for daily data"]
    assert intraday == []


def test_normalize_with_report_keeps_and_skips(normalizer: DateNormalizer) -> None:
    records = [
        {"date": "2024-03-07", "close": 1.0},
        {"date": "garbage!", "close": 2.0},
        {"close": 3.0},
        {"timestamp": "03/06/2024", "close": 4.0},
    ]

    result = normalizer.normalize_with_report(records, "daily")

    assert [record["close"] for record in result.records] == [1.0, 4.0]
    assert result.skipped == 2
    assert result.records[1]["date"] == "2024-03-06"
    assert result.records[1]["original_date"] == "03/06/2024"
    assert result.records[1]["date_confidence"] == 0.9
    assert "Record 2: no date field found" in result.warnings


def test_drop_severity_controls_record_removal() -> None:
    config = DateNormalizerConfig(drop_severity=Severity.HIGH)
    normalizer = DateNormalizer(config, clock=lambda: NOW)

    records = normalizer.normalize([{"date": "2024-03-07"}, {"date": "2024-05-01"}])

    assert [record["date"] for record in records] == ["2024-03-07"]


def test_unknown_timezone_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        DateNormalizer(DateNormalizerConfig(default_timezone="Mars/Olympus"))


def test_timezone_aliases() -> None:
    assert normalize_timezone("US/Eastern") == "America/New_York"
    assert normalize_timezone(" EST ") == "America/New_York"
    assert normalize_timezone("Europe/London") == "Europe/London"


def test_test_date_format(normalizer: DateNormalizer) -> None:
    recognized = normalizer.test_date_format("20231201")
    unrecognized = normalizer.test_date_format("??")

    assert recognized.recognized and recognized.format == "COMPACT_YMD"
    assert not unrecognized.recognized and unrecognized.parsed is None
