"""Pytest configuration for marketnorm test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from prometheus_client import CollectorRegistry

import marketnorm
from marketnorm.core.monitoring import MetricsCollector, configure_metrics_collector


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--marketnorm-run-integration",
        action="store_true",
        default=False,
        help="Run marketnorm integration tests that exercise the full CLI round trip.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for marketnorm tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks marketnorm tests that run the complete pipeline end to end",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--marketnorm-run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="integration tests require --marketnorm-run-integration",
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture(autouse=True)
def isolated_metrics() -> Iterator[MetricsCollector]:
    """Give every test its own registry and a fresh facade pipeline."""

    collector = MetricsCollector(registry=CollectorRegistry())
    configure_metrics_collector(collector)
    marketnorm._pipeline = None
    yield collector
    configure_metrics_collector(None)
    marketnorm._pipeline = None


def _bar(open_: float, high: float, low: float, close: float, volume: int) -> dict[str, str]:
    return {
        "1. open": f"{open_:.4f}",
        "2. high": f"{high:.4f}",
        "3. low": f"{low:.4f}",
        "4. close": f"{close:.4f}",
        "5. volume": str(volume),
    }


@pytest.fixture
def alpha_vantage_payload() -> dict[str, object]:
    """Five daily sessions in Alpha Vantage ``TIME_SERIES_DAILY`` shape, newest first."""

    return {
        "Meta Data": {
            "1. Information": "Daily Prices (open, high, low, close) and Volumes",
            "2. Symbol": "IBM",
            "3. Last Refreshed": "2024-03-07",
            "4. Output Size": "Compact",
            "5. Time Zone": "US/Eastern",
        },
        "Time Series (Daily)": {
            "2024-03-07": _bar(197.0, 199.0, 196.0, 198.5, 4_100_000),
            "2024-03-06": _bar(196.0, 197.5, 195.0, 197.0, 3_900_000),
            "2024-03-05": _bar(195.0, 196.5, 194.0, 196.0, 4_000_000),
            "2024-03-04": _bar(194.0, 195.5, 193.0, 195.0, 3_800_000),
            "2024-03-01": _bar(193.0, 194.5, 192.0, 194.0, 4_200_000),
        },
    }


@pytest.fixture
def yahoo_chart_payload() -> dict[str, object]:
    """Yahoo chart API payload with one null-padded interval."""

    # 2024-03-04 .. 2024-03-07 14:30 UTC
    timestamps = [1709562600, 1709649000, 1709735400, 1709821800]
    return {
        "chart": {
            "result": [
                {
                    "meta": {
                        "symbol": "AAPL",
                        "exchangeTimezoneName": "America/New_York",
                        "regularMarketTime": 1709845200,
                        "dataGranularity": "1d",
                    },
                    "timestamp": timestamps,
                    "indicators": {
                        "quote": [
                            {
                                "open": [175.0, 176.0, None, 170.0],
                                "high": [176.5, 177.0, None, 171.5],
                                "low": [174.0, 175.0, None, 169.0],
                                "close": [176.0, 175.5, None, 171.0],
                                "volume": [50_000_000, 52_000_000, None, 61_000_000],
                            }
                        ],
                        "adjclose": [{"adjclose": [175.8, 175.3, None, 170.8]}],
                    },
                }
            ],
            "error": None,
        }
    }
