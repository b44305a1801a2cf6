"""Yahoo Finance响应解析器.

Yahoo payloads come in several shapes: the columnar ``chart.result[0]``
structure returned by the chart API, a bare list of row objects, a
``{"data": [...]}`` wrapper, or a ``{"response": {"data": ...}}`` wrapper.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marketnorm.core.exceptions import PayloadStructureError
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.base import (
    DEFAULT_FIELD_ALIASES,
    ParsedMetadata,
    ProviderParser,
    RawRow,
    as_mapping_rows,
    epoch_to_iso,
)


def _column(values: Any, index: int) -> Any:
    if isinstance(values, list) and index < len(values):
        return values[index]
    return None


class YahooFinanceParser(ProviderParser):
    """Parses Yahoo Finance chart and row-oriented payloads."""

    source = DataSource.YAHOO_FINANCE.value
    field_aliases = {
        **DEFAULT_FIELD_ALIASES,
        "adjusted_close": ("adjclose", "adjClose", "Adj Close", "adjustedClose", "adjusted_close"),
    }

    @staticmethod
    def _chart_result(payload: Any) -> Mapping[str, Any] | None:
        if not isinstance(payload, Mapping):
            return None
        chart = payload.get("chart")
        if not isinstance(chart, Mapping):
            return None
        results = chart.get("result")
        if isinstance(results, list) and results and isinstance(results[0], Mapping):
            return results[0]
        return None

    def locate_rows(self, payload: Any) -> list[RawRow]:
        chart = self._chart_result(payload)
        if chart is not None:
            return self._chart_rows(chart)
        if isinstance(payload, list):
            return as_mapping_rows(payload)
        if isinstance(payload, Mapping):
            if isinstance(payload.get("data"), list):
                return as_mapping_rows(payload["data"])
            response = payload.get("response")
            if isinstance(response, Mapping) and response.get("data") is not None:
                data = response["data"]
                return as_mapping_rows(data if isinstance(data, list) else [data])
        raise PayloadStructureError("No Yahoo Finance time series container found", self.source)

    def _chart_rows(self, chart: Mapping[str, Any]) -> list[RawRow]:
        timestamps = chart.get("timestamp") or []
        indicators = chart.get("indicators") or {}
        if not isinstance(timestamps, list) or not isinstance(indicators, Mapping):
            raise PayloadStructureError("Malformed Yahoo Finance chart: timestamp or indicators block", self.source)
        quotes = indicators.get("quote") or [{}]
        adjclose_block = indicators.get("adjclose") or [{}]
        if not isinstance(quotes, list) or not isinstance(adjclose_block, list):
            raise PayloadStructureError("Malformed Yahoo Finance chart: indicators must hold arrays", self.source)
        quote = quotes[0] if isinstance(quotes[0], Mapping) else {}
        adjclose = adjclose_block[0].get("adjclose", []) if isinstance(adjclose_block[0], Mapping) else []

        rows: list[RawRow] = []
        for index, timestamp in enumerate(timestamps):
            # Yahoo pads non-trading intervals with nulls
            if _column(quote.get("open"), index) is None:
                continue
            fields = {
                "open": _column(quote.get("open"), index),
                "high": _column(quote.get("high"), index),
                "low": _column(quote.get("low"), index),
                "close": _column(quote.get("close"), index),
                "volume": _column(quote.get("volume"), index),
                "adjclose": _column(adjclose, index),
            }
            date = epoch_to_iso(timestamp) if isinstance(timestamp, (int, float)) else timestamp
            rows.append(RawRow(index=index, fields=fields, date=date, raw={"timestamp": timestamp, "quote": fields}))
        return rows

    def extract_metadata(self, payload: Any) -> ParsedMetadata | None:
        chart = self._chart_result(payload)
        meta = chart.get("meta") if chart is not None else None
        if not isinstance(meta, Mapping):
            return None
        refreshed = meta.get("regularMarketTime")
        return ParsedMetadata(
            symbol=meta.get("symbol"),
            last_refreshed=epoch_to_iso(refreshed) if isinstance(refreshed, (int, float)) else refreshed,
            timezone=meta.get("exchangeTimezoneName") or meta.get("timezone"),
            interval=meta.get("dataGranularity"),
        )
