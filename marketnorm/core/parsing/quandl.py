"""Quandl响应解析器."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marketnorm.core.exceptions import PayloadStructureError
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.base import DEFAULT_FIELD_ALIASES, ParsedMetadata, ProviderParser, RawRow

DEFAULT_COLUMNS = ["Date", "Open", "High", "Low", "Close", "Volume"]


class QuandlParser(ProviderParser):
    """Parses ``dataset.data`` rows positioned by ``dataset.column_names``."""

    source = DataSource.QUANDL.value
    field_aliases = {
        **DEFAULT_FIELD_ALIASES,
        "adjusted_close": ("Adj. Close", "Adj Close", "adjusted_close"),
        "volume": ("Volume", "volume", "Total Trade Quantity", "Adj. Volume"),
    }

    def locate_rows(self, payload: Any) -> list[RawRow]:
        if not isinstance(payload, Mapping):
            raise PayloadStructureError("Quandl payload must be an object", self.source)
        dataset = payload.get("dataset") if isinstance(payload.get("dataset"), Mapping) else {}
        data = dataset.get("data") if dataset.get("data") is not None else payload.get("data")
        if not isinstance(data, list):
            raise PayloadStructureError("Quandl payload has no data rows", self.source)
        columns = dataset.get("column_names") or payload.get("column_names") or DEFAULT_COLUMNS

        rows: list[RawRow] = []
        for index, values in enumerate(data):
            if not isinstance(values, list) or len(values) < 5:
                rows.append(RawRow(index=index, fields=None, raw=values))
                continue
            fields = dict(zip(columns, values))
            rows.append(RawRow(index=index, fields=fields, raw={"columns": list(columns), "values": values}))
        return rows

    def extract_metadata(self, payload: Any) -> ParsedMetadata | None:
        dataset = payload.get("dataset") if isinstance(payload, Mapping) else None
        if not isinstance(dataset, Mapping):
            return None
        return ParsedMetadata(
            symbol=dataset.get("dataset_code"),
            last_refreshed=dataset.get("refreshed_at"),
            interval=dataset.get("frequency"),
        )
