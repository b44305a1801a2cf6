"""Polygon响应解析器."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marketnorm.core.exceptions import PayloadStructureError
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.base import DEFAULT_FIELD_ALIASES, ParsedMetadata, ProviderParser, RawRow, epoch_to_iso


class PolygonParser(ProviderParser):
    """Parses aggregate bars from ``results`` (or ``values``); ``t`` is epoch milliseconds."""

    source = DataSource.POLYGON.value
    field_aliases = {
        **DEFAULT_FIELD_ALIASES,
        "open": ("o", "open"),
        "high": ("h", "high"),
        "low": ("l", "low"),
        "close": ("c", "close"),
        "volume": ("v", "volume"),
        "adjusted_close": ("adjusted_close", "adjustedClose"),
    }

    def locate_rows(self, payload: Any) -> list[RawRow]:
        if not isinstance(payload, Mapping):
            raise PayloadStructureError("Polygon payload must be an object", self.source)
        items = payload.get("results")
        if not isinstance(items, list):
            items = payload.get("values")
        if not isinstance(items, list):
            raise PayloadStructureError("Polygon payload has no results array", self.source)

        rows: list[RawRow] = []
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                rows.append(RawRow(index=index, fields=None, raw=item))
                continue
            stamp = item.get("t")
            date = epoch_to_iso(stamp, milliseconds=True) if isinstance(stamp, (int, float)) else None
            rows.append(RawRow(index=index, fields=item, date=date, raw=item))
        return rows

    def extract_metadata(self, payload: Any) -> ParsedMetadata | None:
        if isinstance(payload, Mapping) and payload.get("ticker"):
            return ParsedMetadata(symbol=str(payload["ticker"]))
        return None
