"""IEX Cloud响应解析器."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marketnorm.core.exceptions import PayloadStructureError
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.base import DEFAULT_FIELD_ALIASES, ProviderParser, RawRow, as_mapping_rows


class IEXCloudParser(ProviderParser):
    """Parses IEX chart arrays or a single quote object."""

    source = DataSource.IEX_CLOUD.value
    field_aliases = {
        **DEFAULT_FIELD_ALIASES,
        "date": ("date", "priceDate", "Date", "datetime"),
        "adjusted_close": ("adjustedClose", "uClose", "adjusted_close"),
        "volume": ("volume", "fVolume", "Volume", "latestVolume"),
    }

    def locate_rows(self, payload: Any) -> list[RawRow]:
        if isinstance(payload, list):
            return as_mapping_rows(payload)
        if isinstance(payload, Mapping) and payload:
            return as_mapping_rows([payload])
        raise PayloadStructureError("IEX Cloud payload must be an array or an object", self.source)
