"""Alpha Vantage响应解析器."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from marketnorm.core.exceptions import PayloadStructureError
from marketnorm.core.models.market import DataSource
from marketnorm.core.parsing.base import ParsedMetadata, ProviderParser, RawRow

_SERIES_MARKERS = ("Time Series", "Weekly", "Monthly")


class AlphaVantageParser(ProviderParser):
    """Parses ``TIME_SERIES_*`` payloads keyed by date under a "Time Series" object."""

    source = DataSource.ALPHA_VANTAGE.value

    def _series_key(self, payload: Mapping[str, Any]) -> str | None:
        for key in payload:
            if "meta" in key.lower():
                continue
            if any(marker in key for marker in _SERIES_MARKERS):
                return key
        return None

    def locate_rows(self, payload: Any) -> list[RawRow]:
        if not isinstance(payload, Mapping):
            raise PayloadStructureError("Alpha Vantage payload must be an object", self.source)

        series_key = self._series_key(payload)
        if series_key is None:
            issues: list[str] = []
            for key in ("Error Message", "Note", "Information"):
                if key in payload:
                    issues.append(str(payload[key]))
            raise PayloadStructureError("Time series container not found", self.source, issues=issues)

        series = payload[series_key]
        if not isinstance(series, Mapping):
            raise PayloadStructureError(f"Time series container {series_key!r} is not an object", self.source)

        return [
            RawRow(
                index=index,
                fields=values if isinstance(values, Mapping) else None,
                date=timestamp,
                raw=values,
            )
            for index, (timestamp, values) in enumerate(series.items())
        ]

    def extract_metadata(self, payload: Any) -> ParsedMetadata | None:
        if not isinstance(payload, Mapping):
            return None
        meta_key = next((key for key in payload if "meta data" in key.lower()), None)
        meta = payload.get(meta_key) if meta_key else None
        if not isinstance(meta, Mapping):
            return None

        def find(fragment: str) -> str | None:
            for key, value in meta.items():
                if fragment in key.lower():
                    return str(value)
            return None

        return ParsedMetadata(
            symbol=find("symbol"),
            last_refreshed=find("last refreshed"),
            timezone=find("time zone"),
            interval=find("interval"),
            output_size=find("output size"),
        )
