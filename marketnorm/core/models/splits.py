"""Split event model."""

from __future__ import annotations

from datetime import date as Date
from collections.abc import Iterable

from pydantic import Field, field_validator

from marketnorm.core.models.base import CamelModel


class SplitEvent(CamelModel):
    """A stock split, either detected from a price discontinuity or supplied externally."""

    date: str
    symbol: str
    split_ratio: float = Field(gt=0)
    split_from: float = Field(default=1.0, gt=0)
    split_to: float = Field(default=1.0, gt=0)
    source: str = "detected"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: object) -> object:
        if isinstance(value, Date):
            return value.isoformat()[:10]
        return value

    @property
    def key(self) -> tuple[str, str]:
        return (self.symbol.upper(), self.date[:10])


def merge_split_events(*groups: Iterable[SplitEvent]) -> list[SplitEvent]:
    """Deduplicate events by ``(symbol, date)`` keeping the highest confidence entry."""

    merged: dict[tuple[str, str], SplitEvent] = {}
    for group in groups:
        for event in group:
            current = merged.get(event.key)
            if current is None or event.confidence > current.confidence:
                merged[event.key] = event
    return sorted(merged.values(), key=lambda item: item.date)


__all__ = ["SplitEvent", "merge_split_events"]
