"""线程安全的拆股事件缓存."""

from __future__ import annotations

from threading import Lock
from typing import Protocol, runtime_checkable

from marketnorm.core.exceptions import SplitCacheError
from marketnorm.core.models.splits import SplitEvent


@runtime_checkable
class SplitEventCache(Protocol):
    """Per-symbol store of merged split events."""

    def get(self, symbol: str) -> list[SplitEvent] | None: ...

    def put(self, symbol: str, events: list[SplitEvent]) -> None: ...


class InMemorySplitEventCache:
    """In-process split cache with one lock per symbol.

    Writes for different symbols never contend; concurrent writes for the
    same symbol are serialised and the last writer wins.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[SplitEvent]] = {}
        self._locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    @staticmethod
    def _key(symbol: str) -> str:
        return symbol.strip().upper()

    def _lock_for(self, key: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock

    def get(self, symbol: str) -> list[SplitEvent] | None:
        key = self._key(symbol)
        with self._lock_for(key):
            events = self._entries.get(key)
            return list(events) if events is not None else None

    def put(self, symbol: str, events: list[SplitEvent]) -> None:
        key = self._key(symbol)
        foreign = sorted({event.symbol for event in events if event.symbol.strip().upper() != key})
        if foreign:
            raise SplitCacheError(f"Split events for {foreign} cannot be cached under {key}", symbol=key)
        with self._lock_for(key):
            self._entries[key] = list(events)

    def delete(self, symbol: str) -> bool:
        key = self._key(symbol)
        with self._lock_for(key):
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._registry_lock:
            self._entries.clear()
            self._locks.clear()

    def symbols(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
