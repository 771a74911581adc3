from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class CacheInfo:
    size: int
    keys: list[str]


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class TtlCache(Generic[K, V]):
    """Small in-process cache with a fixed time-to-live.

    Constructed explicitly and handed to whatever needs it; expired entries
    stay readable through ``get_stale`` so a caller can fall back to the last
    known value when a refresh fails.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[K, _Entry[V]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._ttl:
            return None
        return entry.value

    def get_stale(self, key: K) -> V | None:
        entry = self._entries.get(key)
        return None if entry is None else entry.value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = _Entry(value=value, stored_at=self._clock())

    def invalidate(self, key: K) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def info(self) -> CacheInfo:
        return CacheInfo(size=len(self._entries), keys=[str(key) for key in self._entries])

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheInfo", "TtlCache"]
