"""In-memory TTL cache with lazy eviction and an explicit cleanup sweep."""
from __future__ import annotations

from dataclasses import dataclass
from math import isnan
from threading import RLock
from time import monotonic
from typing import Callable, Generic, Hashable, MutableMapping, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    """Thread-safe TTL cache keyed by arbitrary hashable objects.

    Expired entries are treated as absent and dropped when they are next read.
    Entries that are never read again stay in memory until ``cleanup()`` runs,
    so ``size()`` may include them. There is no capacity limit.
    """

    def __init__(self, default_ttl: float, *, clock: Callable[[], float] = monotonic) -> None:
        if default_ttl < 0 or isnan(default_ttl):
            raise ValueError("default_ttl must be >= 0")
        self._default_ttl = default_ttl
        self._clock = clock
        self._items: MutableMapping[K, _Entry[V]] = {}
        self._lock = RLock()

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    def has(self, key: K) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        ttl_value = ttl if ttl is not None else self._default_ttl
        if ttl_value < 0 or isnan(ttl_value):
            raise ValueError("ttl must be >= 0")
        with self._lock:
            self._items[key] = _Entry(value=value, expires_at=self._clock() + ttl_value)

    def delete(self, key: K) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def cleanup(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._items.items() if now > entry.expires_at]
            for key in expired:
                del self._items[key]
            return len(expired)

    def size(self) -> int:
        """Raw entry count, including expired entries not yet swept."""
        with self._lock:
            return len(self._items)

    def live_size(self) -> int:
        """Count of entries still valid right now. Does not evict anything."""
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._items.values() if now <= entry.expires_at)

    def _live_entry(self, key: K) -> Optional[_Entry[V]]:
        entry = self._items.get(key)
        if entry is None:
            return None
        # still valid at the exact expiry instant
        if self._clock() > entry.expires_at:
            del self._items[key]
            return None
        return entry

    def __contains__(self, key: K) -> bool:  # type: ignore[override]
        return self.has(key)

    def __len__(self) -> int:
        return self.size()
