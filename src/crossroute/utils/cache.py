"""Explicitly owned TTL cache.

Components that need cached reads (route metadata, prices) receive a
``TtlCache`` instance instead of sharing module-level state, so tests can
inject a fake clock and reset the cache by building a new one.
"""

import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and when it was stored."""

    value: T
    stored_at: float


class TtlCache(Generic[T]):
    """Key/value cache whose entries go stale after ``ttl_seconds``.

    Stale entries are kept so callers can fall back to the last good value
    when a refresh fails. Concurrent refreshes are allowed to race; the last
    writer wins.
    """

    def __init__(self, ttl_seconds: float, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, CacheEntry[T]] = {}

    def get_fresh(self, key: Hashable = None) -> Optional[T]:
        """Return the value only if it is still within its TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            return None
        return entry.value

    def get_stale(self, key: Hashable = None) -> Optional[T]:
        """Return the last stored value regardless of age."""
        entry = self._entries.get(key)
        return entry.value if entry else None

    def age(self, key: Hashable = None) -> Optional[float]:
        """Seconds since the entry was stored, or None if there is none."""
        entry = self._entries.get(key)
        return self._clock() - entry.stored_at if entry else None

    def set(self, value: T, key: Hashable = None) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries
