"""Keyed TTL cache with an injectable clock.

Usage:
    _cache = TTLCache(ttl=900)

    # Read
    hit, data = _cache.get(("standings", 39, 2024))
    if hit:
        return data

    # Write
    data = await fetch()
    _cache.set(("standings", 39, 2024), data)

    # Invalidate one key, or everything
    _cache.invalidate(("standings", 39, 2024))
    _cache.invalidate()

Tests pass a fake clock instead of sleeping:
    now = [0.0]
    cache = TTLCache(ttl=60, clock=lambda: now[0])
    now[0] += 61  # every entry is now stale
"""

import time
from typing import Callable, Hashable


_UNSET = object()


class TTLCache:
    """TTL-based cache keyed by any hashable. Writes replace (last write wins)."""

    __slots__ = ("ttl", "_clock", "_entries")

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, object]] = {}

    def get(self, key: Hashable) -> tuple[bool, object]:
        """Return (hit, data). Stale entries are evicted on read."""
        entry = self._entries.get(key, _UNSET)
        if entry is _UNSET:
            return False, None
        stored_at, data = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return False, None
        return True, data

    def set(self, key: Hashable, data: object) -> None:
        """Store data with the current clock reading."""
        self._entries[key] = (self._clock(), data)

    def invalidate(self, key: Hashable = _UNSET) -> None:
        """Drop one key, or every key when called without arguments."""
        if key is _UNSET:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def age(self, key: Hashable) -> "float | None":
        """Seconds since the key was last set, or None if absent."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry[0]

    def __len__(self) -> int:
        return len(self._entries)
