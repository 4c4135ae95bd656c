"""
Snapshot cache for computed aggregates.

Process-wide key -> (value, stored_at) map with TTL staleness.  There is no
eviction beyond overwrite on a miss, and concurrent misses for the same key
are not deduplicated: each request recomputes and the last write wins.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

DEFAULT_TTL = 60.0  # seconds


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class SnapshotCache:
    """TTL cache with an injectable clock (seconds, monotonic)."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(resource: str, start, end) -> str:
        return f"{resource}-{start}-{end}"

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry if it is still fresh, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            return None
        return entry

    def put(self, key: str, value: Any, now: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(value=value, stored_at=self._clock() if now is None else now)
        self._entries[key] = entry
        return entry

    def get_or_compute(self, key: str, compute: Callable[[], Any]):
        """Return (value, hit).  On a miss, compute() runs and is stored."""
        entry = self.get(key)
        if entry is not None:
            return entry.value, True
        value = compute()
        self.put(key, value)
        return value, False

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
