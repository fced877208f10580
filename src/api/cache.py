"""
Freshness cache for catalog reads.

Entries are keyed by query identity (e.g. a bus number) and are trusted only
while younger than the configured window. Nothing purges entries on write.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    fetched_at: float


class FreshnessCache:
    """Thread-safe keyed cache with a fixed freshness window."""

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        if entry is None:
            return False
        return (self._clock() - entry.fetched_at) < self.ttl_seconds

    def get_fresh(self, key: Hashable) -> Optional[Any]:
        """Return cached data for ``key`` if it is still inside the window."""
        with self._lock:
            entry = self._entries.get(key)
        return entry.data if self.is_fresh(entry) else None

    def has_fresh(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
        return self.is_fresh(entry)

    def put(self, key: Hashable, data: Any) -> CacheEntry:
        entry = CacheEntry(data=data, fetched_at=self._clock())
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
