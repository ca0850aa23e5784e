"""TTL cache for metadata lookups."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from constants import Constants


@dataclass
class CacheEntry:
    """A single cache entry with TTL."""

    value: Any
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


class TTLCache:
    """Small thread-safe TTL cache keyed by string.

    Shared read-mostly by concurrent resolutions; entries are immutable
    descriptors so readers never observe partial values.
    """

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        max_entries: Optional[int] = None,
    ):
        """Initialize the cache.

        Args:
            default_ttl: Default time-to-live in seconds.
            max_entries: Size bound before the oldest tenth is evicted.

        Omitted values are read from ``Constants`` at construction time.
        """
        self._default_ttl = default_ttl or Constants.METADATA_CACHE_TTL_SEC
        self._max_entries = max_entries or Constants.METADATA_CACHE_MAX_ENTRIES
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None if missing/expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired():
                del self._cache[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Cache ``value`` under ``key`` for ``ttl`` seconds."""
        effective_ttl = ttl if ttl is not None else self._default_ttl
        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=time.time() + effective_ttl)
            if len(self._cache) > self._max_entries:
                self._evict_oldest(max(1, self._max_entries // 10))

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            expired_count = sum(1 for e in self._cache.values() if e.is_expired())
            return {
                "total_entries": len(self._cache),
                "expired_entries": expired_count,
                "hits": self.hits,
                "misses": self.misses,
                "default_ttl": self._default_ttl,
                "max_entries": self._max_entries,
            }

    def _evict_oldest(self, count: int) -> None:
        sorted_keys = sorted(self._cache, key=lambda k: self._cache[k].created_at)
        for key in sorted_keys[:count]:
            del self._cache[key]
