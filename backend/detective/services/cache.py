"""
In-memory TTL cache for upstream lookups (geocoding, weather).
"""
import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class Cache:
    """Async-safe TTL cache with a bounded number of entries.

    The least recently written entry is evicted once ``max_entries`` is reached.
    """

    def __init__(self, default_ttl_seconds: int = 300, max_entries: int = 1000):
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, value = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        async with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (time.monotonic() + ttl, value)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    async def delete(self, key: str):
        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self):
        async with self._lock:
            self._entries.clear()
            logger.info("Cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
        }


# Global cache instance
cache = Cache()
