"""
In-memory TTL cache backed by ``cachetools.TLRUCache``.

Every entry carries its own lifetime. Expired entries disappear on read
and during the periodic sweep started from the app lifespan. Once
``MAX_ENTRIES`` is reached the least recently used entry is evicted.
"""

import asyncio
import fnmatch
import logging
import time
from typing import Any, Dict, Optional, Tuple

from cachetools import TLRUCache

from app.core.config import settings

logger = logging.getLogger(__name__)

MAX_ENTRIES = 10_000


def _expires_at(_key: str, entry: Tuple[Any, float], now: float) -> float:
    _, ttl = entry
    return now + ttl


class CacheService:
    """
    Process-local TTL map.

    Example:
        cache.set("admin:stats:users", stats, ttl=300)
        cached = cache.get("admin:stats:users")
        cache.delete_pattern("admin:stats:*")
    """

    def __init__(self, default_ttl: Optional[int] = None, maxsize: int = MAX_ENTRIES):
        self.default_ttl = default_ttl or settings.cache_default_ttl_seconds
        # Looked up on every call so tests can move the clock
        self._entries: TLRUCache = TLRUCache(
            maxsize=maxsize,
            ttu=_expires_at,
            timer=lambda: time.monotonic(),
        )

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        return None if entry is None else entry[0]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = (value, lifetime)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a ``*`` wildcard pattern; returns the count."""
        matched = [key for key in list(self._entries) if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            self._entries.pop(key, None)
        return len(matched)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        before = self._entries.currsize
        self._entries.expire()
        return before - self._entries.currsize

    def stats(self) -> Dict[str, Any]:
        self.sweep()
        return {"size": len(self._entries), "keys": sorted(self._entries)}

    async def run_sweeper(self, interval_seconds: Optional[int] = None) -> None:
        """Sweep expired entries forever; cancelled on shutdown."""
        interval = interval_seconds or settings.cache_sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep()
            if removed:
                logger.debug("Cache sweep removed expired entries", extra={"count": removed})


# Global cache instance
cache = CacheService()
