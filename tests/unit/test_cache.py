"""
Unit tests for the in-memory TTL cache.
"""

import time

from app.core.cache import CacheService


class TestCacheService:
    def test_set_and_get(self):
        cache = CacheService(default_ttl=60)

        cache.set("admin:stats:users", {"total": 3})

        assert cache.get("admin:stats:users") == {"total": 3}
        assert cache.get("missing") is None

    def test_expired_entry_disappears_on_read(self, monkeypatch):
        cache = CacheService(default_ttl=60)
        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now)
        cache.set("key", "value", ttl=10)

        monkeypatch.setattr(time, "monotonic", lambda: now + 11)

        assert cache.get("key") is None
        assert cache.stats()["size"] == 0

    def test_delete_pattern_only_removes_matches(self):
        cache = CacheService(default_ttl=60)
        cache.set("admin:stats:users", 1)
        cache.set("admin:stats:posts", 2)
        cache.set("family:RAO001", 3)

        removed = cache.delete_pattern("admin:stats:*")

        assert removed == 2
        assert cache.stats()["keys"] == ["family:RAO001"]

    def test_sweep_counts_removed_entries(self, monkeypatch):
        cache = CacheService(default_ttl=60)
        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)

        monkeypatch.setattr(time, "monotonic", lambda: now + 5)

        assert cache.sweep() == 1
        assert cache.get("long") == 2

    def test_delete(self):
        cache = CacheService(default_ttl=60)
        cache.set("key", 1)

        assert cache.delete("key") is True
        assert cache.delete("key") is False

    def test_least_recently_used_entry_is_evicted_when_full(self):
        cache = CacheService(default_ttl=60, maxsize=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")

        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
