"""
Tests for the in-memory TTL cache.
"""

from detective.services.cache import Cache


class TestCache:
    async def test_set_and_get(self):
        cache = Cache()
        await cache.set("k", {"v": 1})
        assert await cache.get("k") == {"v": 1}
        assert cache.get_stats()["hits"] == 1

    async def test_expired_entries_read_as_missing(self):
        cache = Cache()
        await cache.set("k", "v", ttl_seconds=0)
        assert await cache.get("k") is None
        assert cache.get_stats()["entries"] == 0

    async def test_oldest_entry_evicted(self):
        cache = Cache(max_entries=2)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("c", 3)
        assert await cache.get("a") is None
        assert await cache.get("c") == 3

    async def test_delete_and_clear(self):
        cache = Cache()
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.delete("a")
        assert await cache.get("a") is None
        await cache.clear()
        assert cache.get_stats()["entries"] == 0
