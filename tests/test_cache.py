"""
Test the persistent TTL cache.
"""

import json

import pytest

from openapi_directory.core.cache.store import CacheEntry, PersistentCache, compile_pattern


class TestPersistentCache:
    """Test in-memory behaviour of the persistent cache."""

    def test_set_and_get(self, cache):
        """Test storing and reading a value."""
        assert cache.set("primary:providers", {"data": ["a.com"]}) is True
        assert cache.get("primary:providers") == {"data": ["a.com"]}

    def test_get_missing_returns_default(self, cache):
        """Test that a miss returns the default."""
        assert cache.get("nope") is None
        assert cache.get("nope", "fallback") == "fallback"

    def test_entry_expires_after_ttl(self, cache, clock):
        """Test that an entry disappears once its TTL has elapsed."""
        cache.set("key", "value", ttl=10)

        clock.advance(10)
        assert cache.get("key") == "value"

        clock.advance(1)
        assert cache.get("key") is None
        assert "key" not in cache.keys()

    def test_zero_ttl_never_expires(self, cache, clock):
        """Test that ttl=0 keeps an entry forever."""
        cache.set("forever", 1, ttl=0)
        clock.advance(10 * 365 * 24 * 3600)

        assert cache.get("forever") == 1
        assert cache.get_ttl("forever") is None

    def test_default_ttl_applies(self, cache, clock):
        """Test that the configured default TTL is used when none is given."""
        cache.set("key", "value")
        assert cache.get_ttl("key") == pytest.approx(3600)

        clock.advance(3601)
        assert cache.has("key") is False

    def test_delete(self, cache):
        """Test deleting a key reports how many entries were removed."""
        cache.set("key", "value")
        assert cache.delete("key") == 1
        assert cache.delete("key") == 0

    def test_invalidate_pattern(self, cache):
        """Test glob invalidation removes only matching keys."""
        cache.set("triple:search:a:all:1:20", 1)
        cache.set("triple:search:b:all:1:20", 2)
        cache.set("triple:metrics", 3)
        cache.set("custom:all_apis", 4)

        removed = cache.invalidate_pattern("triple:search:*")

        assert removed == 2
        assert sorted(cache.keys()) == ["custom:all_apis", "triple:metrics"]

    def test_pattern_treats_other_characters_literally(self):
        """Test that regex metacharacters in patterns are not interpreted."""
        regex = compile_pattern("a.b:*")
        assert regex.match("a.b:c")
        assert not regex.match("axb:c")

    def test_invalidate_keys(self, cache):
        """Test invalidating an explicit key list."""
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.invalidate_keys(["a", "b", "c"]) == 2
        assert cache.keys() == []

    def test_prune_removes_expired(self, cache, clock):
        """Test pruning drops only expired entries."""
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.advance(6)

        assert cache.prune() == 1
        assert cache.keys() == ["long"]

    def test_stats(self, cache):
        """Test hit and miss counters."""
        cache.set("key", "value")
        cache.get("key")
        cache.get("missing")

        stats = cache.get_stats()
        assert stats["enabled"] is True
        assert stats["keys"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["ksize"] == len("key")

    def test_disabled_cache(self, cache_dir):
        """Test that a disabled cache never stores anything."""
        disabled = PersistentCache(cache_dir, enabled=False)

        assert disabled.set("key", "value") is False
        assert disabled.get("key") is None
        assert disabled.keys() == []
        assert disabled.get_stats()["enabled"] is False
        assert disabled.get_stats()["keys"] == 0


class TestCachePersistence:
    """Test disk persistence and cross-process invalidation."""

    def test_persist_and_reload(self, cache_dir, clock):
        """Test that persisted entries are loaded by a new instance."""
        first = PersistentCache(cache_dir, clock=clock)
        first.set("key", {"nested": [1, 2]}, ttl=100)
        first.set("forever", "x", ttl=0)
        assert first.persist() is True

        second = PersistentCache(cache_dir, clock=clock)
        assert second.get("key") == {"nested": [1, 2]}
        assert second.get("forever") == "x"

    def test_file_format_uses_milliseconds(self, cache_dir, clock):
        """Test the on-disk record layout."""
        cache = PersistentCache(cache_dir, clock=clock)
        cache.set("key", "value", ttl=10)
        cache.persist()

        raw = json.loads((cache_dir / "cache.json").read_text())
        assert raw["key"]["value"] == "value"
        assert raw["key"]["expires"] == int((clock.now + 10) * 1000)
        assert raw["key"]["created"] == int(clock.now * 1000)

    def test_expired_entries_not_loaded(self, cache_dir, clock):
        """Test that entries expired on disk are dropped at load."""
        first = PersistentCache(cache_dir, clock=clock)
        first.set("key", "value", ttl=10)
        first.persist()

        clock.advance(60)
        second = PersistentCache(cache_dir, clock=clock)
        assert second.keys() == []

    def test_corrupt_file_is_ignored(self, cache_dir):
        """Test that an unreadable cache file yields an empty cache."""
        (cache_dir / "cache.json").write_text("{not json")

        cache = PersistentCache(cache_dir)
        assert cache.keys() == []
        assert cache.set("key", 1) is True

    def test_non_serializable_values_are_skipped(self, cache_dir):
        """Test that persist skips values JSON cannot encode."""
        cache = PersistentCache(cache_dir)
        cache.set("good", 1)
        cache.set("bad", object())

        assert cache.persist() is True
        raw = json.loads((cache_dir / "cache.json").read_text())
        assert list(raw) == ["good"]

    def test_invalidation_flag_clears_cache(self, cache_dir, clock):
        """Test that another process's flag clears this cache on next read."""
        server = PersistentCache(cache_dir, clock=clock)
        server.set("triple:providers", {"data": ["a.com"]})

        importer = PersistentCache(cache_dir, clock=clock)
        assert importer.create_invalidation_flag() is True
        assert (cache_dir / ".invalidate").exists()

        assert server.get("triple:providers") is None
        assert not (cache_dir / ".invalidate").exists()

    def test_flag_present_at_startup(self, cache_dir, clock):
        """Test that a flag found at startup discards the loaded entries."""
        first = PersistentCache(cache_dir, clock=clock)
        first.set("key", "value")
        first.persist()
        (cache_dir / ".invalidate").touch()

        second = PersistentCache(cache_dir, clock=clock)
        assert second.keys() == []
        assert not (cache_dir / ".invalidate").exists()

    def test_clear_removes_file(self, cache_dir):
        """Test clearing removes entries and the cache file."""
        cache = PersistentCache(cache_dir)
        cache.set("key", "value")
        cache.persist()

        cache.clear()
        assert cache.keys() == []
        assert not (cache_dir / "cache.json").exists()

    def test_entry_round_trip(self):
        """Test CacheEntry conversion to and from the file record."""
        entry = CacheEntry("v", expires=0, created=12.5)
        restored = CacheEntry.from_dict(entry.to_dict())

        assert restored.expires == 0
        assert restored.created == 12.5
        assert restored.is_expired(10 ** 12) is False


class TestWarmCache:
    """Test the fetch-or-cache helper."""

    @pytest.mark.asyncio
    async def test_fetches_once(self, cache):
        """Test that the fetch function runs only on a miss."""
        calls = []

        async def fetch():
            calls.append(1)
            return {"data": 1}

        assert await cache.warm_cache("key", fetch) == {"data": 1}
        assert await cache.warm_cache("key", fetch) == {"data": 1}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failure_stores_nothing(self, cache):
        """Test that a failing fetch propagates and caches nothing."""
        async def fetch():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.warm_cache("key", fetch)
        assert cache.has("key") is False

    @pytest.mark.asyncio
    async def test_disabled_cache_always_fetches(self, cache_dir):
        """Test that a disabled cache calls the fetch function every time."""
        cache = PersistentCache(cache_dir, enabled=False)
        calls = []

        async def fetch():
            calls.append(1)
            return len(calls)

        assert await cache.warm_cache("key", fetch) == 1
        assert await cache.warm_cache("key", fetch) == 2

    @pytest.mark.asyncio
    async def test_close_persists(self, cache_dir):
        """Test that close flushes entries to disk."""
        cache = PersistentCache(cache_dir)
        await cache.start()
        cache.set("key", "value")
        await cache.close()

        raw = json.loads((cache_dir / "cache.json").read_text())
        assert raw["key"]["value"] == "value"
