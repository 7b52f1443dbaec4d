"""Tests for the SQLite and in-memory TTL caches."""

from __future__ import annotations

import threading

import pytest

from docharvest.cache import MemoryCache, SQLiteCache
from docharvest.types import CacheEntry


@pytest.fixture(params=["sqlite", "memory"])
def cache(request, tmp_path):
    if request.param == "sqlite":
        instance = SQLiteCache(tmp_path / "cache" / "cache.sqlite3")
    else:
        instance = MemoryCache()
    yield instance
    instance.close()


class TestCacheCapability:
    def test_set_get_has(self, cache):
        cache.set("page:a", b"payload", ttl=60)
        assert cache.get("page:a") == b"payload"
        assert cache.has("page:a")
        assert cache.get("page:missing") is None
        assert not cache.has("page:missing")

    def test_overwrite(self, cache):
        cache.set("k", b"one", ttl=60)
        cache.set("k", b"two", ttl=60)
        assert cache.get("k") == b"two"

    def test_expired_on_read(self, cache):
        cache.set("k", b"stale", ttl=0)
        assert cache.get("k") is None
        assert not cache.has("k")

    def test_delete_and_clear(self, cache):
        cache.set("a", b"1", ttl=60)
        cache.set("b", b"2", ttl=60)
        cache.delete("a")
        assert cache.get("a") is None
        assert cache.get("b") == b"2"
        cache.clear()
        assert cache.stats()["entries"] == 0

    def test_stats(self, cache):
        cache.set("a", b"12345", ttl=60)
        cache.set("b", b"x", ttl=0)
        stats = cache.stats()
        assert stats["entries"] == 2
        assert stats["expired"] == 1
        assert stats["size_bytes"] == 6

    def test_concurrent_writers(self, cache):
        def worker(idx: int) -> None:
            for n in range(20):
                cache.set(f"k{idx}-{n}", b"v", ttl=60)

        threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert cache.stats()["entries"] == 80


class TestSQLiteCache:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "c.sqlite3"
        first = SQLiteCache(path)
        first.set("k", b"kept", ttl=60)
        first.close()

        second = SQLiteCache(path)
        try:
            assert second.get("k") == b"kept"
        finally:
            second.close()

    def test_prune_expired(self):
        cache = SQLiteCache(":memory:")
        try:
            cache.set("old", b"x", ttl=0)
            cache.set("new", b"y", ttl=60)
            assert cache.prune_expired() == 1
            assert cache.stats()["entries"] == 1
        finally:
            cache.close()

    def test_close_is_idempotent(self):
        cache = SQLiteCache(":memory:")
        cache.close()
        cache.close()


class TestCacheEntry:
    def test_expiry_and_ttl(self):
        entry = CacheEntry(value=b"v", expires_at=100.0)
        assert not entry.is_expired(now=99.0)
        assert entry.is_expired(now=100.0)
        assert entry.ttl(now=90.0) == 10.0
        assert entry.ttl(now=150.0) == 0.0
