"""Tests for the chunk audio cache."""
from __future__ import annotations

import time

from podcraft.tts.cache import CacheItem, TinyLRUCache, make_chunk_key


def _item(data: bytes = b"\x01\x00", created_at: float = None) -> CacheItem:
    if created_at is None:
        return CacheItem(pcm_bytes=data, sample_rate=24000)
    return CacheItem(pcm_bytes=data, sample_rate=24000, created_at=created_at)


class TestChunkKey:

    def test_key_is_stable(self):
        voices = {"Alex": "Zephyr", "Max": "Fenrir"}
        assert make_chunk_key("tts", voices, "prompt") == make_chunk_key("tts", dict(reversed(voices.items())), "prompt")

    def test_key_changes_with_inputs(self):
        base = make_chunk_key("tts", {"Alex": "Zephyr"}, "prompt")
        assert base != make_chunk_key("tts-2", {"Alex": "Zephyr"}, "prompt")
        assert base != make_chunk_key("tts", {"Alex": "Kore"}, "prompt")
        assert base != make_chunk_key("tts", {"Alex": "Zephyr"}, "prompt!")


class TestTinyLRUCache:

    def test_set_and_get(self):
        cache = TinyLRUCache(max_items=2)
        cache.set("a", _item(b"aa"))
        item, timings = cache.get("a")

        assert item is not None
        assert item.pcm_bytes == b"aa"
        assert "cache_get" in timings

    def test_miss(self):
        cache = TinyLRUCache()
        item, _ = cache.get("missing")
        assert item is None
        assert cache.stats()["misses"] == 1

    def test_lru_eviction(self):
        """The least recently used key is evicted first."""
        cache = TinyLRUCache(max_items=2)
        cache.set("a", _item())
        cache.set("b", _item())
        cache.get("a")
        cache.set("c", _item())

        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_ttl_expiration_on_get(self):
        cache = TinyLRUCache(max_items=4, ttl_seconds=1)
        cache.set("old", _item(created_at=time.time() - 10))

        item, _ = cache.get("old")
        assert item is None
        assert cache.stats()["expirations"] == 1

    def test_cleanup_expired(self):
        cache = TinyLRUCache(max_items=4, ttl_seconds=1)
        cache.set("old", _item(created_at=time.time() - 10))
        cache.set("new", _item())

        assert cache.cleanup_expired() == 1
        assert "new" in cache

    def test_no_ttl(self):
        cache = TinyLRUCache(ttl_seconds=0)
        cache.set("old", _item(created_at=time.time() - 10_000))
        item, _ = cache.get("old")
        assert item is not None
        assert cache.cleanup_expired() == 0

    def test_delete_and_clear(self):
        cache = TinyLRUCache()
        cache.set("a", _item())
        cache.set("b", _item())

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0

    def test_stats(self):
        cache = TinyLRUCache(max_items=8, ttl_seconds=30)
        cache.set("a", _item())
        cache.get("a")
        cache.get("b")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["max_items"] == 8
        assert stats["ttl_seconds"] == 30
