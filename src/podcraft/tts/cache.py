"""
Chunk audio cache.

Re-synthesizing a script is common: /api/podcasts/audio after an edit to one
line, a speaker preview clicked twice, a generation retried after a cover
failure. Each TTS chunk's PCM is kept here under a key derived from
everything that affects the audio (model, speaker -> voice map, prompt), so
only chunks whose text or voices changed go back to Gemini.

The cache is process-wide and shared by the pipeline's worker threads.
"""
from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from podcraft.core.config import Defaults
from podcraft.core.logging import debug, get_logger, verbose
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.cache")


@dataclass
class CacheItem:
    pcm_bytes: bytes
    sample_rate: int
    created_at: float = field(default_factory=time.time)


def make_chunk_key(model: str, voices: Mapping[str, str], prompt: str) -> str:
    """
    sha256 of the TTS request. Voice map order does not matter; any change
    to the model, a speaker's voice or the prompt text gives a new key.
    """
    blob = json.dumps([model, sorted(voices.items()), prompt], ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class TinyLRUCache:
    """
    Bounded LRU map of chunk key -> CacheItem with optional TTL.

    ttl_seconds <= 0 disables expiry. Expired items are dropped lazily on
    `get` and eagerly by `cleanup_expired`.
    """

    def __init__(
        self,
        max_items: int = Defaults.CACHE_MAX_ITEMS,
        ttl_seconds: int = Defaults.CACHE_TTL_SECONDS,
    ):
        self.max_items = int(max_items)
        self.ttl_seconds = int(ttl_seconds)
        self._items: "OrderedDict[str, CacheItem]" = OrderedDict()
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def _is_stale(self, item: CacheItem, now: float) -> bool:
        return self.ttl_seconds > 0 and now - item.created_at > self.ttl_seconds

    def get(self, key: str) -> Tuple[Optional[CacheItem], Dict[str, float]]:
        """Look up a chunk; returns (item or None, {"cache_get": seconds})."""
        with timeit("cache_get") as t:
            with self._lock:
                item = self._items.get(key)
                if item is not None and self._is_stale(item, time.time()):
                    del self._items[key]
                    self._counts["expirations"] += 1
                    verbose(_LOG, "cache_expired", key=key[:8])
                    item = None
                if item is None:
                    self._counts["misses"] += 1
                else:
                    self._items.move_to_end(key)
                    self._counts["hits"] += 1

        debug(_LOG, "cache_get", key=key[:8], cache="hit" if item is not None else "miss")
        return item, {"cache_get": t.elapsed}

    def set(self, key: str, item: CacheItem) -> Dict[str, float]:
        with timeit("cache_set") as t:
            with self._lock:
                self._items[key] = item
                self._items.move_to_end(key)
                while len(self._items) > self.max_items:
                    self._items.popitem(last=False)

        debug(_LOG, "cache_set", key=key[:8], bytes=len(item.pcm_bytes))
        return {"cache_set": t.elapsed}

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            removed = len(self._items)
            self._items.clear()
        return removed

    def cleanup_expired(self) -> int:
        """Drop every stale item; returns how many were removed."""
        if self.ttl_seconds <= 0:
            return 0
        now = time.time()
        with self._lock:
            stale = [k for k, item in self._items.items() if self._is_stale(item, now)]
            for k in stale:
                del self._items[k]
            self._counts["expirations"] += len(stale)
        if stale:
            verbose(_LOG, "cache_cleanup", removed=len(stale))
        return len(stale)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._counts["hits"],
                "misses": self._counts["misses"],
                "expirations": self._counts["expirations"],
                "size": len(self._items),
                "max_items": self.max_items,
                "ttl_seconds": self.ttl_seconds,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: str) -> bool:
        # presence only; a stale item still counts until get/cleanup drops it
        with self._lock:
            return key in self._items
