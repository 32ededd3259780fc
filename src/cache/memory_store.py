# src/cache/memory_store.py — v1
"""In-process cache store: bounded LRU eviction plus absolute TTL.

Expiry is checked on read: an entry older than ``ttl_s`` since insertion
counts as a miss and is dropped, regardless of how recently it was used.
Recency bookkeeping lives in an OrderedDict guarded by a lock; no await
happens while the lock is held, so every operation is atomic for both
coroutines and threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import TypeVar

from hybridrag.cache.base_cache_store import BaseCacheStore
from hybridrag.cache.models import CacheEntry, CacheStatsReport
from hybridrag.cache.stats import CacheStats

logger = logging.getLogger(__name__)

V = TypeVar("V")


class TTLLRUCacheStore(BaseCacheStore[V]):
    """Bounded LRU cache with time-to-live.

    Args:
        name: Cache name used in stats and logs.
        capacity: Maximum resident entries.
        ttl_s: Seconds an entry stays valid after insertion.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        name: str,
        capacity: int,
        ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self._name = name
        self._capacity = capacity
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats(name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def stats(self) -> CacheStats:
        return self._stats

    async def get(self, key: str) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None
            if entry is None:
                self._stats.record_miss()
                return None
            self._entries.move_to_end(key)
            self._stats.record_hit()
            return entry.value

    async def put(self, key: str, value: V) -> None:
        with self._lock:
            self._insert(key, value, self._clock())
        self._stats.record_write()

    async def put_many(self, items: Iterable[tuple[str, V]]) -> int:
        written = 0
        now = self._clock()
        with self._lock:
            for key, value in items:
                self._insert(key, value, now)
                written += 1
        if written:
            self._stats.record_write(written)
        return written

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        self._stats.record_invalidation()

    async def clear(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        self._stats.record_invalidation()
        logger.info("Cache '%s' cleared (%d entries dropped)", self._name, dropped)

    async def contains(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(now)

    def entry_count(self) -> int:
        return len(self._entries)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def report(self) -> CacheStatsReport:
        return self._stats.report(
            entry_count=self.entry_count(), capacity=self._capacity
        )

    def _insert(self, key: str, value: V, now: float) -> None:
        """Insert-or-replace; caller holds the lock."""
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key, value=value, inserted_at=now, expires_at=now + self._ttl_s
        )
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache '%s' evicted LRU key %s", self._name, evicted[:12])
