# src/cache/stats.py — v1
"""Monotonic hit/miss/write/invalidation counters for one cache instance."""

from __future__ import annotations

import threading

from hybridrag.cache.models import CacheStatsReport


class CacheStats:
    """Counters are only ever incremented, each increment under a lock."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._invalidations = 0

    @property
    def name(self) -> str:
        return self._name

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def record_write(self, count: int = 1) -> None:
        with self._lock:
            self._writes += count

    def record_invalidation(self) -> None:
        with self._lock:
            self._invalidations += 1

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def writes(self) -> int:
        return self._writes

    @property
    def invalidations(self) -> int:
        return self._invalidations

    @property
    def total_requests(self) -> int:
        return self._hits + self._misses

    @property
    def hit_rate(self) -> float:
        """Hits over total requests (0.0 when nothing was requested)."""
        total = self.total_requests
        return self._hits / total if total else 0.0

    def report(self, entry_count: int = 0, capacity: int = 0) -> CacheStatsReport:
        with self._lock:
            hits, misses = self._hits, self._misses
            writes, invalidations = self._writes, self._invalidations
        total = hits + misses
        hit_rate = hits / total if total else 0.0
        return CacheStatsReport(
            name=self._name,
            hits=hits,
            misses=misses,
            writes=writes,
            invalidations=invalidations,
            total_requests=total,
            hit_rate=hit_rate,
            miss_rate=1.0 - hit_rate if total else 0.0,
            entry_count=entry_count,
            capacity=capacity,
        )
