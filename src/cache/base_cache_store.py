# src/cache/base_cache_store.py — v2
"""Abstract cache store interface shared by the embedding and query caches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Generic, TypeVar

from hybridrag.cache.models import CacheStatsReport

V = TypeVar("V")


class BaseCacheStore(ABC, Generic[V]):
    """Unified interface for key/value cache backends.

    get/put/delete are each atomic with respect to concurrent callers.
    """

    @abstractmethod
    async def get(self, key: str) -> V | None:
        """Return the live value for key, or None on miss or expiry."""

    @abstractmethod
    async def put(self, key: str, value: V) -> None:
        """Insert or replace the entry for key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Invalidate a single key."""

    @abstractmethod
    async def clear(self) -> None:
        """Invalidate every entry."""

    @abstractmethod
    async def contains(self, key: str) -> bool:
        """Whether a live entry exists (does not touch counters or recency)."""

    @abstractmethod
    async def put_many(self, items: Iterable[tuple[str, V]]) -> int:
        """Bulk insert (cache warming). Returns the number of entries written."""

    @abstractmethod
    def entry_count(self) -> int:
        """Number of resident entries."""

    @abstractmethod
    def report(self) -> CacheStatsReport:
        """Counters snapshot."""
