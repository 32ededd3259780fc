# src/cache/query_cache.py — v1
"""Query cache: (question, top_k, min_score, principal scope) -> fused results.

Only retrieval is cached. Generated answers never are, since they must
reflect the live language-model configuration.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field

from hybridrag.cache.fingerprint import query_key
from hybridrag.cache.memory_store import TTLLRUCacheStore
from hybridrag.cache.models import CacheStatsReport
from hybridrag.core.models import FusedResult, Principal

DEFAULT_CAPACITY = 1_000
DEFAULT_TTL_S = 300.0


class CachedRetrieval(BaseModel):
    """Fused, filtered and truncated results of one retrieval."""

    model_config = ConfigDict(frozen=True)

    results: tuple[FusedResult, ...]
    backend_counts: dict[str, int] = Field(default_factory=dict)


class QueryCache:
    """Memoizes whole-query retrieval results."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: TTLLRUCacheStore[CachedRetrieval] = TTLLRUCacheStore(
            "query", capacity=capacity, ttl_s=ttl_s, clock=clock
        )

    async def get(
        self,
        question: str,
        top_k: int,
        min_score: float,
        principal: Principal | None = None,
    ) -> CachedRetrieval | None:
        return await self._store.get(query_key(question, top_k, min_score, principal))

    async def put(
        self,
        question: str,
        top_k: int,
        min_score: float,
        value: CachedRetrieval,
        principal: Principal | None = None,
    ) -> None:
        await self._store.put(query_key(question, top_k, min_score, principal), value)

    async def contains(
        self,
        question: str,
        top_k: int,
        min_score: float,
        principal: Principal | None = None,
    ) -> bool:
        return await self._store.contains(
            query_key(question, top_k, min_score, principal)
        )

    async def invalidate(
        self,
        question: str,
        top_k: int,
        min_score: float,
        principal: Principal | None = None,
    ) -> None:
        await self._store.delete(query_key(question, top_k, min_score, principal))

    async def clear(self) -> None:
        await self._store.clear()

    async def warm(
        self,
        items: Iterable[tuple[str, int, float, Principal | None, CachedRetrieval]],
    ) -> int:
        """Bulk insert (question, top_k, min_score, principal, value) tuples."""
        return await self._store.put_many(
            (query_key(q, k, s, p), v) for q, k, s, p, v in items
        )

    def entry_count(self) -> int:
        return self._store.entry_count()

    def stats(self) -> CacheStatsReport:
        return self._store.report()
