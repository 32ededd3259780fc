# src/cache/embedding_cache.py — v1
"""Embedding cache: text -> embedding vector."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

from hybridrag.cache.fingerprint import hash_text
from hybridrag.cache.memory_store import TTLLRUCacheStore
from hybridrag.cache.models import CacheStatsReport

DEFAULT_CAPACITY = 10_000
DEFAULT_TTL_S = 3600.0


class EmbeddingCache:
    """Memoizes vector embeddings keyed by the hash of normalized text."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: TTLLRUCacheStore[tuple[float, ...]] = TTLLRUCacheStore(
            "embedding", capacity=capacity, ttl_s=ttl_s, clock=clock
        )

    async def get(self, text: str) -> list[float] | None:
        value = await self._store.get(hash_text(text))
        return list(value) if value is not None else None

    async def put(self, text: str, embedding: list[float]) -> None:
        await self._store.put(hash_text(text), tuple(embedding))

    async def contains(self, text: str) -> bool:
        return await self._store.contains(hash_text(text))

    async def invalidate(self, text: str) -> None:
        await self._store.delete(hash_text(text))

    async def clear(self) -> None:
        await self._store.clear()

    async def warm(self, items: Iterable[tuple[str, list[float]]]) -> int:
        """Bulk insert precomputed embeddings."""
        return await self._store.put_many(
            (hash_text(text), tuple(vec)) for text, vec in items
        )

    def entry_count(self) -> int:
        return self._store.entry_count()

    def stats(self) -> CacheStatsReport:
        return self._store.report()
