# src/cache/manager.py — v1
"""Cache manager — owns the embedding and query caches for a process.

Constructed explicitly and passed to the orchestrator; there is no
module-level instance, so tests build isolated managers.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from hybridrag.cache.embedding_cache import EmbeddingCache
from hybridrag.cache.models import CacheStatsReport
from hybridrag.cache.query_cache import QueryCache

logger = logging.getLogger(__name__)


class RagCacheManager:
    """Embedding cache plus query cache with combined statistics."""

    def __init__(
        self,
        embedding: EmbeddingCache | None = None,
        query: QueryCache | None = None,
    ) -> None:
        self.embedding = embedding or EmbeddingCache()
        self.query = query or QueryCache()

    @classmethod
    def with_limits(
        cls,
        embedding_capacity: int,
        embedding_ttl_s: float,
        query_capacity: int,
        query_ttl_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> RagCacheManager:
        return cls(
            embedding=EmbeddingCache(embedding_capacity, embedding_ttl_s, clock=clock),
            query=QueryCache(query_capacity, query_ttl_s, clock=clock),
        )

    async def clear_all(self) -> None:
        await self.embedding.clear()
        await self.query.clear()

    def all_stats(self) -> dict[str, CacheStatsReport]:
        """Per-cache counters keyed by cache name."""
        return {
            "embedding": self.embedding.stats(),
            "query": self.query.stats(),
        }

    async def warm_embedding_cache(
        self,
        texts: Iterable[str],
        compute_embedding: Callable[[str], Awaitable[list[float]]],
    ) -> int:
        """Pre-compute embeddings for known-frequent texts.

        Texts already cached are skipped; a failing text is logged and
        skipped so one bad input does not abort the warm-up.

        Returns:
            Number of embeddings written.
        """
        texts = list(texts)
        logger.info("Warming embedding cache with %d texts", len(texts))
        written = 0
        for text in texts:
            if await self.embedding.contains(text):
                continue
            try:
                embedding = await compute_embedding(text)
            except Exception as e:
                logger.warning("Failed to compute embedding during warm-up: %s", e)
                continue
            await self.embedding.put(text, embedding)
            written += 1
        logger.info(
            "Embedding cache warmed: %d written, %d resident",
            written, self.embedding.entry_count(),
        )
        return written
