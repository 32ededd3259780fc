# src/rag/embeddings/cached_embedder.py — v2
"""Embedder decorator backed by the EmbeddingCache.

A failing cache is a degradation, never an error: the embedding is
computed directly and the failure logged.
"""

from __future__ import annotations

import logging

from hybridrag.cache.embedding_cache import EmbeddingCache
from hybridrag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)


class CachedEmbedder(BaseEmbedder):
    """Wrap any BaseEmbedder with memoization of per-text vectors."""

    def __init__(self, inner: BaseEmbedder, cache: EmbeddingCache | None) -> None:
        self._inner = inner
        self._cache = cache

    async def embed_query(self, query: str) -> list[float]:
        cached = await self._cache_get(query)
        if cached is not None:
            return cached
        embedding = await self._inner.embed_query(query)
        await self._cache_put(query, embedding)
        return embedding

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch, only sending cache misses to the inner embedder.

        Raises:
            ValueError: If the inner embedder returns a different number
                of vectors than texts sent.
        """
        vectors: dict[int, list[float]] = {}
        missing: list[int] = []
        for i, text in enumerate(texts):
            cached = await self._cache_get(text)
            if cached is None:
                missing.append(i)
            else:
                vectors[i] = cached

        if missing:
            computed = await self._inner.embed_texts([texts[i] for i in missing])
            if len(computed) != len(missing):
                raise ValueError(
                    f"{self._inner.model_name} returned {len(computed)} vectors "
                    f"for {len(missing)} texts"
                )
            for i, embedding in zip(missing, computed):
                vectors[i] = embedding
                await self._cache_put(texts[i], embedding)

        return [vectors[i] for i in range(len(texts))]

    async def _cache_get(self, text: str) -> list[float] | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(text)
        except Exception as e:
            logger.warning("Embedding cache unavailable on read, bypassing: %s", e)
            return None

    async def _cache_put(self, text: str, embedding: list[float]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.put(text, embedding)
        except Exception as e:
            logger.warning("Embedding cache unavailable on write, bypassing: %s", e)

    @property
    def dimensions(self) -> int:
        return self._inner.dimensions

    @property
    def model_name(self) -> str:
        return self._inner.model_name
