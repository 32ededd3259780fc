# tests/unit/cache/test_embedding_cache.py — v1
"""Tests for cache/embedding_cache.py."""

from __future__ import annotations

import pytest

from hybridrag.cache.embedding_cache import EmbeddingCache


class TestEmbeddingCache:
    @pytest.mark.asyncio
    async def test_defaults(self):
        report = EmbeddingCache().stats()
        assert report.name == "embedding"
        assert report.capacity == 10_000

    @pytest.mark.asyncio
    async def test_roundtrip_returns_copy(self):
        cache = EmbeddingCache()
        await cache.put("안녕하세요", [0.1, 0.2])
        got = await cache.get("안녕하세요")
        assert got == [0.1, 0.2]
        got.append(9.9)
        assert await cache.get("안녕하세요") == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_normalized_whitespace_shares_entry(self):
        cache = EmbeddingCache()
        await cache.put("hello world", [1.0])
        assert await cache.get("  hello   world ") == [1.0]

    @pytest.mark.asyncio
    async def test_ttl(self, clock):
        cache = EmbeddingCache(capacity=10, ttl_s=3600, clock=clock)
        await cache.put("t", [1.0])
        clock.advance(3600)
        assert await cache.get("t") is None

    @pytest.mark.asyncio
    async def test_warm_and_invalidate(self):
        cache = EmbeddingCache()
        assert await cache.warm([("a", [1.0]), ("b", [2.0])]) == 2
        assert cache.entry_count() == 2
        await cache.invalidate("a")
        assert not await cache.contains("a")
        report = cache.stats()
        assert report.writes == 2
        assert report.invalidations == 1
