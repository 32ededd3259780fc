# src/cache/cache_factory.py — v3
"""Factory for the cache manager."""

from __future__ import annotations

from hybridrag.cache.manager import RagCacheManager
from hybridrag.config.settings import Settings


def create_cache_manager(settings: Settings | None = None) -> RagCacheManager | None:
    """Instantiate the cache manager from settings.

    Args:
        settings: Application settings. Defaults to built-in capacities and TTLs.

    Returns:
        Configured RagCacheManager, or None when CACHE_ENABLED is false.
    """
    if settings is None:
        return RagCacheManager()
    if not settings.cache_enabled:
        return None
    return RagCacheManager.with_limits(
        embedding_capacity=settings.embedding_cache_capacity,
        embedding_ttl_s=settings.embedding_cache_ttl_s,
        query_capacity=settings.query_cache_capacity,
        query_ttl_s=settings.query_cache_ttl_s,
    )
