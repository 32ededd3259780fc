# src/api/facade.py — v2
"""Public API facade — build the orchestrator and run queries.

Usage:
    from hybridrag.api.facade import build_orchestrator, query
    orchestrator = build_orchestrator(backends=[vector, graph])
    response = await query(orchestrator, QueryRequest(question="..."))
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING

from hybridrag.api.models import (
    CacheStatisticsResponse,
    QueryRequest,
    QueryResponse,
    StreamEvent,
)
from hybridrag.cache.cache_factory import create_cache_manager
from hybridrag.config.settings import Settings
from hybridrag.llm.client_factory import create_llm_client_from_settings
from hybridrag.llm.streamer import GenerationStreamer
from hybridrag.logging.logger import setup_logging
from hybridrag.rag.embeddings.embedder_factory import create_embedder
from hybridrag.rag.retriever.pipeline import HybridRetrievalOrchestrator

if TYPE_CHECKING:
    from hybridrag.cache.manager import RagCacheManager
    from hybridrag.llm.base_client import BaseLLMClient
    from hybridrag.rag.backends.base_backend import BasePolicyStore, BaseSearchBackend
    from hybridrag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)


def build_orchestrator(
    backends: Sequence[BaseSearchBackend],
    settings: Settings | None = None,
    llm_client: BaseLLMClient | None = None,
    cache_manager: RagCacheManager | None = None,
    policy_store: BasePolicyStore | None = None,
    embedder: BaseEmbedder | None = None,
    configure_logging: bool = False,
) -> HybridRetrievalOrchestrator:
    """Wire an orchestrator from settings and collaborators.

    Args:
        backends: Search backends to fan out to.
        settings: Global settings. Loaded from .env if None.
        llm_client: Streaming LLM client. Built from settings if None.
        cache_manager: Caches. Built from settings if None (may be disabled).
        policy_store: Authoritative document policies (optional).
        embedder: Embedder for ``embed()``. Built from settings (wrapped
            with the embedding cache) if None.
        configure_logging: Apply LOG_* settings to the hybridrag logger.

    Returns:
        Ready-to-use HybridRetrievalOrchestrator.
    """
    settings = settings or Settings()
    if configure_logging:
        setup_logging(
            settings.log_level,
            settings.log_format,
            str(settings.log_file) if settings.log_file else None,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
        )
    client = llm_client or create_llm_client_from_settings(settings)
    caches = cache_manager if cache_manager is not None else create_cache_manager(settings)
    if embedder is None:
        embedder = create_embedder(settings, cache=caches.embedding if caches else None)
    streamer = GenerationStreamer(
        client,
        inactivity_timeout_s=settings.generation_inactivity_timeout_s,
        total_timeout_s=settings.generation_total_timeout_s,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )
    logger.info(
        "Orchestrator built: backends=%s, llm=%s, cache=%s",
        [b.name for b in backends], client.provider_name, caches is not None,
    )
    return HybridRetrievalOrchestrator(
        backends=backends,
        streamer=streamer,
        settings=settings,
        cache_manager=caches,
        policy_store=policy_store,
        embedder=embedder,
    )


async def query(orchestrator: HybridRetrievalOrchestrator, request: QueryRequest) -> QueryResponse:
    """Query(question, top_k, principal) -> whole answer."""
    return await orchestrator.query(
        request.question,
        top_k=request.top_k,
        principal=request.principal,
        minimum_score=request.minimum_score,
    )


async def query_streaming(
    orchestrator: HybridRetrievalOrchestrator, request: QueryRequest
) -> AsyncIterator[StreamEvent]:
    """QueryStreaming(question, top_k, principal) -> fragments + terminal event."""
    events = orchestrator.query_streaming(
        request.question,
        top_k=request.top_k,
        principal=request.principal,
        minimum_score=request.minimum_score,
    )
    try:
        async for event in events:
            yield event
    finally:
        await events.aclose()


def cache_statistics(orchestrator: HybridRetrievalOrchestrator) -> CacheStatisticsResponse:
    """CacheStatistics() -> per-cache counters."""
    stats = orchestrator.cache_statistics()
    return CacheStatisticsResponse(enabled=orchestrator.cache_manager is not None, caches=stats)
