# src/rag/retriever/pipeline.py — v4
"""Hybrid retrieval orchestrator — query to grounded, cited answer.

Flow per query:
  1. Query analysis (intent, keywords)
  2. Query cache lookup (principal-scoped)
  3. Fan-out to every backend under a shared deadline
  4. Minimum-score filter on raw hits
  5. Rank fusion (weighted RRF)
  6. Policy resolution + access filter, truncation to top_k
  7. Query cache store (only when every backend answered)
  8. Context building
  9. Streaming generation with incremental citation extraction (the
     whole-answer form falls back to a retried complete() when the
     stream fails before any text)

The cache manager is injected; the orchestrator never creates global
state. Cache failures degrade to direct computation.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Iterable, Sequence

from hybridrag.cache.manager import RagCacheManager
from hybridrag.cache.query_cache import CachedRetrieval
from hybridrag.config.settings import Settings
from hybridrag.core.models import Citation, Principal, RawResult, RetrievalQuery
from hybridrag.llm.streamer import GenerationError, GenerationStreamer, GenerationTimeout
from hybridrag.logging.context import set_phase_context, set_query_context
from hybridrag.rag.backends.base_backend import BaseSearchBackend, BasePolicyStore
from hybridrag.rag.embeddings.base_embedder import BaseEmbedder
from hybridrag.rag.models import (
    ErrorEvent,
    FragmentEvent,
    QueryResponse,
    RetrievalOutcome,
    StreamEvent,
    SummaryEvent,
)
from hybridrag.rag.retriever.access_filter import AccessControlFilter, resolve_policies
from hybridrag.rag.retriever.citation_extractor import (
    CitationExtractor,
    CitationStrategy,
    create_citation_strategy,
)
from hybridrag.rag.retriever.context_assembler import BuiltContext, ContextBuilder
from hybridrag.rag.retriever.fanout import SearchFanout, TotalRetrievalFailure
from hybridrag.rag.retriever.fusion import RankFusionEngine
from hybridrag.rag.retriever.query_analyzer import analyze_query

logger = logging.getLogger(__name__)


class HybridRetrievalOrchestrator:
    """Concurrent multi-backend retrieval, fusion, filtering and generation.

    Args:
        backends: Enabled search backends (unique names).
        streamer: Generation streamer wrapping the LLM client.
        settings: Tunables; defaults loaded from the environment if None.
        cache_manager: Embedding/query caches. None disables caching.
        policy_store: Authoritative document policies (optional).
        embedder: Embedder exposed through ``embed()`` (usually cached).
        citation_strategy: Overrides ``settings.citation_strategy``.
    """

    def __init__(
        self,
        backends: Sequence[BaseSearchBackend],
        streamer: GenerationStreamer,
        settings: Settings | None = None,
        cache_manager: RagCacheManager | None = None,
        policy_store: BasePolicyStore | None = None,
        embedder: BaseEmbedder | None = None,
        citation_strategy: CitationStrategy | None = None,
    ) -> None:
        self._settings = settings or Settings()
        s = self._settings
        self._fanout = SearchFanout(backends, timeout_s=s.fanout_timeout_s)
        self._fusion = RankFusionEngine(k=s.rrf_k, weights=s.backend_weights)
        self._filter = AccessControlFilter()
        self._context = ContextBuilder(
            max_chars=s.context_max_chars,
            min_truncated_chars=s.context_min_truncated_chars,
            language=s.prompt_language,
            ontology_schema=s.ontology_schema,
            include_ontology=s.include_ontology,
        )
        self._citations = CitationExtractor(
            citation_strategy
            or create_citation_strategy(
                s.citation_strategy, s.citation_fuzzy_threshold, s.citation_min_span_chars
            )
        )
        self._streamer = streamer
        self._caches = cache_manager
        self._policy_store = policy_store
        self._embedder = embedder

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache_manager(self) -> RagCacheManager | None:
        return self._caches

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def make_query(
        self,
        question: str,
        top_k: int | None = None,
        principal: Principal | None = None,
        minimum_score: float | None = None,
    ) -> RetrievalQuery:
        return RetrievalQuery(
            text=question,
            requested_top_k=top_k or self._settings.final_top_k,
            minimum_score=self._settings.min_score if minimum_score is None else minimum_score,
            requesting_principal=principal or Principal.anonymous(),
        )

    async def retrieve(self, query: RetrievalQuery) -> RetrievalOutcome:
        """Fused, access-filtered results for ``query``.

        Raises:
            TotalRetrievalFailure: No backend answered before the deadline.
        """
        start = time.monotonic()
        analysis = analyze_query(query.text)
        logger.info(
            "Query analyzed: intent=%s, keywords=%s", analysis.intent, analysis.keywords
        )

        cached = await self._cache_get(query)
        if cached is not None:
            logger.info("Query cache hit (%d results)", len(cached.results))
            return RetrievalOutcome(
                results=list(cached.results),
                per_backend_result_counts=dict(cached.backend_counts),
                analysis=analysis,
                cached=True,
                elapsed_ms=_ms_since(start),
            )

        set_phase_context("retrieve")
        queries: dict[str, str] = {}
        top_k: dict[str, int] = {}
        configured = self._settings.backend_top_k
        for backend in self._fanout.backends:
            queries[backend.name] = (
                analysis.keyword_query if backend.query_mode == "keywords" else query.text
            )
            top_k[backend.name] = max(
                configured.get(backend.name, self._settings.vector_top_k),
                query.requested_top_k,
            )
        fan = await self._fanout.search(queries, top_k)

        set_phase_context("fuse")
        scored = {
            name: _above_minimum(hits, query.minimum_score)
            for name, hits in fan.results_by_backend.items()
        }
        fused = self._fusion.fuse(scored)

        set_phase_context("filter")
        fused = await resolve_policies(fused, self._policy_store)
        visible = self._filter.filter(fused, query.requesting_principal)
        final = visible[: query.requested_top_k]

        outcome = RetrievalOutcome(
            results=final,
            per_backend_result_counts=fan.counts,
            backend_failures=fan.failures,
            analysis=analysis,
            elapsed_ms=_ms_since(start),
        )
        if fan.failures:
            logger.warning(
                "Partial retrieval: failed backends=%s",
                [f.backend for f in fan.failures],
            )
        else:
            await self._cache_put(query, outcome)

        logger.info(
            "Retrieval done in %dms: fused=%d, visible=%d, returned=%d",
            outcome.elapsed_ms, len(fused), len(visible), len(final),
        )
        set_phase_context(None)
        return outcome

    # ------------------------------------------------------------------
    # Query (whole answer) and QueryStreaming
    # ------------------------------------------------------------------

    async def query(
        self,
        question: str,
        top_k: int | None = None,
        principal: Principal | None = None,
        minimum_score: float | None = None,
    ) -> QueryResponse:
        """Answer ``question`` in one piece.

        Raises:
            TotalRetrievalFailure: Every backend failed.
            GenerationError: The language model failed (or timed out).
        """
        start = time.monotonic()
        query = self.make_query(question, top_k, principal, minimum_score)
        query_id = _new_query_id()
        set_query_context(query_id, query.requesting_principal.user_id)

        outcome = await self.retrieve(query)
        context = self._context.build(query.text, outcome.results)

        set_phase_context("generate")
        answer = await self._generate_answer(context.prompt)

        citations = self._citations.extract(answer, context.sources)
        confidence, low = self._confidence(context, citations)
        set_phase_context(None)

        return QueryResponse(
            query_id=query_id,
            answer=answer,
            citations=citations,
            confidence=confidence,
            grounded=context.grounded,
            low_confidence=low,
            sources=[s.result for s in context.sources],
            per_backend_result_counts=outcome.per_backend_result_counts,
            backend_failures=outcome.backend_failures,
            processing_time_ms=_ms_since(start),
            cached=outcome.cached,
        )

    async def query_streaming(
        self,
        question: str,
        top_k: int | None = None,
        principal: Principal | None = None,
        minimum_score: float | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield fragment events, then one terminal summary or error event.

        ``sequence_id`` starts at 1 and increases by one per event.
        Closing the iterator (or cancelling the consuming task) aborts the
        backend calls or the generation connection in progress.
        """
        start = time.monotonic()
        query = self.make_query(question, top_k, principal, minimum_score)
        query_id = _new_query_id()
        set_query_context(query_id, query.requesting_principal.user_id)
        seq = 0

        try:
            outcome = await self.retrieve(query)
        except TotalRetrievalFailure as e:
            logger.error("Total retrieval failure: %s", e)
            yield ErrorEvent(
                sequence_id=seq + 1,
                query_id=query_id,
                error_type="total_retrieval_failure",
                message=str(e),
                backend_failures=e.failures,
            )
            return

        context = self._context.build(query.text, outcome.results)
        tracker = self._citations.incremental(context.sources)

        set_phase_context("generate")
        fragments: list[str] = []
        stream = self._streamer.stream(context.prompt)
        try:
            async for fragment in stream:
                fragments.append(fragment)
                seq += 1
                yield FragmentEvent(
                    sequence_id=seq, fragment=fragment, citations=tracker.feed(fragment)
                )
        except GenerationError as e:
            kind = "generation_timeout" if isinstance(e, GenerationTimeout) else "generation_error"
            yield ErrorEvent(
                sequence_id=seq + 1,
                query_id=query_id,
                error_type=kind,
                message=str(e),
                partial_answer="".join(fragments),
                backend_failures=outcome.backend_failures,
            )
            return
        finally:
            await stream.aclose()

        tracker.finish()
        citations = tracker.citations
        confidence, low = self._confidence(context, citations)
        set_phase_context(None)
        yield SummaryEvent(
            sequence_id=seq + 1,
            query_id=query_id,
            answer="".join(fragments),
            citations=citations,
            confidence=confidence,
            grounded=context.grounded,
            low_confidence=low,
            per_backend_result_counts=outcome.per_backend_result_counts,
            backend_failures=outcome.backend_failures,
            processing_time_ms=_ms_since(start),
            cached=outcome.cached,
        )

    # ------------------------------------------------------------------
    # Embeddings, cache operations
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embedding of ``text`` through the (cached) embedder."""
        if self._embedder is None:
            raise RuntimeError("No embedder configured")
        return await self._embedder.embed_query(text)

    async def warm_query_cache(
        self,
        questions: Iterable[str],
        principal: Principal | None = None,
        top_k: int | None = None,
    ) -> int:
        """Run retrieval for known-frequent questions to populate the cache.

        Returns:
            Number of questions whose retrieval was computed and stored.
        """
        if self._caches is None:
            return 0
        warmed = 0
        for question in questions:
            query = self.make_query(question, top_k, principal)
            if await self._caches.query.contains(
                query.text, query.requested_top_k, query.minimum_score,
                query.requesting_principal,
            ):
                continue
            try:
                outcome = await self.retrieve(query)
            except TotalRetrievalFailure as e:
                logger.warning("Query cache warm-up failed for one question: %s", e)
                continue
            if not outcome.partial:
                warmed += 1
        logger.info("Query cache warmed with %d questions", warmed)
        return warmed

    def cache_statistics(self) -> dict:
        """Per-cache counters (empty when caching is disabled)."""
        if self._caches is None:
            return {}
        return self._caches.all_stats()

    async def aclose(self) -> None:
        """Close every backend's store and drop cached entries.

        A backend that fails to close is logged and the rest still close.
        """
        for backend in self._fanout.backends:
            try:
                await backend.close()
            except Exception:
                logger.warning("Closing backend '%s' failed", backend.name, exc_info=True)
        if self._caches is not None:
            await self._caches.clear_all()
        logger.info("Orchestrator closed")

    async def __aenter__(self) -> HybridRetrievalOrchestrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate_answer(self, prompt: str) -> str:
        fragments: list[str] = []
        stream = self._streamer.stream(prompt)
        try:
            async for fragment in stream:
                fragments.append(fragment)
        except GenerationTimeout:
            raise
        except GenerationError as e:
            if e.partial_text or not self._settings.generation_complete_fallback:
                raise
            logger.warning("Stream failed before any text, retrying as complete(): %s", e)
            return await self._streamer.complete(prompt)
        finally:
            await stream.aclose()
        return "".join(fragments)

    async def _cache_get(self, query: RetrievalQuery) -> CachedRetrieval | None:
        if self._caches is None:
            return None
        try:
            return await self._caches.query.get(
                query.text, query.requested_top_k, query.minimum_score,
                query.requesting_principal,
            )
        except Exception as e:
            logger.warning("Query cache unavailable, bypassing lookup: %s", e)
            return None

    async def _cache_put(self, query: RetrievalQuery, outcome: RetrievalOutcome) -> None:
        if self._caches is None:
            return
        value = CachedRetrieval(
            results=tuple(outcome.results),
            backend_counts=dict(outcome.per_backend_result_counts),
        )
        try:
            await self._caches.query.put(
                query.text, query.requested_top_k, query.minimum_score, value,
                query.requesting_principal,
            )
        except Exception as e:
            logger.warning("Query cache unavailable, result not stored: %s", e)

    def _confidence(self, context: BuiltContext, citations: list[Citation]) -> tuple[float, bool]:
        """(confidence, low_confidence) for an answer over ``context``."""
        if not context.sources:
            return 0.0, True
        mean = sum(s.result.fused_score for s in context.sources) / len(context.sources)
        ceiling = self._fusion.max_score(self._fanout.backend_names)
        score = min(1.0, mean / ceiling) if ceiling > 0 else 0.0
        if not citations:
            return round(score * 0.5, 4), True
        return round(score, 4), False


def _above_minimum(hits: Sequence[RawResult], minimum: float) -> list[RawResult]:
    return [h for h in hits if h.raw_score >= minimum]


def _new_query_id() -> str:
    return uuid.uuid4().hex[:12]


def _ms_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
