# tests/unit/rag/retriever/test_orchestrator.py — v3
"""Tests for rag/retriever/pipeline.py — HybridRetrievalOrchestrator."""

from __future__ import annotations

import httpx
import pytest

from hybridrag.cache.manager import RagCacheManager
from hybridrag.cache.query_cache import QueryCache
from hybridrag.config.settings import Settings
from hybridrag.llm.adapters.ollama_adapter import OllamaAdapter
from hybridrag.llm.retry import RetryConfig
from hybridrag.llm.streamer import GenerationError, GenerationStreamer, GenerationTimeout
from hybridrag.rag.embeddings.base_embedder import BaseEmbedder
from hybridrag.rag.embeddings.cached_embedder import CachedEmbedder
from hybridrag.rag.models import ErrorEvent, FragmentEvent, SummaryEvent
from hybridrag.rag.retriever.fanout import TotalRetrievalFailure
from hybridrag.rag.retriever.pipeline import HybridRetrievalOrchestrator
from hybridrag.rag.retriever.prompts import KOREAN

QUESTION = "연차휴가는 며칠인가요?"
ANSWER = ["연차휴가는 ", "15일입니다 ", "[출처: 1]."]


class _BrokenQueryCache(QueryCache):
    async def get(self, *args, **kwargs):
        raise ConnectionError("cache down")

    async def put(self, *args, **kwargs):
        raise ConnectionError("cache down")


class _CountingEmbedder(BaseEmbedder):
    def __init__(self) -> None:
        self.calls = 0

    async def embed_texts(self, texts):
        return [[float(len(t))] for t in texts]

    async def embed_query(self, query):
        self.calls += 1
        return [float(len(query))]

    @property
    def dimensions(self) -> int:
        return 1

    @property
    def model_name(self) -> str:
        return "counting"


@pytest.fixture
def leave_backends(fake_backend, make_raw):
    def _build(graph_error: Exception | None = None):
        vector = fake_backend("vector", [
            make_raw("vector", "D1", 1, snippet="입사 1년 후 15일의 연차휴가가 부여된다."),
            make_raw("vector", "D2", 2, snippet="휴가 신청은 인사 시스템에서 한다."),
        ])
        graph = fake_backend(
            "graph",
            [make_raw("graph", "D1", 3, snippet="연차휴가 15일")],
            error=graph_error,
            query_mode="keywords",
        )
        return vector, graph

    return _build


def _orchestrator(backends, llm, cache_manager=None, **kwargs) -> HybridRetrievalOrchestrator:
    settings = Settings(_env_file=None, fanout_timeout_s=1.0, **kwargs.pop("settings", {}))
    streamer = GenerationStreamer(llm, inactivity_timeout_s=kwargs.pop("inactivity", 5.0))
    return HybridRetrievalOrchestrator(
        backends, streamer, settings=settings, cache_manager=cache_manager, **kwargs
    )


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_backend_queries_and_budgets(self, leave_backends, fake_llm):
        vector, graph = leave_backends()
        orch = _orchestrator([vector, graph], fake_llm())
        outcome = await orch.retrieve(orch.make_query(QUESTION))

        assert vector.calls == [(QUESTION, 20)]
        assert graph.calls == [("연차휴가는 며칠인가요", 20)]
        assert outcome.analysis.intent == "factual"
        assert [r.document_id for r in outcome.results] == ["D1", "D2"]
        assert outcome.per_backend_result_counts == {"vector": 2, "graph": 1}

    @pytest.mark.asyncio
    async def test_requested_top_k_raises_backend_budget(self, fake_backend, fake_llm):
        vector = fake_backend("vector")
        orch = _orchestrator([vector], fake_llm())
        await orch.retrieve(orch.make_query("q", top_k=50))
        assert vector.calls == [("q", 50)]

    @pytest.mark.asyncio
    async def test_truncated_to_top_k(self, fake_backend, make_raw, fake_llm):
        hits = [make_raw("vector", f"D{i}", i) for i in range(1, 9)]
        orch = _orchestrator([fake_backend("vector", hits)], fake_llm())
        outcome = await orch.retrieve(orch.make_query("q", top_k=3))
        assert [r.document_id for r in outcome.results] == ["D1", "D2", "D3"]

    @pytest.mark.asyncio
    async def test_minimum_score_applies_to_raw_scores(self, fake_backend, make_raw, fake_llm):
        hits = [make_raw("vector", "D1", 1, score=0.9), make_raw("vector", "D2", 2, score=0.2)]
        orch = _orchestrator([fake_backend("vector", hits)], fake_llm())
        outcome = await orch.retrieve(orch.make_query("q", minimum_score=0.5))
        assert [r.document_id for r in outcome.results] == ["D1"]

    @pytest.mark.asyncio
    async def test_access_filter_after_fusion(self, fake_backend, make_raw, fake_llm, anonymous, employee):
        hits = [
            make_raw("vector", "SECRET", 1, tier="restricted", owner_id="u-100"),
            make_raw("vector", "OPEN", 2, tier="public"),
            make_raw("vector", "HR", 3, tier="confidential", department="HR"),
        ]
        orch = _orchestrator([fake_backend("vector", hits)], fake_llm())
        anon = await orch.retrieve(orch.make_query("q", principal=anonymous))
        emp = await orch.retrieve(orch.make_query("q", principal=employee))
        assert [r.document_id for r in anon.results] == ["OPEN"]
        assert [r.document_id for r in emp.results] == ["SECRET", "OPEN", "HR"]

    @pytest.mark.asyncio
    async def test_total_failure(self, fake_backend, fake_llm):
        orch = _orchestrator([fake_backend("vector", error=RuntimeError("down"))], fake_llm())
        with pytest.raises(TotalRetrievalFailure):
            await orch.retrieve(orch.make_query("q"))


class TestQuery:
    @pytest.mark.asyncio
    async def test_grounded_answer_with_citations(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER)
        orch = _orchestrator(list(leave_backends()), llm)
        response = await orch.query(QUESTION)

        assert response.answer == "연차휴가는 15일입니다 [출처: 1]."
        assert response.grounded
        assert not response.low_confidence
        assert [c.source_index for c in response.citations] == [1]
        assert response.citations[0].document_id == "D1"
        assert [s.document_id for s in response.sources] == ["D1", "D2"]
        assert response.backend_failures == []
        assert len(response.query_id) == 12
        assert "<question>\n" + QUESTION in llm.prompts[0]
        assert llm.closed

    @pytest.mark.asyncio
    async def test_confidence(self, leave_backends, fake_llm):
        orch = _orchestrator(list(leave_backends()), fake_llm(ANSWER))
        response = await orch.query(QUESTION)
        mean = ((1.0 / 61 + 1.5 / 63) + 1.0 / 62) / 2
        assert response.confidence == pytest.approx(mean / (2.5 / 61), abs=1e-4)

    @pytest.mark.asyncio
    async def test_uncited_answer_is_low_confidence(self, leave_backends, fake_llm):
        orch = _orchestrator(list(leave_backends()), fake_llm(["잘 모르겠습니다."]))
        response = await orch.query(QUESTION)
        mean = ((1.0 / 61 + 1.5 / 63) + 1.0 / 62) / 2
        assert response.citations == []
        assert response.low_confidence
        assert response.confidence == pytest.approx(0.5 * mean / (2.5 / 61), abs=1e-4)

    @pytest.mark.asyncio
    async def test_no_grounding(self, fake_backend, fake_llm):
        llm = fake_llm(["해당 정보를 찾을 수 없습니다."])
        orch = _orchestrator([fake_backend("vector")], llm)
        response = await orch.query(QUESTION)

        assert not response.grounded
        assert response.confidence == 0.0
        assert response.low_confidence
        assert KOREAN.no_context in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self, leave_backends, fake_llm):
        orch = _orchestrator(list(leave_backends(RuntimeError("neo4j down"))), fake_llm(ANSWER))
        response = await orch.query(QUESTION)
        assert [f.backend for f in response.backend_failures] == ["graph"]
        assert response.per_backend_result_counts == {"vector": 2}
        assert response.citations[0].document_id == "D1"

    @pytest.mark.asyncio
    async def test_generation_error_raises(self, leave_backends, fake_llm):
        llm = fake_llm(["a", "b", "c"], fail_after=1)
        orch = _orchestrator(list(leave_backends()), llm)
        with pytest.raises(GenerationError) as exc_info:
            await orch.query(QUESTION)
        assert exc_info.value.partial_text == "a"
        assert llm.closed

    @pytest.mark.asyncio
    async def test_stream_failure_before_text_falls_back_to_complete(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER, fail_after=0)
        orch = _orchestrator(list(leave_backends()), llm)
        response = await orch.query(QUESTION)

        assert response.answer == "연차휴가는 15일입니다 [출처: 1]."
        assert [c.source_index for c in response.citations] == [1]
        assert len(llm.completions) == 1
        assert "<question>\n" + QUESTION in llm.completions[0][0].content

    @pytest.mark.asyncio
    async def test_fallback_disabled(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER, fail_after=0)
        orch = _orchestrator(
            list(leave_backends()), llm, settings={"generation_complete_fallback": False}
        )
        with pytest.raises(GenerationError):
            await orch.query(QUESTION)
        assert llm.completions == []

    @pytest.mark.asyncio
    async def test_inactivity_timeout_not_retried(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER, stall_after=0)
        orch = _orchestrator(list(leave_backends()), llm, inactivity=0.05)
        with pytest.raises(GenerationTimeout):
            await orch.query(QUESTION)
        assert llm.completions == []

    @pytest.mark.asyncio
    async def test_fallback_failure_raises(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER, fail_after=0, complete_error=ConnectionError("refused"))
        orch = _orchestrator(list(leave_backends()), llm)
        with pytest.raises(GenerationError):
            await orch.query(QUESTION)

    @pytest.mark.asyncio
    async def test_ollama_chat_retried_after_stream_failure(self, leave_backends):
        paths: list[str] = []
        chat_attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal chat_attempts
            paths.append(request.url.path)
            if request.url.path == "/api/generate":
                return httpx.Response(503, text="loading model")
            chat_attempts += 1
            if chat_attempts == 1:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={
                "message": {"role": "assistant", "content": "연차휴가는 15일입니다 [출처: 1]."},
                "eval_count": 9,
            })

        adapter = OllamaAdapter(
            transport=httpx.MockTransport(handler),
            retry_configs={"server_error": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False)},
        )
        orch = _orchestrator(list(leave_backends()), adapter)
        response = await orch.query(QUESTION)

        assert response.answer == "연차휴가는 15일입니다 [출처: 1]."
        assert paths == ["/api/generate", "/api/chat", "/api/chat"]
        assert response.citations[0].document_id == "D1"

    @pytest.mark.asyncio
    async def test_streaming_never_falls_back(self, leave_backends, fake_llm):
        llm = fake_llm(ANSWER, fail_after=0)
        orch = _orchestrator(list(leave_backends()), llm)
        events = [e async for e in orch.query_streaming(QUESTION)]
        assert [e.type for e in events] == ["error"]
        assert llm.completions == []


class TestQueryCaching:
    @pytest.mark.asyncio
    async def test_repeat_served_from_cache(self, leave_backends, fake_llm, clock):
        vector, graph = leave_backends()
        caches = RagCacheManager.with_limits(100, 60.0, 100, 60.0, clock=clock)
        orch = _orchestrator([vector, graph], fake_llm(ANSWER), cache_manager=caches)

        first = await orch.query(QUESTION)
        second = await orch.query(QUESTION)

        assert not first.cached
        assert second.cached
        assert len(vector.calls) == 1
        assert [s.document_id for s in second.sources] == [s.document_id for s in first.sources]
        stats = orch.cache_statistics()["query"]
        assert (stats.hits, stats.misses, stats.writes) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_expired_entry_recomputed(self, leave_backends, fake_llm, clock):
        vector, graph = leave_backends()
        caches = RagCacheManager.with_limits(100, 60.0, 100, 60.0, clock=clock)
        orch = _orchestrator([vector, graph], fake_llm(ANSWER), cache_manager=caches)
        await orch.query(QUESTION)
        clock.advance(61)
        assert not (await orch.query(QUESTION)).cached
        assert len(vector.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_scoped_by_principal(self, fake_backend, make_raw, fake_llm, anonymous, employee):
        backend = fake_backend("vector", [make_raw("vector", "HR", 1, tier="internal")])
        orch = _orchestrator([backend], fake_llm(), cache_manager=RagCacheManager())

        anon = await orch.query("q", principal=anonymous)
        emp = await orch.query("q", principal=employee)

        assert anon.sources == []
        assert [s.document_id for s in emp.sources] == ["HR"]
        assert not emp.cached
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_partial_retrieval_not_cached(self, leave_backends, fake_llm):
        vector, graph = leave_backends(RuntimeError("down"))
        caches = RagCacheManager()
        orch = _orchestrator([vector, graph], fake_llm(ANSWER), cache_manager=caches)
        await orch.query(QUESTION)
        second = await orch.query(QUESTION)

        assert not second.cached
        assert len(vector.calls) == 2
        assert caches.query.entry_count() == 0

    @pytest.mark.asyncio
    async def test_broken_cache_degrades(self, leave_backends, fake_llm):
        caches = RagCacheManager(query=_BrokenQueryCache())
        orch = _orchestrator(list(leave_backends()), fake_llm(ANSWER), cache_manager=caches)
        response = await orch.query(QUESTION)
        assert response.answer
        assert not response.cached

    @pytest.mark.asyncio
    async def test_warm_query_cache(self, leave_backends, fake_llm):
        vector, graph = leave_backends()
        orch = _orchestrator([vector, graph], fake_llm(ANSWER), cache_manager=RagCacheManager())

        assert await orch.warm_query_cache([QUESTION, "휴가 신청 방법"]) == 2
        assert await orch.warm_query_cache([QUESTION]) == 0
        assert len(vector.calls) == 2
        assert (await orch.query(QUESTION)).cached

    @pytest.mark.asyncio
    async def test_warm_skips_failures(self, fake_backend, fake_llm):
        orch = _orchestrator(
            [fake_backend("vector", error=RuntimeError("down"))],
            fake_llm(),
            cache_manager=RagCacheManager(),
        )
        assert await orch.warm_query_cache(["a", "b"]) == 0

    @pytest.mark.asyncio
    async def test_caching_disabled(self, fake_backend, fake_llm):
        orch = _orchestrator([fake_backend("vector")], fake_llm())
        assert orch.cache_statistics() == {}
        assert await orch.warm_query_cache(["a"]) == 0


class TestQueryStreaming:
    @pytest.mark.asyncio
    async def test_fragments_then_summary(self, leave_backends, fake_llm):
        orch = _orchestrator(list(leave_backends()), fake_llm(ANSWER))
        events = [e async for e in orch.query_streaming(QUESTION)]

        assert [e.sequence_id for e in events] == [1, 2, 3, 4]
        assert all(isinstance(e, FragmentEvent) for e in events[:-1])
        summary = events[-1]
        assert isinstance(summary, SummaryEvent)
        assert summary.answer == "".join(e.fragment for e in events[:-1])
        streamed = [c for e in events[:-1] for c in e.citations]
        assert [c.source_index for c in summary.citations] == [1]
        assert streamed in ([], summary.citations)
        assert not summary.low_confidence

    @pytest.mark.asyncio
    async def test_streamed_matches_whole_answer(self, leave_backends, fake_llm):
        fragments = ["연차휴가는 15일입니다 [출처: 1]. ", "신청은 ", "인사 시스템에서 합니다 [출처: 2].", "\n끝."]
        orch = _orchestrator(list(leave_backends()), fake_llm(fragments))
        whole = await orch.query(QUESTION)
        events = [e async for e in orch.query_streaming(QUESTION)]

        summary = events[-1]
        assert summary.answer == whole.answer
        assert summary.citations == whole.citations
        assert summary.confidence == whole.confidence
        streamed = [c for e in events[:-1] for c in e.citations]
        assert streamed == summary.citations

    @pytest.mark.asyncio
    async def test_total_failure_event(self, fake_backend, fake_llm):
        llm = fake_llm()
        orch = _orchestrator([fake_backend("vector", error=RuntimeError("down"))], llm)
        events = [e async for e in orch.query_streaming("q")]

        assert len(events) == 1
        event = events[0]
        assert isinstance(event, ErrorEvent)
        assert event.sequence_id == 1
        assert event.error_type == "total_retrieval_failure"
        assert event.backend_failures[0].backend == "vector"
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_generation_error_event(self, leave_backends, fake_llm):
        llm = fake_llm(["a", "b", "c"], fail_after=2)
        orch = _orchestrator(list(leave_backends()), llm)
        events = [e async for e in orch.query_streaming(QUESTION)]

        assert [e.type for e in events] == ["fragment", "fragment", "error"]
        assert events[-1].sequence_id == 3
        assert events[-1].error_type == "generation_error"
        assert events[-1].partial_answer == "ab"
        assert llm.closed

    @pytest.mark.asyncio
    async def test_generation_timeout_event(self, leave_backends, fake_llm):
        llm = fake_llm(["a", "b"], stall_after=1)
        orch = _orchestrator(list(leave_backends()), llm, inactivity=0.05)
        events = [e async for e in orch.query_streaming(QUESTION)]

        assert events[-1].error_type == "generation_timeout"
        assert events[-1].partial_answer == "a"
        assert llm.closed

    @pytest.mark.asyncio
    async def test_consumer_close_aborts_generation(self, leave_backends, fake_llm):
        llm = fake_llm(["a", "b", "c"])
        orch = _orchestrator(list(leave_backends()), llm)
        stream = orch.query_streaming(QUESTION)
        first = await stream.__anext__()
        await stream.aclose()

        assert first.sequence_id == 1
        assert llm.closed


class TestEmbed:
    @pytest.mark.asyncio
    async def test_embed_through_cache(self, fake_backend, fake_llm):
        caches = RagCacheManager()
        inner = _CountingEmbedder()
        orch = _orchestrator(
            [fake_backend("vector")], fake_llm(),
            cache_manager=caches, embedder=CachedEmbedder(inner, caches.embedding),
        )
        assert await orch.embed("안녕하세요") == [5.0]
        assert await orch.embed("안녕하세요") == [5.0]
        assert inner.calls == 1
        stats = orch.cache_statistics()["embedding"]
        assert (stats.hits, stats.misses) == (1, 1)

    @pytest.mark.asyncio
    async def test_no_embedder(self, fake_backend, fake_llm):
        orch = _orchestrator([fake_backend("vector")], fake_llm())
        with pytest.raises(RuntimeError):
            await orch.embed("x")


class TestClose:
    @pytest.mark.asyncio
    async def test_closes_backends_and_clears_caches(self, fake_backend, fake_llm, make_raw):
        closed: list[str] = []

        class _Closing(fake_backend):
            async def close(self) -> None:
                closed.append(self.name)

        caches = RagCacheManager()
        vector = _Closing("vector", [make_raw("vector", "D1", 1)])
        graph = _Closing("graph")
        async with _orchestrator([vector, graph], fake_llm(ANSWER), cache_manager=caches) as orch:
            await orch.retrieve(orch.make_query(QUESTION))
            assert caches.query.entry_count() == 1
        assert sorted(closed) == ["graph", "vector"]
        assert caches.query.entry_count() == 0

    @pytest.mark.asyncio
    async def test_failing_close_does_not_stop_others(self, fake_backend, fake_llm):
        closed: list[str] = []

        class _Broken(fake_backend):
            async def close(self) -> None:
                raise ConnectionError("driver gone")

        class _Closing(fake_backend):
            async def close(self) -> None:
                closed.append(self.name)

        orch = _orchestrator([_Broken("graph"), _Closing("vector")], fake_llm())
        await orch.aclose()
        assert closed == ["vector"]
