# tests/conftest.py — v3
"""Shared test fixtures for all unit and integration tests.

Provides principals, raw-result builders, fake search backends, a fake
streaming LLM client and a manual clock. No network access; all I/O is
simulated.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest

from hybridrag.config.settings import Settings
from hybridrag.core.models import DocumentAccessPolicy, Principal, RawResult
from hybridrag.llm.base_client import BaseLLMClient
from hybridrag.llm.models import LLMResponse, Message
from hybridrag.rag.backends.base_backend import BaseSearchBackend


# === FAKES ===


class FakeBackend(BaseSearchBackend):
    """Search backend returning canned hits, optionally slow or failing."""

    def __init__(
        self,
        name: str,
        hits: list[RawResult] | None = None,
        delay_s: float = 0.0,
        error: Exception | None = None,
        query_mode: str = "question",
    ) -> None:
        self._name = name
        self._hits = hits or []
        self._delay_s = delay_s
        self._error = error
        self.query_mode = query_mode  # type: ignore[misc]
        self.calls: list[tuple[str, int]] = []
        self.cancelled = False

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query_text: str, top_k: int) -> list[RawResult]:
        self.calls.append((query_text, top_k))
        try:
            if self._delay_s:
                await asyncio.sleep(self._delay_s)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        return self._hits[:top_k]


class FakeStreamingLLM(BaseLLMClient):
    """LLM client streaming predefined fragments."""

    def __init__(
        self,
        fragments: list[str] | None = None,
        delay_s: float = 0.0,
        fail_after: int | None = None,
        stall_after: int | None = None,
        complete_error: Exception | None = None,
        complete_delay_s: float = 0.0,
    ) -> None:
        self.fragments = fragments if fragments is not None else ["Hello", " world."]
        self.complete_error = complete_error
        self.complete_delay_s = complete_delay_s
        self.completions: list[list[Message]] = []
        self.delay_s = delay_s
        self.fail_after = fail_after
        self.stall_after = stall_after
        self.prompts: list[str] = []
        self.closed = False

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        self.completions.append(list(messages))
        if self.complete_delay_s:
            await asyncio.sleep(self.complete_delay_s)
        if self.complete_error is not None:
            raise self.complete_error
        return LLMResponse(
            content="".join(self.fragments), model="fake", provider="fake", latency_ms=0
        )

    async def stream(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i == self.fail_after:
                    raise ConnectionError("backend dropped the connection")
                if self.stall_after is not None and i == self.stall_after:
                    await asyncio.sleep(3600)
                if self.delay_s:
                    await asyncio.sleep(self.delay_s)
                yield fragment
        finally:
            self.closed = True

    @property
    def provider_name(self) -> str:
        return "fake"


class ManualClock:
    """Monotonic clock advanced by hand (cache TTL tests)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# === FIXTURES: Principals ===


@pytest.fixture
def anonymous() -> Principal:
    return Principal.anonymous()


@pytest.fixture
def employee() -> Principal:
    """Internal user in HR with the 'employee' role."""
    return Principal.internal("u-100", roles=["employee"], departments=["HR"])


@pytest.fixture
def engineer() -> Principal:
    """Internal user in Engineering with the 'engineer' role."""
    return Principal.internal("u-200", roles=["engineer"], departments=["Engineering"])


# === FIXTURES: Builders ===


@pytest.fixture
def make_raw() -> Callable[..., RawResult]:
    """Build a RawResult with sensible defaults."""

    def _make(
        backend: str,
        doc: str,
        rank: int,
        score: float | None = None,
        chunk: str | None = None,
        snippet: str | None = None,
        tier: str = "public",
        **policy: object,
    ) -> RawResult:
        return RawResult(
            source_backend_name=backend,
            document_id=doc,
            chunk_id=chunk,
            raw_score=score if score is not None else 1.0 / rank,
            rank_within_backend=rank,
            snippet=snippet if snippet is not None else f"{doc} content from {backend}",
            document_access_policy=DocumentAccessPolicy(tier=tier, **policy),  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def fake_backend() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture
def fake_llm() -> type[FakeStreamingLLM]:
    return FakeStreamingLLM


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings() -> Settings:
    """Defaults without reading a local .env file."""
    return Settings(_env_file=None)
