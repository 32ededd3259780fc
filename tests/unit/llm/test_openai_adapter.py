# tests/unit/llm/test_openai_adapter.py — v1
"""Tests for llm/adapters/openai_adapter.py with a stubbed SDK client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from hybridrag.llm.adapters.openai_adapter import OpenAIAdapter


class _FakeStream:
    def __init__(self, deltas: list[str | None]) -> None:
        self._chunks = [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=d))])
            for d in deltas
        ] + [SimpleNamespace(choices=[])]
        self.closed = False

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self) -> None:
        self.closed = True


def _adapter_with(create: AsyncMock) -> OpenAIAdapter:
    adapter = OpenAIAdapter(model="gpt-4o-mini", api_key="sk-test")
    client = MagicMock()
    client.chat.completions.create = create
    adapter._client = lambda: client  # type: ignore[method-assign]
    return adapter


class TestOpenAIStream:
    @pytest.mark.asyncio
    async def test_yields_deltas_and_closes(self):
        stream = _FakeStream(["Hel", None, "lo"])
        create = AsyncMock(return_value=stream)
        adapter = _adapter_with(create)
        out = [f async for f in adapter.stream("prompt", system="sys")]
        assert out == ["Hel", "lo"]
        assert stream.closed is True
        kwargs = create.await_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    @pytest.mark.asyncio
    async def test_early_close_closes_response(self):
        stream = _FakeStream(["a", "b"])
        adapter = _adapter_with(AsyncMock(return_value=stream))
        gen = adapter.stream("p")
        assert await gen.__anext__() == "a"
        await gen.aclose()
        assert stream.closed is True

    def test_provider_name(self):
        assert OpenAIAdapter().provider_name == "openai"
