# tests/unit/rag/embeddings/test_openai_embedder.py — v1
"""Tests for rag/embeddings/openai_embedder.py with a fake SDK client."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from hybridrag.config.settings import Settings
from hybridrag.rag.embeddings.embedder_factory import create_embedder
from hybridrag.rag.embeddings.openai_embedder import OpenAIEmbedder


class _FakeEmbeddings:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    async def create(self, input: list[str], **kwargs):  # noqa: A002
        self.calls.append({"input": list(input), **kwargs})
        # Reverse order to check index sorting.
        data = [
            SimpleNamespace(index=i, embedding=[float(len(text))])
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=list(reversed(data)))


def _client() -> SimpleNamespace:
    return SimpleNamespace(embeddings=_FakeEmbeddings())


class TestOpenAIEmbedder:
    @pytest.mark.asyncio
    async def test_order_restored_by_index(self):
        client = _client()
        embedder = OpenAIEmbedder(client=client)
        assert await embedder.embed_texts(["a", "bb", "ccc"]) == [[1.0], [2.0], [3.0]]

    @pytest.mark.asyncio
    async def test_batches(self):
        client = _client()
        embedder = OpenAIEmbedder(client=client, batch_size=2)
        vectors = await embedder.embed_texts(["a", "bb", "ccc"])
        assert vectors == [[1.0], [2.0], [3.0]]
        assert [c["input"] for c in client.embeddings.calls] == [["a", "bb"], ["ccc"]]

    @pytest.mark.asyncio
    async def test_dimensions_sent_for_v3_models(self):
        client = _client()
        embedder = OpenAIEmbedder(model="text-embedding-3-large", dimensions=256, client=client)
        await embedder.embed_query("연차휴가")
        assert client.embeddings.calls[0]["dimensions"] == 256

    @pytest.mark.asyncio
    async def test_dimensions_omitted_for_older_models(self):
        client = _client()
        embedder = OpenAIEmbedder(model="text-embedding-ada-002", client=client)
        await embedder.embed_query("q")
        assert "dimensions" not in client.embeddings.calls[0]

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self):
        client = _client()
        embedder = OpenAIEmbedder(client=client)
        assert await embedder.embed_texts([]) == []
        assert client.embeddings.calls == []

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            OpenAIEmbedder(batch_size=0)


class TestFactory:
    def test_openai_from_settings(self):
        s = Settings(
            _env_file=None,
            embedding_provider="openai",
            embedding_model="text-embedding-3-small",
            openai_api_key="sk-test",
        )
        embedder = create_embedder(s)
        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder._api_key == "sk-test"
        assert embedder.model_name == "text-embedding-3-small"
