# src/rag/embeddings/ollama_embedder.py — v2
"""Ollama embedding adapter (local inference).

Uses the Ollama ``/api/embed`` endpoint, which accepts a batch input.
Models: nomic-embed-text, mxbai-embed-large, bge-m3, etc.
"""

from __future__ import annotations

import logging

import httpx

from hybridrag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)


class OllamaEmbedder(BaseEmbedder):
    """Local embeddings via Ollama API."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        dimensions: int = 768,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model_name = model
        self._base_url = base_url.rstrip("/")
        self._dimensions = dimensions
        self._timeout_s = timeout_s
        self._transport = transport

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed document texts in one request."""
        if not texts:
            return []
        return await self._embed(texts)

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single query."""
        return (await self._embed([query]))[0]

    async def _embed(self, inputs: list[str]) -> list[list[float]]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout_s,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                "/api/embed", json={"model": self._model_name, "input": inputs}
            )
            resp.raise_for_status()
            data = resp.json()
        embeddings = data.get("embeddings", [])
        if len(embeddings) != len(inputs):
            raise RuntimeError(
                f"Ollama returned {len(embeddings)} embeddings for "
                f"{len(inputs)} inputs (model {self._model_name})"
            )
        return embeddings

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model_name
