# src/rag/embeddings/openai_embedder.py — v3
"""OpenAI-compatible embedding adapter (openai SDK).

Inputs are sent in batches of ``batch_size``; vectors are returned in
input order. The ``dimensions`` request parameter is only sent to the
text-embedding-3 family, which supports shortened vectors.
"""

from __future__ import annotations

import logging
from typing import Any

from hybridrag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)

_SHORTENABLE_PREFIX = "text-embedding-3"


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings via the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str = "",
        base_url: str = "",
        dimensions: int = 1536,
        batch_size: int = 256,
        client: Any = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._model = model
        self._api_key = api_key
        self._base_url = base_url or None
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._sdk_client = client

    @property
    def _client(self) -> Any:
        if self._sdk_client is None:
            import openai

            self._sdk_client = openai.AsyncOpenAI(
                api_key=self._api_key, base_url=self._base_url
            )
        return self._sdk_client

    def _request_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self._model}
        if self._model.startswith(_SHORTENABLE_PREFIX):
            kwargs["dimensions"] = self._dimensions
        return kwargs

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            response = await self._client.embeddings.create(input=batch, **self._request_kwargs())
            items = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in items)
        logger.debug("Embedded %d texts with %s", len(texts), self._model)
        return vectors

    async def embed_query(self, query: str) -> list[float]:
        return (await self.embed_texts([query]))[0]

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model
