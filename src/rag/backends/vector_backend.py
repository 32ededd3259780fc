# src/rag/backends/vector_backend.py — v2
"""Dense-vector backend: embed the question, then query a vector store."""

from __future__ import annotations

import logging

from hybridrag.core.models import RawResult
from hybridrag.rag.backends.base_backend import BaseSearchBackend, hits_to_raw_results
from hybridrag.rag.embeddings.base_embedder import BaseEmbedder
from hybridrag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class VectorSearchBackend(BaseSearchBackend):
    """Adapter over BaseVectorStore.

    Pass a CachedEmbedder to reuse query embeddings across requests.
    """

    query_mode = "question"

    def __init__(
        self,
        vector_store: BaseVectorStore,
        embedder: BaseEmbedder,
        collection: str = "chunks",
        name: str = "vector",
    ) -> None:
        self._store = vector_store
        self._embedder = embedder
        self._collection = collection
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query_text: str, top_k: int) -> list[RawResult]:
        embedding = await self._embedder.embed_query(query_text)
        hits = await self._store.query(self._collection, embedding, top_k=top_k)
        logger.debug("Vector store returned %d hits", len(hits))
        return hits_to_raw_results(self._name, hits, top_k)

    async def close(self) -> None:
        await self._store.close()
