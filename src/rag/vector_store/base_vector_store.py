# src/rag/vector_store/base_vector_store.py — v3
"""Vector store contract: similarity lookup over pre-indexed chunks.

Scores are similarities where higher is better; stores that report
distances convert them before returning.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hybridrag.core.models import StoreHit


class BaseVectorStore(ABC):
    """Read-only similarity search used by VectorSearchBackend."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[StoreHit]:
        """Up to ``top_k`` hits from ``collection``, most similar first.

        ``filter`` is passed to the store's metadata filter as-is.
        """

    async def close(self) -> None:
        """Release client connections. Stores without any keep the no-op."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Store identifier used in logs (chromadb, ...)."""
