# src/rag/graph_store/base_graph_store.py — v3
"""Graph store contract: entity-seeded traversal back to source passages."""

from __future__ import annotations

from abc import ABC, abstractmethod

from hybridrag.core.models import StoreHit


class BaseGraphStore(ABC):
    """Read-only traversal used by GraphSearchBackend."""

    @abstractmethod
    async def search_context(
        self,
        query: str,
        depth: int = 2,
        limit: int = 20,
    ) -> list[StoreHit]:
        """Match entities named in ``query`` and return the passages that
        mention entities reached within ``depth`` hops, best first.

        Every hit carries the document_id (and chunk_id when known) of
        the passage, so graph evidence fuses with the other backends.
        """

    async def close(self) -> None:
        """Release driver connections. Stores without any keep the no-op."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Store identifier used in logs (neo4j, ...)."""
