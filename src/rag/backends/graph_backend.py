# src/rag/backends/graph_backend.py — v2
"""Graph-traversal backend: keyword-seeded traversal over a graph store."""

from __future__ import annotations

import logging

from hybridrag.core.models import RawResult
from hybridrag.rag.backends.base_backend import BaseSearchBackend, hits_to_raw_results
from hybridrag.rag.graph_store.base_graph_store import BaseGraphStore

logger = logging.getLogger(__name__)


class GraphSearchBackend(BaseSearchBackend):
    """Adapter over BaseGraphStore."""

    query_mode = "keywords"

    def __init__(self, graph_store: BaseGraphStore, depth: int = 2, name: str = "graph") -> None:
        self._store = graph_store
        self._depth = depth
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def search(self, query_text: str, top_k: int) -> list[RawResult]:
        hits = await self._store.search_context(query_text, depth=self._depth, limit=top_k)
        logger.debug("Graph store returned %d hits (depth=%d)", len(hits), self._depth)
        return hits_to_raw_results(self._name, hits, top_k)

    async def close(self) -> None:
        await self._store.close()
