# src/rag/vector_store/chromadb_store.py — v2
"""ChromaDB vector store adapter (query side).

Uses the chromadb SDK for local or remote vector storage.
Requires: pip install chromadb.

Each stored vector is a chunk: its id is the chunk_id and its metadata
carries ``document_id`` plus optional title/section/page and access
policy fields.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from hybridrag.core.models import StoreHit
from hybridrag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class ChromaDBStore(BaseVectorStore):
    """Vector store backed by ChromaDB."""

    def __init__(
        self,
        persist_path: str | Path | None = None,
        host: str | None = None,
        port: int = 8000,
        client: object | None = None,
    ) -> None:
        if client is not None:
            self._client = client
            return
        try:
            import chromadb
        except ImportError as e:
            raise ImportError(
                "chromadb package required: pip install chromadb"
            ) from e

        if host:
            self._client = chromadb.HttpClient(host=host, port=port)
        elif persist_path:
            self._client = chromadb.PersistentClient(path=str(persist_path))
        else:
            self._client = chromadb.Client()

    async def query(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int = 10,
        filter: dict | None = None,
    ) -> list[StoreHit]:
        """Query by embedding similarity (score = 1 - distance)."""
        # The SDK is synchronous; keep the event loop free.
        return await asyncio.to_thread(
            self._query_sync, collection, query_embedding, top_k, filter
        )

    def _query_sync(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int,
        filter: dict | None,
    ) -> list[StoreHit]:
        col = self._client.get_collection(collection)
        kwargs: dict = {
            "query_embeddings": [query_embedding],
            "n_results": top_k,
            "include": ["documents", "metadatas", "distances"],
        }
        if filter:
            kwargs["where"] = filter

        results = col.query(**kwargs)

        hits: list[StoreHit] = []
        if results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                score = 1.0 - (results["distances"][0][i] if results["distances"] else 0)
                doc = results["documents"][0][i] if results["documents"] else ""
                meta = dict(results["metadatas"][0][i] or {}) if results["metadatas"] else {}
                hits.append(
                    StoreHit(
                        document_id=str(meta.get("document_id", chunk_id)),
                        chunk_id=chunk_id,
                        score=score,
                        content=doc or "",
                        metadata=meta,
                    )
                )
        logger.debug("ChromaDB %s: %d hits", collection, len(hits))
        return hits

    @property
    def provider_name(self) -> str:
        return "chromadb"
