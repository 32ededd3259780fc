# src/rag/graph_store/neo4j_store.py — v2
"""Neo4j graph store adapter (query side).

Uses the async neo4j Python driver so a cancelled search aborts its
session. Requires: pip install neo4j.

Expected graph shape: (:Chunk {chunk_id, document_id, content, ...})
-[:MENTIONS]->(:Entity {name}) with arbitrary relations between entities.
"""

from __future__ import annotations

import logging

from hybridrag.core.models import StoreHit
from hybridrag.rag.graph_store.base_graph_store import BaseGraphStore

logger = logging.getLogger(__name__)

# Variable-length bounds cannot be query parameters; {depth} is an int.
_SEARCH_QUERY = """
UNWIND $terms AS term
MATCH (seed:Entity) WHERE toLower(seed.name) CONTAINS term
MATCH p = (seed)-[*0..{depth}]-(e:Entity)<-[:MENTIONS]-(c:Chunk)
WITH c, count(DISTINCT term) AS matched, min(length(p)) AS hops
RETURN c.chunk_id AS chunk_id, c.document_id AS document_id,
       c.content AS content, properties(c) AS meta,
       toFloat(matched) / (1 + hops) AS score
ORDER BY score DESC, chunk_id
LIMIT $limit
"""


class Neo4jStore(BaseGraphStore):
    """Graph store backed by Neo4j."""

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        user: str = "",
        password: str = "",
        database: str = "neo4j",
        driver: object | None = None,
    ) -> None:
        if driver is None:
            try:
                from neo4j import AsyncGraphDatabase
            except ImportError as e:
                raise ImportError(
                    "neo4j package required: pip install neo4j"
                ) from e
            auth = (user, password) if user else None
            driver = AsyncGraphDatabase.driver(uri, auth=auth)
        self._driver = driver
        self._database = database

    async def _run(self, query: str, **params) -> list[dict]:
        """Execute a Cypher query and return results as list of dicts."""
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query, **params)
            return [record.data() async for record in result]

    async def search_context(
        self,
        query: str,
        depth: int = 2,
        limit: int = 20,
    ) -> list[StoreHit]:
        """Chunks mentioning entities within ``depth`` hops of matched names."""
        terms = sorted({t.lower() for t in query.split() if len(t) > 1})
        if not terms:
            return []
        rows = await self._run(
            _SEARCH_QUERY.replace("{depth}", str(int(depth))),
            terms=terms,
            limit=limit,
        )
        hits: list[StoreHit] = []
        for row in rows:
            meta = dict(row.get("meta") or {})
            meta.pop("content", None)
            hits.append(StoreHit(
                document_id=str(row["document_id"]),
                chunk_id=row.get("chunk_id"),
                score=float(row["score"]),
                content=row.get("content") or "",
                metadata=meta,
            ))
        return hits

    async def close(self) -> None:
        await self._driver.close()

    @property
    def provider_name(self) -> str:
        return "neo4j"
