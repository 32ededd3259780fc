# src/rag/backends/base_backend.py — v2
"""Search backend and policy store contracts consumed by the orchestrator.

Backends are external collaborators: they must be safe to call
concurrently and must stop work when their task is cancelled.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, ClassVar, Literal

from hybridrag.core.models import DocumentAccessPolicy, RawResult, StoreHit


class BaseSearchBackend(ABC):
    """Uniform search contract: Search(query_text, top_k) -> list[RawResult]."""

    # "question": receives the full question; "keywords": receives the
    # analyzer's keyword string.
    query_mode: ClassVar[Literal["question", "keywords"]] = "question"

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (vector, graph, keyword); also the fusion weight key."""

    @abstractmethod
    async def search(self, query_text: str, top_k: int) -> list[RawResult]:
        """Return up to top_k hits, best first, ranks starting at 1."""

    async def close(self) -> None:
        """Release the underlying store; called once at orchestrator shutdown."""


class BasePolicyStore(ABC):
    """AccessPolicy(document_id) -> tier + attributes, read-only."""

    @abstractmethod
    async def get_policy(self, document_id: str) -> DocumentAccessPolicy | None:
        """Current policy of a document, or None when unknown."""


def policy_from_metadata(metadata: dict[str, Any]) -> DocumentAccessPolicy:
    """Build a policy from store metadata (``access_policy`` dict or flat keys).

    Documents without access metadata default to the internal tier.
    """
    raw = metadata.get("access_policy")
    if isinstance(raw, DocumentAccessPolicy):
        return raw
    if isinstance(raw, dict):
        return DocumentAccessPolicy.model_validate(raw)
    fields = {
        k: metadata[k]
        for k in ("tier", "owner_id", "department", "required_roles", "allowed_users")
        if k in metadata
    }
    if "access_level" in metadata and "tier" not in fields:
        fields["tier"] = metadata["access_level"]
    return DocumentAccessPolicy.model_validate(fields)


def hits_to_raw_results(backend: str, hits: Iterable[StoreHit], top_k: int) -> list[RawResult]:
    """Rank store hits by score (stable) and convert them to RawResults."""
    ordered = sorted(hits, key=lambda h: h.score, reverse=True)[:top_k]
    return [
        RawResult(
            source_backend_name=backend,
            document_id=hit.document_id,
            chunk_id=hit.chunk_id,
            raw_score=hit.score,
            rank_within_backend=rank,
            snippet=hit.content,
            document_access_policy=policy_from_metadata(hit.metadata),
            document_title=hit.metadata.get("title"),
            section=hit.metadata.get("section"),
            page=hit.metadata.get("page"),
        )
        for rank, hit in enumerate(ordered, start=1)
    ]
