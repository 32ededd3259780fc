# src/core/models.py — v3
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
Retrieval records (RetrievalQuery, RawResult, FusedResult) are frozen:
they are produced once by a single query execution and never mutated.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# === ACCESS CONTROL ===

# public: anyone; internal: organization members; confidential: department
# or role match; restricted: allow-list or owner.
AccessTier = Literal["public", "internal", "confidential", "restricted"]

TIER_ORDER: dict[str, int] = {
    "public": 0,
    "internal": 1,
    "confidential": 2,
    "restricted": 3,
}


class DocumentAccessPolicy(BaseModel):
    """Access metadata attached to a document by the document store."""

    model_config = ConfigDict(frozen=True)

    tier: AccessTier = "internal"
    owner_id: str | None = None
    department: str | None = None
    required_roles: tuple[str, ...] = ()
    allowed_users: tuple[str, ...] = ()

    def is_stricter_than(self, other: DocumentAccessPolicy) -> bool:
        return TIER_ORDER[self.tier] > TIER_ORDER[other.tier]

    def combine(self, other: DocumentAccessPolicy) -> DocumentAccessPolicy:
        """Policy for a document reported with two different policies.

        The stricter tier wins. At the same tier the grants are
        intersected, so the result admits no principal that either
        policy would refuse. Symmetric in its arguments.
        """
        if self.tier != other.tier:
            return self if self.is_stricter_than(other) else other
        if self == other:
            return self

        owner = self.owner_id if self.owner_id == other.owner_id else None
        if self.tier == "restricted":
            mine = set(self.allowed_users) | ({self.owner_id} - {None})
            theirs = set(other.allowed_users) | ({other.owner_id} - {None})
            allowed = tuple(sorted((mine & theirs) - {owner}))
        else:
            allowed = tuple(sorted(set(self.allowed_users) & set(other.allowed_users)))
        return DocumentAccessPolicy(
            tier=self.tier,
            owner_id=owner,
            department=self.department if self.department == other.department else None,
            required_roles=tuple(sorted(set(self.required_roles) & set(other.required_roles))),
            allowed_users=allowed,
        )


class Principal(BaseModel):
    """Requesting user identity and permissions."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str | None = None
    roles: tuple[str, ...] = ()
    departments: tuple[str, ...] = ()
    is_internal: bool = False

    @classmethod
    def anonymous(cls) -> Principal:
        """Public (unauthenticated) principal."""
        return cls(user_id="anonymous")

    @classmethod
    def internal(
        cls,
        user_id: str,
        roles: tuple[str, ...] | list[str] = (),
        departments: tuple[str, ...] | list[str] = (),
    ) -> Principal:
        """Organization member with the given roles and departments."""
        return cls(
            user_id=user_id,
            roles=tuple(roles),
            departments=tuple(departments),
            is_internal=True,
        )


# === RETRIEVAL ===


class RetrievalQuery(BaseModel):
    """A question plus the parameters that shape its retrieval."""

    model_config = ConfigDict(frozen=True)

    text: str
    requested_top_k: int = Field(default=5, ge=1)
    minimum_score: float = 0.0
    requesting_principal: Principal = Field(default_factory=Principal.anonymous)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:  # noqa: N805
        if not v.strip():
            raise ValueError("question cannot be empty")
        return v


class RawResult(BaseModel):
    """One hit from a single backend call."""

    model_config = ConfigDict(frozen=True)

    source_backend_name: str
    document_id: str
    chunk_id: str | None = None
    raw_score: float
    rank_within_backend: int = Field(ge=1)
    snippet: str
    document_access_policy: DocumentAccessPolicy = Field(
        default_factory=DocumentAccessPolicy
    )
    document_title: str | None = None
    section: str | None = None
    page: int | None = None

    @property
    def fusion_key(self) -> tuple[str, str]:
        """Identity used to group hits across backends."""
        return (self.document_id, self.chunk_id or "")


class FusedResult(BaseModel):
    """A document/chunk after Reciprocal Rank Fusion across backends."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_id: str | None = None
    fused_score: float
    contributing_backends: frozenset[str]
    backend_ranks: dict[str, int] = Field(default_factory=dict)
    snippet: str = ""
    access_policy: DocumentAccessPolicy = Field(default_factory=DocumentAccessPolicy)
    document_title: str | None = None
    section: str | None = None
    page: int | None = None


class BackendFailure(BaseModel):
    """Why one backend did not contribute to a query (metadata, never raised)."""

    backend: str
    kind: Literal["timeout", "error", "cancelled"]
    message: str = ""
    elapsed_ms: int = 0


# === QUERY ANALYSIS ===

QueryIntent = Literal[
    "procedural", "factual", "comparative", "conditional", "definitional", "general"
]
AnswerType = Literal[
    "list", "single_fact", "comparison", "explanation", "yes_no", "unknown"
]


class QueryAnalysis(BaseModel):
    """Rule-based analysis of a user question."""

    question: str
    intent: QueryIntent = "general"
    keywords: list[str] = Field(default_factory=list)
    expected_answer_type: AnswerType = "unknown"

    @property
    def keyword_query(self) -> str:
        """Keywords joined for graph/keyword backends (question if none)."""
        return " ".join(self.keywords) if self.keywords else self.question


# === GENERATION OUTPUT ===


class Citation(BaseModel):
    """Link from a span of the generated answer to a numbered source."""

    source_index: int
    document_id: str
    chunk_id: str | None = None
    document_title: str | None = None
    quoted_span: str
    confidence: float = Field(ge=0.0, le=1.0)
    match_type: Literal["marker", "exact", "fuzzy"]


# === STORE HITS ===


class StoreHit(BaseModel):
    """Untyped hit returned by a vector or graph store before ranking."""

    document_id: str
    chunk_id: str | None = None
    score: float
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
