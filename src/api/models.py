# src/api/models.py — v2
"""API-level models: QueryRequest, CacheStatisticsResponse.

Response and stream-event models live in rag.models and are re-exported
here for API consumers.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from hybridrag.cache.models import CacheStatsReport
from hybridrag.core.models import Principal
from hybridrag.rag.models import (  # noqa: F401
    ErrorEvent,
    FragmentEvent,
    QueryResponse,
    StreamEvent,
    SummaryEvent,
)


class QueryRequest(BaseModel):
    """Input of Query / QueryStreaming."""

    question: str
    top_k: int | None = Field(default=None, ge=1, le=100)
    minimum_score: float | None = None
    principal: Principal = Field(default_factory=Principal.anonymous)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:  # noqa: N805
        v = v.strip()
        if not v:
            raise ValueError("question cannot be empty")
        return v


class CacheStatisticsResponse(BaseModel):
    """Return value of facade.cache_statistics()."""

    enabled: bool = True
    caches: dict[str, CacheStatsReport] = Field(default_factory=dict)
