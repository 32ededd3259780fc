# src/rag/models.py — v2
"""Orchestrator output models: retrieval outcome, whole answer, stream events."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, Field

from hybridrag.core.models import BackendFailure, Citation, FusedResult, QueryAnalysis


class RetrievalOutcome(BaseModel):
    """Fused, filtered and truncated results of one retrieval."""

    results: list[FusedResult] = Field(default_factory=list)
    per_backend_result_counts: dict[str, int] = Field(default_factory=dict)
    backend_failures: list[BackendFailure] = Field(default_factory=list)
    analysis: QueryAnalysis | None = None
    cached: bool = False
    elapsed_ms: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.backend_failures)


class QueryResponse(BaseModel):
    """Synchronous whole-answer form of Query()."""

    query_id: str
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    confidence: float = 0.0
    grounded: bool = True
    low_confidence: bool = False
    sources: list[FusedResult] = Field(default_factory=list)
    per_backend_result_counts: dict[str, int] = Field(default_factory=dict)
    backend_failures: list[BackendFailure] = Field(default_factory=list)
    processing_time_ms: int = 0
    cached: bool = False


class FragmentEvent(BaseModel):
    """One generated text fragment; ``citations`` completed with it."""

    type: Literal["fragment"] = "fragment"
    sequence_id: int
    fragment: str
    citations: list[Citation] = Field(default_factory=list)


class SummaryEvent(BaseModel):
    """Terminal event of a successful stream."""

    type: Literal["summary"] = "summary"
    sequence_id: int
    query_id: str
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    confidence: float = 0.0
    grounded: bool = True
    low_confidence: bool = False
    per_backend_result_counts: dict[str, int] = Field(default_factory=dict)
    backend_failures: list[BackendFailure] = Field(default_factory=list)
    processing_time_ms: int = 0
    cached: bool = False


ErrorKind = Literal[
    "total_retrieval_failure", "generation_error", "generation_timeout"
]


class ErrorEvent(BaseModel):
    """Terminal event of a failed stream; earlier fragments remain valid."""

    type: Literal["error"] = "error"
    sequence_id: int
    query_id: str
    error_type: ErrorKind
    message: str
    partial_answer: str = ""
    backend_failures: list[BackendFailure] = Field(default_factory=list)


StreamEvent = Union[FragmentEvent, SummaryEvent, ErrorEvent]
