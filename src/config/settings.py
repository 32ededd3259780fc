# src/config/settings.py — v3
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for retrieval, fusion, deadline, cache, LLM and
logging settings of the orchestrator.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Retrieval ===
    vector_top_k: int = 20
    graph_top_k: int = 20
    graph_depth: int = 2
    keyword_top_k: int = 10
    final_top_k: int = 5
    min_score: float = 0.0

    # === Rank fusion (RRF) ===
    rrf_k: float = 60.0
    vector_weight: float = 1.0
    graph_weight: float = 1.5
    keyword_weight: float = 0.8

    # === Deadlines ===
    fanout_timeout_s: float = 5.0
    generation_inactivity_timeout_s: float = 30.0
    generation_total_timeout_s: float = 120.0
    # Whole-answer queries retry through complete() when the stream fails
    # before producing any text.
    generation_complete_fallback: bool = True

    # === Context / prompt ===
    context_max_chars: int = 8000
    context_min_truncated_chars: int = 100
    include_ontology: bool = True
    ontology_schema: str = ""
    prompt_language: Literal["ko", "en"] = "ko"

    # === Citations ===
    citation_strategy: Literal["marker", "exact", "fuzzy", "hybrid"] = "hybrid"
    citation_fuzzy_threshold: float = 0.5
    citation_min_span_chars: int = 12

    # === Cache ===
    cache_enabled: bool = True
    embedding_cache_capacity: int = 10_000
    embedding_cache_ttl_s: float = 3600.0
    query_cache_capacity: int = 1_000
    query_cache_ttl_s: float = 300.0

    # === LLM ===
    llm_provider: Literal["ollama", "openai"] = "ollama"
    llm_model: str = "llama3"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 2048
    ollama_base_url: str = "http://localhost:11434"
    openai_api_key: str = ""
    openai_base_url: str = ""

    # === Embeddings ===
    embedding_provider: Literal["ollama", "openai"] = "ollama"
    embedding_model: str = "nomic-embed-text"
    embedding_dimensions: int = 768

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("vector_top_k", "graph_top_k", "keyword_top_k", "final_top_k")
    @classmethod
    def validate_top_k(cls, v: int) -> int:  # noqa: N805
        """Every top-k must be at least 1."""
        if v < 1:
            raise ValueError("top_k values must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.rrf_k <= 0:
            errors.append("RRF_K must be > 0")

        for name in ("vector_weight", "graph_weight", "keyword_weight"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")

        for name in (
            "fanout_timeout_s",
            "generation_inactivity_timeout_s",
            "generation_total_timeout_s",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")

        if self.generation_total_timeout_s < self.generation_inactivity_timeout_s:
            errors.append(
                "GENERATION_TOTAL_TIMEOUT_S must be >= GENERATION_INACTIVITY_TIMEOUT_S"
            )

        for name in (
            "embedding_cache_capacity",
            "embedding_cache_ttl_s",
            "query_cache_capacity",
            "query_cache_ttl_s",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")

        if not 0 < self.citation_fuzzy_threshold <= 1:
            errors.append("CITATION_FUZZY_THRESHOLD must be in (0, 1]")

        if self.context_max_chars <= 0:
            errors.append("CONTEXT_MAX_CHARS must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def backend_weights(self) -> dict[str, float]:
        """RRF weight per backend name."""
        return {
            "vector": self.vector_weight,
            "graph": self.graph_weight,
            "keyword": self.keyword_weight,
        }

    @property
    def backend_top_k(self) -> dict[str, int]:
        """Per-backend retrieval depth."""
        return {
            "vector": self.vector_top_k,
            "graph": self.graph_top_k,
            "keyword": self.keyword_top_k,
        }


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-deployment config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
