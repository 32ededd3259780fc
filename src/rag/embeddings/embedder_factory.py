# src/rag/embeddings/embedder_factory.py — v3
"""Factory: build the query embedder named by EMBEDDING_PROVIDER.

The result is wrapped in a CachedEmbedder when an EmbeddingCache is given.
"""

from __future__ import annotations

import importlib
import logging

from hybridrag.cache.embedding_cache import EmbeddingCache
from hybridrag.config.settings import Settings
from hybridrag.rag.embeddings.base_embedder import BaseEmbedder
from hybridrag.rag.embeddings.cached_embedder import CachedEmbedder

logger = logging.getLogger(__name__)

_PROVIDER_REGISTRY: dict[str, str] = {
    "ollama": "hybridrag.rag.embeddings.ollama_embedder.OllamaEmbedder",
    "openai": "hybridrag.rag.embeddings.openai_embedder.OpenAIEmbedder",
}

# Embedder keyword -> Settings field, per provider.
_SETTINGS_KWARGS: dict[str, dict[str, str]] = {
    "ollama": {"base_url": "ollama_base_url"},
    "openai": {"api_key": "openai_api_key", "base_url": "openai_base_url"},
}


class UnsupportedEmbeddingProviderError(ValueError):
    """Raised when an embedding provider is not registered."""


def create_embedder(
    settings: Settings,
    cache: EmbeddingCache | None = None,
) -> BaseEmbedder:
    """Instantiate the configured embedding provider.

    Args:
        settings: Uses EMBEDDING_PROVIDER, EMBEDDING_MODEL, EMBEDDING_DIMENSIONS
            and the provider's endpoint settings.
        cache: When given, the embedder is wrapped in a CachedEmbedder.

    Raises:
        UnsupportedEmbeddingProviderError: If the provider is not registered.
    """
    provider = settings.embedding_provider
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedEmbeddingProviderError(
            f"Unsupported embedding provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    cls = _import_class(_PROVIDER_REGISTRY[provider])
    kwargs: dict[str, object] = {
        "model": settings.embedding_model,
        "dimensions": settings.embedding_dimensions,
    }
    for key, field_name in _SETTINGS_KWARGS.get(provider, {}).items():
        kwargs[key] = getattr(settings, field_name)

    logger.debug("Creating embedder: provider=%s, cached=%s", provider, cache is not None)
    embedder: BaseEmbedder = cls(**kwargs)
    if cache is not None:
        embedder = CachedEmbedder(embedder, cache)
    return embedder


def register_embedding_provider(
    name: str, class_path: str, settings_kwargs: dict[str, str] | None = None
) -> None:
    """Register a custom embedding provider."""
    _PROVIDER_REGISTRY[name] = class_path
    if settings_kwargs:
        _SETTINGS_KWARGS[name] = dict(settings_kwargs)


def _import_class(class_path: str) -> type:
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
