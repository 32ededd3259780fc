# src/llm/client_factory.py — v4
"""Factory: build the generation client named by LLM_PROVIDER.

Adapters are registered by dotted class path and imported on first use,
so an SDK that is not installed only fails when its provider is chosen.
"""

from __future__ import annotations

import importlib
import logging

from hybridrag.config.settings import Settings
from hybridrag.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_PROVIDER_REGISTRY: dict[str, str] = {
    "ollama": "hybridrag.llm.adapters.ollama_adapter.OllamaAdapter",
    "openai": "hybridrag.llm.adapters.openai_adapter.OpenAIAdapter",
}

# Adapter keyword -> Settings field, per provider.
_SETTINGS_KWARGS: dict[str, dict[str, str]] = {
    "ollama": {"base_url": "ollama_base_url"},
    "openai": {"api_key": "openai_api_key", "base_url": "openai_base_url"},
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def available_providers() -> list[str]:
    return sorted(_PROVIDER_REGISTRY)


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the adapter registered for ``provider``.

    Args:
        provider: Provider identifier (ollama, openai, or a registered name).
        model: Model name.
        settings: Supplies endpoints and API keys not given in ``kwargs``.
        **kwargs: Adapter-specific arguments (e.g. ``transport`` in tests).

    Raises:
        UnsupportedProviderError: If provider is not registered.
        TypeError: If the registered class is not a BaseLLMClient.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(available_providers())}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])
    if not (isinstance(adapter_cls, type) and issubclass(adapter_cls, BaseLLMClient)):
        raise TypeError(f"{_PROVIDER_REGISTRY[provider]} is not a BaseLLMClient")

    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model
    if settings is not None:
        for key, field_name in _SETTINGS_KWARGS.get(provider, {}).items():
            init_kwargs.setdefault(key, getattr(settings, field_name))

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(**init_kwargs)


def create_llm_client_from_settings(settings: Settings, **kwargs: object) -> BaseLLMClient:
    """Build the generation client named by LLM_PROVIDER / LLM_MODEL."""
    return create_llm_client(settings.llm_provider, settings.llm_model, settings, **kwargs)


def register_provider(name: str, class_path: str, settings_kwargs: dict[str, str] | None = None) -> None:
    """Register a custom adapter.

    Args:
        name: Provider identifier.
        class_path: Dotted path of a BaseLLMClient subclass.
        settings_kwargs: Optional adapter keyword -> Settings field mapping.
    """
    _PROVIDER_REGISTRY[name] = class_path
    if settings_kwargs:
        _SETTINGS_KWARGS[name] = dict(settings_kwargs)
    logger.info("Registered LLM provider: %s -> %s", name, class_path)


def _import_class(class_path: str) -> type:
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
