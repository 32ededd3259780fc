# src/llm/base_client.py — v2
"""Abstract LLM client interface: whole-answer and streaming generation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from hybridrag.llm.models import LLMResponse, Message


class LLMStreamError(Exception):
    """The provider reported an error before or during a stream."""


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion."""

    @abstractmethod
    def stream(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        """Lazy, finite sequence of text fragments.

        Implementations are async generators. Closing the generator
        (``aclose()`` or cancellation) must release the provider connection.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (ollama, openai)."""
