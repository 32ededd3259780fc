# src/llm/adapters/openai_adapter.py — v3
"""OpenAI chat-completions adapter implementing BaseLLMClient.

Uses the official openai SDK; streaming iterates the SDK's async stream
of chunk deltas and closes it when the consumer stops.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

from hybridrag.llm.base_client import BaseLLMClient
from hybridrag.llm.models import LLMResponse, Message
from hybridrag.llm.retry import RetryConfig, with_retry


class OpenAIAdapter(BaseLLMClient):
    """OpenAI GPT adapter (also fits OpenAI-compatible servers via base_url)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str = "",
        base_url: str = "",
        retry_configs: dict[str, RetryConfig] | None = None,
        **kwargs: Any,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url or None
        self._retry_configs = retry_configs

    def _client(self) -> Any:
        import openai

        return openai.AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        client = self._client()
        oai_messages = _to_openai_messages(messages, system)

        t0 = time.monotonic()
        resp = await with_retry(
            client.chat.completions.create,
            operation="openai.complete",
            retry_configs=self._retry_configs,
            model=self._model,
            messages=oai_messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
            latency_ms=latency,
            raw_response=resp,
        )

    async def stream(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        client = self._client()
        oai_messages = _to_openai_messages([Message(role="user", content=prompt)], system)
        response = await client.chat.completions.create(
            model=self._model,
            messages=oai_messages,
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            await response.close()

    @property
    def provider_name(self) -> str:
        return "openai"


def _to_openai_messages(messages: list[Message], system: str | None) -> list[dict[str, Any]]:
    oai_messages: list[dict[str, Any]] = []
    if system:
        oai_messages.append({"role": "system", "content": system})
    for m in messages:
        oai_messages.append({"role": m.role, "content": m.content})
    return oai_messages
