# src/llm/adapters/ollama_adapter.py — v3
"""Ollama local LLM adapter implementing BaseLLMClient.

Talks to the Ollama REST API over httpx. Streaming responses are
newline-delimited JSON objects (``{"response": "...", "done": false}``)
delivered in arbitrary byte chunks and reassembled by LineBuffer.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from hybridrag.llm.base_client import BaseLLMClient, LLMStreamError
from hybridrag.llm.line_buffer import LineBuffer
from hybridrag.llm.models import LLMResponse, Message
from hybridrag.llm.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT_S = 10.0


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter.

    Args:
        model: Ollama model tag.
        base_url: Ollama server URL.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        retry_configs: Per-error-type retry budgets for complete().
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        transport: httpx.AsyncBaseTransport | None = None,
        retry_configs: dict[str, RetryConfig] | None = None,
        **kwargs: Any,
    ) -> None:
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._retry_configs = retry_configs

    def _client(self) -> httpx.AsyncClient:
        # Read timeout is left unbounded: inactivity is policed by GenerationStreamer.
        return httpx.AsyncClient(
            base_url=self._base_url,
            transport=self._transport,
            timeout=httpx.Timeout(None, connect=_CONNECT_TIMEOUT_S),
        )

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        msgs: list[dict[str, str]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        for m in messages:
            msgs.append({"role": m.role, "content": m.content})

        payload = {
            "model": self._model,
            "messages": msgs,
            "stream": False,
            "options": {"num_predict": max_tokens, "temperature": temperature},
        }

        async def _call() -> dict[str, Any]:
            async with self._client() as client:
                resp = await client.post("/api/chat", json=payload)
                resp.raise_for_status()
                return resp.json()

        t0 = time.monotonic()
        data = await with_retry(
            _call, operation="ollama.complete", retry_configs=self._retry_configs
        )
        latency = int((time.monotonic() - t0) * 1000)

        return LLMResponse(
            content=data.get("message", {}).get("content", ""),
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            model=self._model,
            provider="ollama",
            latency_ms=latency,
            raw_response=data,
        )

    async def stream(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> AsyncIterator[str]:
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": True,
            "options": {"num_predict": max_tokens, "temperature": temperature},
        }
        if system:
            payload["system"] = system

        logger.info("Starting Ollama stream request to %s", self._base_url)
        async with self._client() as client:
            async with client.stream("POST", "/api/generate", json=payload) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise LLMStreamError(
                        f"Ollama stream error {resp.status_code}: {body[:200]}"
                    )
                buffer = LineBuffer()
                async for chunk in resp.aiter_bytes():
                    for line in buffer.feed(chunk):
                        fragment, done = _parse_line(line)
                        if fragment:
                            yield fragment
                        if done:
                            return
                for line in buffer.flush():
                    fragment, _ = _parse_line(line)
                    if fragment:
                        yield fragment

    @property
    def provider_name(self) -> str:
        return "ollama"


def _parse_line(line: str) -> tuple[str, bool]:
    """Decode one NDJSON frame into (fragment, done)."""
    if not line.strip():
        return "", False
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse Ollama response line: %s (%s)", line[:100], e)
        return "", False
    if "error" in data:
        raise LLMStreamError(f"Ollama error: {data['error']}")
    return data.get("response", ""), bool(data.get("done", False))
