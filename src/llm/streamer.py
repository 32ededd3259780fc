# src/llm/streamer.py — v2
"""Generation streamer — drive a client's stream under two deadlines.

- inactivity: no fragment within ``inactivity_timeout_s``
- total: the whole generation exceeds ``total_timeout_s``

Either raises GenerationTimeout. Any provider error mid-stream becomes a
GenerationError carrying the text already emitted, which stays valid.
Leaving the loop for any reason (exhaustion, error, consumer ``aclose()``,
task cancellation) closes the provider stream.

``complete()`` is the non-streaming form, used when nothing has been
delivered yet and a retried whole answer is acceptable.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Literal

from hybridrag.llm.base_client import BaseLLMClient
from hybridrag.llm.models import Message
from hybridrag.llm.retry import LLMRetryExhausted

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Language-model backend failed mid-stream."""

    def __init__(self, message: str, partial_text: str = "") -> None:
        self.partial_text = partial_text
        super().__init__(message)


class GenerationTimeout(GenerationError):
    """No fragment arrived in time, or the total duration cap was hit."""

    def __init__(self, kind: Literal["inactivity", "total"], timeout_s: float, partial_text: str = "") -> None:
        self.kind = kind
        self.timeout_s = timeout_s
        super().__init__(f"generation {kind} timeout after {timeout_s:.1f}s", partial_text)


class GenerationStreamer:
    """Produces a lazy, finite, non-restartable sequence of text fragments.

    Args:
        client: Streaming-capable LLM client.
        inactivity_timeout_s: Max wait for the next fragment.
        total_timeout_s: Max duration of the whole generation.
        max_tokens: Generation length cap passed to the provider.
        temperature: Sampling temperature passed to the provider.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        inactivity_timeout_s: float = 30.0,
        total_timeout_s: float = 120.0,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> None:
        self._client = client
        self._inactivity = inactivity_timeout_s
        self._total = total_timeout_s
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def stream(self, prompt: str, system: str | None = None) -> AsyncIterator[str]:
        """Yield non-empty fragments in generation order."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._total
        source = self._client.stream(
            prompt,
            system=system,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        iterator = source.__aiter__()
        emitted: list[str] = []

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise GenerationTimeout("total", self._total, "".join(emitted))
                wait = min(self._inactivity, remaining)
                try:
                    fragment = await asyncio.wait_for(iterator.__anext__(), timeout=wait)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    kind: Literal["inactivity", "total"] = (
                        "inactivity" if self._inactivity <= remaining else "total"
                    )
                    timeout_s = self._inactivity if kind == "inactivity" else self._total
                    logger.warning("Generation %s timeout after %.1fs", kind, timeout_s)
                    raise GenerationTimeout(kind, timeout_s, "".join(emitted)) from None
                except GenerationError:
                    raise
                except Exception as e:
                    logger.error("Generation failed mid-stream: %s", e)
                    raise GenerationError(str(e), "".join(emitted)) from e

                if not fragment:
                    continue
                emitted.append(fragment)
                yield fragment
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        logger.info(
            "Generation complete: %d fragments, %d chars",
            len(emitted), sum(len(f) for f in emitted),
        )

    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Whole answer from the client's non-streaming call.

        The adapter retries transient provider errors; the call as a whole
        is bounded by the total timeout.

        Raises:
            GenerationTimeout: The total timeout elapsed.
            GenerationError: The provider call failed after its retries.
        """
        try:
            response = await asyncio.wait_for(
                self._client.complete(
                    [Message(role="user", content=prompt)],
                    system=system,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ),
                timeout=self._total,
            )
        except asyncio.TimeoutError:
            logger.warning("Generation total timeout after %.1fs (complete)", self._total)
            raise GenerationTimeout("total", self._total) from None
        except LLMRetryExhausted as e:
            logger.error("Generation failed after %d attempts: %s", e.attempts, e.last_error)
            raise GenerationError(str(e)) from e
        except Exception as e:
            logger.error("Generation failed: %s", e)
            raise GenerationError(str(e)) from e

        logger.info(
            "Generation complete (non-streaming): %d chars, %d output tokens",
            len(response.content), response.output_tokens,
        )
        return response.content
