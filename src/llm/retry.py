# src/llm/retry.py — v3
"""Adapter-level retry with exponential backoff for non-streaming calls.

Streams are never retried (fragments may already have been delivered);
the orchestrator bounds waiting and degrades instead.

Errors are classified from the HTTP status when one is available
(httpx.HTTPStatusError, openai.APIStatusError expose it), otherwise from
the exception type and message.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class LLMRetryExhausted(Exception):
    """All retries exhausted (or error not retryable) for a provider call."""

    def __init__(self, operation: str, error_type: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.error_type = error_type
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"'{operation}' failed after {attempts} attempts ({error_type}): {last_error}"
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget for one error type."""

    max_retries: int
    base_delay_s: float
    backoff_factor: float = 2.0
    jitter: bool = True
    max_delay_s: float = 30.0


DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "rate_limit": RetryConfig(max_retries=3, base_delay_s=2.0),
    "timeout": RetryConfig(max_retries=2, base_delay_s=1.0, backoff_factor=1.0),
    "server_error": RetryConfig(max_retries=3, base_delay_s=2.0),
    "connection": RetryConfig(max_retries=2, base_delay_s=0.5),
}


def _status_code(error: Exception) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    code = getattr(error, "status_code", None)
    return code if isinstance(code, int) else None


def classify_error(error: Exception) -> str:
    """Map an exception to rate_limit, timeout, connection, server_error or unknown."""
    status = _status_code(error)
    if status is not None:
        if status == 429:
            return "rate_limit"
        if status in (408, 504):
            return "timeout"
        if status >= 500:
            return "server_error"
        return "unknown"

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "timeout"
    if isinstance(error, (httpx.ConnectError, httpx.RemoteProtocolError, ConnectionError)):
        return "connection"

    msg = str(error).lower()
    name = type(error).__name__.lower()
    if "429" in msg or "rate limit" in msg or "ratelimit" in name:
        return "rate_limit"
    if "timeout" in name or "timed out" in msg or "timeout" in msg:
        return "timeout"
    if "connect" in name or "connection" in msg:
        return "connection"
    if any(c in msg for c in ("500", "502", "503", "504")):
        return "server_error"
    return "unknown"


def retry_after_s(error: Exception) -> float | None:
    """Seconds requested by a ``Retry-After`` header, if any."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return max(0.0, float(value)) if value is not None else None
    except ValueError:
        return None


def compute_delay(config: RetryConfig, attempt: int, error: Exception | None = None) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at max_delay_s."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    requested = retry_after_s(error) if error is not None else None
    if requested is not None:
        delay = max(delay, requested)
    return min(delay, config.max_delay_s)


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "unknown",
    retry_configs: dict[str, RetryConfig] | None = None,
    **kwargs: Any,
) -> Any:
    """Await ``fn(*args, **kwargs)``, retrying classified transient errors.

    Cancellation is never retried.

    Raises:
        LLMRetryExhausted: If the error is not retryable or retries run out.
    """
    configs = retry_configs if retry_configs is not None else DEFAULT_RETRY_CONFIGS
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            error_type = classify_error(e)
            attempts += 1
            config = configs.get(error_type)

            if config is None or attempts > config.max_retries:
                raise LLMRetryExhausted(operation, error_type, attempts, e) from e

            delay = compute_delay(config, attempts - 1, e)
            logger.warning(
                "'%s' %s (attempt %d/%d), retrying in %.1fs",
                operation, error_type, attempts, config.max_retries, delay,
            )
            await asyncio.sleep(delay)
