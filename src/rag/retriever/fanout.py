# src/rag/retriever/fanout.py — v1
"""Search fan-out coordinator — concurrent backend calls under one deadline.

Every enabled backend is called in its own task. Tasks still pending when
the shared deadline elapses are cancelled (and awaited) rather than left
running. A backend that errors or times out is recorded as a
BackendFailure; only when no backend succeeds is TotalRetrievalFailure
raised. Backends that succeed with zero hits are successes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from hybridrag.core.models import BackendFailure, RawResult
from hybridrag.logging.context import set_backend_context
from hybridrag.rag.backends.base_backend import BaseSearchBackend

logger = logging.getLogger(__name__)


class TotalRetrievalFailure(Exception):
    """Every backend failed, timed out or was cancelled."""

    def __init__(self, failures: list[BackendFailure]) -> None:
        self.failures = failures
        summary = ", ".join(f"{f.backend}={f.kind}" for f in failures) or "no backends"
        super().__init__(f"All retrieval backends failed ({summary})")


@dataclass
class FanoutResult:
    """Per-backend results of one fan-out plus the backends that failed."""

    results_by_backend: dict[str, list[RawResult]] = field(default_factory=dict)
    failures: list[BackendFailure] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def succeeded(self) -> list[str]:
        return list(self.results_by_backend)

    @property
    def counts(self) -> dict[str, int]:
        return {name: len(hits) for name, hits in self.results_by_backend.items()}


class SearchFanout:
    """Issue concurrent Search calls to all backends and join them.

    Args:
        backends: Enabled backends; names must be unique.
        timeout_s: Shared deadline for the whole fan-out.
    """

    def __init__(self, backends: Sequence[BaseSearchBackend], timeout_s: float = 5.0) -> None:
        if not backends:
            raise ValueError("SearchFanout requires at least one backend")
        names = [b.name for b in backends]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate backend names: {names}")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._backends = list(backends)
        self._timeout_s = timeout_s

    @property
    def backend_names(self) -> list[str]:
        return [b.name for b in self._backends]

    @property
    def backends(self) -> list[BaseSearchBackend]:
        return list(self._backends)

    async def search(
        self,
        queries: Mapping[str, str],
        top_k: Mapping[str, int],
        timeout_s: float | None = None,
    ) -> FanoutResult:
        """Run all backends concurrently.

        Args:
            queries: Query text per backend name.
            top_k: Result budget per backend name.
            timeout_s: Override of the shared deadline.

        Returns:
            FanoutResult with results for every backend that completed.

        Raises:
            TotalRetrievalFailure: No backend completed successfully.
        """
        deadline = timeout_s if timeout_s is not None else self._timeout_s
        start = time.monotonic()
        tasks: dict[asyncio.Task[list[RawResult]], str] = {}
        for backend in self._backends:
            task = asyncio.create_task(
                self._call(backend, queries[backend.name], top_k[backend.name]),
                name=f"search:{backend.name}",
            )
            tasks[task] = backend.name

        try:
            done, pending = await asyncio.wait(tasks, timeout=deadline)
        finally:
            # Covers both the deadline and cancellation of this coroutine.
            leftover = [t for t in tasks if not t.done()]
            for t in leftover:
                t.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)

        elapsed_ms = _ms_since(start)
        outcome = FanoutResult(elapsed_ms=elapsed_ms)
        for task, name in tasks.items():
            if task in pending:
                outcome.failures.append(BackendFailure(
                    backend=name, kind="timeout",
                    message=f"no response within {deadline:.3f}s",
                    elapsed_ms=elapsed_ms,
                ))
                logger.warning("Backend %s timed out after %.3fs", name, deadline)
            elif task.cancelled():
                outcome.failures.append(BackendFailure(
                    backend=name, kind="cancelled", message="cancelled",
                    elapsed_ms=elapsed_ms,
                ))
                logger.warning("Backend %s was cancelled", name)
            elif task.exception() is not None:
                exc = task.exception()
                outcome.failures.append(BackendFailure(
                    backend=name, kind="error",
                    message=f"{type(exc).__name__}: {exc}",
                    elapsed_ms=elapsed_ms,
                ))
                logger.warning("Backend %s failed: %s", name, exc)
            else:
                outcome.results_by_backend[name] = task.result()

        if not outcome.results_by_backend:
            raise TotalRetrievalFailure(outcome.failures)

        logger.debug(
            "Fan-out finished in %dms: %s, failed=%s",
            elapsed_ms, outcome.counts, [f.backend for f in outcome.failures],
        )
        return outcome

    @staticmethod
    async def _call(backend: BaseSearchBackend, query_text: str, top_k: int) -> list[RawResult]:
        # Each task runs in a copied context, so this does not leak.
        set_backend_context(backend.name)
        hits = await backend.search(query_text, top_k)
        return list(hits)


def _ms_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
