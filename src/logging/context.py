# src/logging/context.py — v2
"""Contextual logging support — attach query_id, principal, backend, phase to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per query execution.
_query_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "query_id", default=None
)
_principal_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "principal_id", default=None
)
_backend: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "backend", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    query_id: str | None = None
    principal_id: str | None = None
    backend: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        query_id=_query_id.get(),
        principal_id=_principal_id.get(),
        backend=_backend.get(),
        phase=_phase.get(),
    )


def set_query_context(query_id: str, principal_id: str) -> None:
    """Set query-level context (called once per query execution)."""
    _query_id.set(query_id)
    _principal_id.set(principal_id)


def set_backend_context(backend: str | None) -> None:
    """Set backend context (called inside each fan-out task)."""
    _backend.set(backend)


def set_phase_context(phase: str | None) -> None:
    """Set the pipeline phase (retrieve, fuse, filter, generate...)."""
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _query_id.set(None)
    _principal_id.set(None)
    _backend.set(None)
    _phase.set(None)
