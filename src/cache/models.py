# src/cache/models.py — v2
"""Cache domain models: CacheEntry, CacheStatsReport.

CacheEntry is immutable after insertion: updates are insert-or-replace
of a whole entry, never partial mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """Single cache entry. Times are monotonic-clock seconds."""

    key: str
    value: V
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStatsReport(BaseModel):
    """Serializable snapshot of one cache's counters."""

    name: str
    hits: int
    misses: int
    writes: int
    invalidations: int
    total_requests: int
    hit_rate: float
    miss_rate: float
    entry_count: int = 0
    capacity: int = 0
