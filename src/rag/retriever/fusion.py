# src/rag/retriever/fusion.py — v2
"""Rank fusion engine — weighted Reciprocal Rank Fusion over backend lists.

Pure: no I/O, no shared mutable state. For backend b and a hit at rank r
(1-indexed, as reported by the backend) the contribution to its
document/chunk is ``weight(b) / (k + r)``; contributions are summed per
(document_id, chunk_id).

Ordering: fused score desc, then number of contributing backends desc,
then document_id, then chunk_id.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from hybridrag.core.models import DocumentAccessPolicy, FusedResult, RawResult

DEFAULT_WEIGHTS: dict[str, float] = {"vector": 1.0, "graph": 1.5, "keyword": 0.8}


@dataclass
class _Group:
    score: float = 0.0
    ranks: dict[str, int] = field(default_factory=dict)
    best: RawResult | None = None
    policy: DocumentAccessPolicy | None = None


class RankFusionEngine:
    """Weighted RRF.

    Args:
        k: Smoothing constant added to ranks (default 60).
        weights: Per-backend multipliers; unknown backends weigh 1.0.
    """

    def __init__(self, k: float = 60.0, weights: Mapping[str, float] | None = None) -> None:
        if k <= 0:
            raise ValueError("k must be positive")
        w = dict(DEFAULT_WEIGHTS if weights is None else weights)
        bad = [name for name, value in w.items() if value <= 0]
        if bad:
            raise ValueError(f"Backend weights must be positive: {bad}")
        self._k = float(k)
        self._w = w

    @property
    def k(self) -> float:
        return self._k

    def weight(self, backend: str) -> float:
        return float(self._w.get(backend, 1.0))

    def contribution(self, backend: str, rank: int) -> float:
        return self.weight(backend) / (self._k + rank)

    def max_score(self, backends: Sequence[str]) -> float:
        """Best achievable fused score: rank 1 in every listed backend."""
        return sum(self.contribution(b, 1) for b in backends)

    def fuse(self, results_by_backend: Mapping[str, Sequence[RawResult]]) -> list[FusedResult]:
        """Fuse per-backend lists into one ordered list.

        A document/chunk listed more than once by the same backend
        counts once, at its best rank. When contributions carry different
        access policies they are combined with
        ``DocumentAccessPolicy.combine``: the stricter tier wins, and at
        equal tiers only grants common to all of them remain.
        """
        groups: dict[tuple[str, str], _Group] = {}
        # Sorted iteration keeps the result independent of mapping order.
        for backend in sorted(results_by_backend):
            best_rank: dict[tuple[str, str], RawResult] = {}
            for hit in results_by_backend[backend]:
                seen = best_rank.get(hit.fusion_key)
                if seen is None or hit.rank_within_backend < seen.rank_within_backend:
                    best_rank[hit.fusion_key] = hit

            for key, hit in best_rank.items():
                group = groups.setdefault(key, _Group())
                group.score += self.contribution(backend, hit.rank_within_backend)
                group.ranks[backend] = hit.rank_within_backend
                if group.best is None or hit.raw_score > group.best.raw_score:
                    group.best = hit
                policy = hit.document_access_policy
                group.policy = policy if group.policy is None else group.policy.combine(policy)

        fused = [_to_fused(key, g) for key, g in groups.items()]
        fused.sort(key=_order_key)
        return fused


def _to_fused(key: tuple[str, str], group: _Group) -> FusedResult:
    best = group.best
    assert best is not None
    return FusedResult(
        document_id=key[0],
        chunk_id=key[1] or None,
        fused_score=group.score,
        contributing_backends=frozenset(group.ranks),
        backend_ranks=dict(group.ranks),
        snippet=best.snippet,
        access_policy=group.policy or DocumentAccessPolicy(),
        document_title=best.document_title,
        section=best.section,
        page=best.page,
    )


def _order_key(r: FusedResult) -> tuple[float, int, str, str]:
    return (-r.fused_score, -len(r.contributing_backends), r.document_id, r.chunk_id or "")

