# src/cache/fingerprint.py — v4
"""Cache key fingerprints for embedding and query caches.

Keys are SHA-256 digests of normalized inputs, so identical text maps to
the same key across processes (unlike Python's salted ``hash()``).
"""

from __future__ import annotations

import hashlib
import json
import re
import unicodedata

from hybridrag.core.models import Principal

_WS_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """NFC-normalize, trim and collapse whitespace (case preserved)."""
    text = unicodedata.normalize("NFC", text)
    return _WS_RE.sub(" ", text).strip()


def normalize_question(question: str) -> str:
    """Normalization for query keys: normalize_text plus casefold."""
    return normalize_text(question).casefold()


def hash_text(text: str) -> str:
    """Embedding cache key: digest of the normalized text."""
    return _digest(normalize_text(text))


def principal_scope(principal: Principal) -> str:
    """Canonical JSON of everything the access filter looks at.

    JSON quoting keeps separators inside ids, roles or departments from
    making two different principals encode alike.
    """
    return json.dumps(
        [
            principal.user_id,
            principal.is_internal,
            sorted(principal.roles),
            sorted(principal.departments),
        ],
        ensure_ascii=False,
    )


def query_key(
    question: str,
    top_k: int,
    min_score: float,
    principal: Principal | None = None,
) -> str:
    """Query cache key over (normalized question, top_k, min_score, scope).

    ``min_score`` is scaled to an integer to avoid float-repr mismatches.
    A missing principal encodes as JSON null, distinct from any scope.
    """
    scope = principal_scope(principal) if principal is not None else None
    min_score_scaled = int(round(min_score * 10_000))
    raw = json.dumps(
        [normalize_question(question), top_k, min_score_scaled, scope],
        ensure_ascii=False,
    )
    return _digest(raw)


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
