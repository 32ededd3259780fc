# src/rag/retriever/query_analyzer.py — v2
"""Query analyzer: determine intent, answer type and keywords of a question.

Rule-based (no model call). Korean cue words are matched as substrings
since particles attach directly to stems; English cues use word
boundaries.

Intent precedence: procedural > comparative > definitional > factual >
conditional > general.
"""

from __future__ import annotations

import re

from hybridrag.core.models import AnswerType, QueryAnalysis, QueryIntent

_INTENT_CUES: list[tuple[QueryIntent, list[str], list[str]]] = [
    ("procedural", ["어떻게", "절차", "방법"], [r"\bhow\b", r"\bsteps?\b", r"\bprocedure\b"]),
    ("comparative", ["차이", "비교"], [r"\bvs\.?\b", r"\bversus\b", r"\bdifference\b", r"\bcompare\w*\b"]),
    ("definitional", ["무엇", "뭐"], [r"\bwhat\s+is\b", r"\bwhat\s+are\b", r"\bdefine\b", r"\bmeaning\b"]),
    ("factual", ["며칠", "몇", "언제"], [r"\bhow\s+many\b", r"\bhow\s+much\b", r"\bwhen\b", r"\bwho\b"]),
    ("conditional", ["경우", "만약"], [r"\bif\b", r"\bunless\b", r"\bin\s+case\b"]),
]

_ANSWER_TYPES: dict[str, AnswerType] = {
    "procedural": "list",
    "comparative": "comparison",
    "factual": "single_fact",
    "definitional": "explanation",
}

STOPWORDS: frozenset[str] = frozenset({
    # Korean particles
    "은", "는", "이", "가", "를", "을", "의", "에", "와", "과", "도", "로",
    # English function words
    "the", "a", "an", "is", "are", "was", "what", "how", "of", "to", "in",
    "for", "and", "or", "do", "does", "i", "my",
})

_TOKEN_STRIP = "?!.,;:'\"()[]{}"


def analyze_query(question: str) -> QueryAnalysis:
    """Analyze a question.

    Args:
        question: Raw user question.

    Returns:
        QueryAnalysis with intent, expected answer type and keywords.
    """
    q = question.lower().strip()
    intent = _detect_intent(q)
    return QueryAnalysis(
        question=question,
        intent=intent,
        keywords=extract_keywords(question),
        expected_answer_type=_ANSWER_TYPES.get(intent, "unknown"),
    )


def extract_keywords(question: str) -> list[str]:
    """Whitespace tokens longer than one character, minus stop words."""
    keywords: list[str] = []
    for raw in question.split():
        token = raw.strip(_TOKEN_STRIP)
        if len(token) > 1 and token.lower() not in STOPWORDS:
            keywords.append(token)
    return keywords


def _detect_intent(q: str) -> QueryIntent:
    """First intent whose cue appears wins; general when none match.

    "how many"/"how much" are factual, so they are checked before the
    generic procedural "how".
    """
    if re.search(r"\bhow\s+(many|much)\b", q):
        return "factual"
    for intent, ko_cues, en_patterns in _INTENT_CUES:
        if any(cue in q for cue in ko_cues):
            return intent
        if any(re.search(p, q) for p in en_patterns):
            return intent
    return "general"
