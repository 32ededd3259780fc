# src/rag/retriever/citation_extractor.py — v1
"""Citation extractor — map generated answer text back to numbered sources.

The answer is split into sentences; a pluggable strategy matches each
sentence against the sources given to the context builder:

- marker: explicit ``[출처: N]``, ``[Source: N]`` or ``[N]`` references.
- exact: the sentence (markers removed) is a substring of a source.
- fuzzy: token-overlap ratio against each source above a threshold
  (an exact substring scores 1.0 and is reported as "exact").
- hybrid: markers first, fuzzy for sentences that carry no marker.

Citations are ordered by position in the answer and deduplicated per
source index, keeping the first occurrence. Matching is best-effort; an
answer without citations is not an error.
"""

from __future__ import annotations

import re
import unicodedata
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from hybridrag.core.models import Citation
from hybridrag.rag.retriever.context_assembler import ContextSource

_MARKER = re.compile(
    r"\[(?:(?:출처|source|Source|SOURCE)\s*:\s*)?(\d+(?:\s*,\s*\d+)*)\]"
)
_BOUNDARY = re.compile(r"(?<=[.!?。])\s+|\s*\n\s*")
_TOKEN = re.compile(r"\w+")

MatchType = Literal["marker", "exact", "fuzzy"]


@dataclass(frozen=True)
class Sentence:
    start: int
    text: str

    @property
    def plain(self) -> str:
        """Sentence text with citation markers removed."""
        return " ".join(_MARKER.sub(" ", self.text).split())


@dataclass(frozen=True)
class SourceMatch:
    position: int
    source_index: int
    span: str
    confidence: float
    match_type: MatchType


def _normalize(text: str) -> str:
    return " ".join(unicodedata.normalize("NFC", text).casefold().split())


def _tokens(text: str) -> set[str]:
    return {t for t in _TOKEN.findall(_normalize(text)) if len(t) > 1}


class CitationStrategy(ABC):
    """Matches one sentence against the numbered sources."""

    name: str = "base"

    @abstractmethod
    def match(
        self,
        sentence: Sentence,
        previous: Sentence | None,
        sources: Sequence[ContextSource],
    ) -> list[SourceMatch]:
        """Matches for ``sentence``; ``previous`` is the sentence before it."""


class MarkerStrategy(CitationStrategy):
    """Explicit numbered references written by the model."""

    name = "marker"

    def match(self, sentence, previous, sources):
        matches: list[SourceMatch] = []
        span = sentence.plain or (previous.plain if previous else "")
        for m in _MARKER.finditer(sentence.text):
            for num in m.group(1).split(","):
                index = int(num)
                if 1 <= index <= len(sources):
                    matches.append(SourceMatch(
                        position=sentence.start + m.start(),
                        source_index=index,
                        span=span,
                        confidence=1.0,
                        match_type="marker",
                    ))
        return matches


class ExactSubstringStrategy(CitationStrategy):
    """Sentence copied verbatim (modulo whitespace/case) from a source."""

    name = "exact"

    def __init__(self, min_span_chars: int = 12) -> None:
        self._min_span = min_span_chars

    def match(self, sentence, previous, sources):
        plain = sentence.plain
        if len(plain) < self._min_span:
            return []
        needle = _normalize(plain)
        return [
            SourceMatch(sentence.start, src.index, plain, 1.0, "exact")
            for src in sources
            if needle in _normalize(src.text)
        ]


class FuzzyOverlapStrategy(CitationStrategy):
    """Best source by share of the sentence's tokens found in it."""

    name = "fuzzy"

    def __init__(self, threshold: float = 0.5, min_span_chars: int = 12) -> None:
        if not 0.0 < threshold <= 1.0:
            raise ValueError("threshold must be in (0, 1]")
        self._threshold = threshold
        self._min_span = min_span_chars

    def match(self, sentence, previous, sources):
        plain = sentence.plain
        if len(plain) < self._min_span:
            return []
        needle = _normalize(plain)
        words = _tokens(plain)
        if not words:
            return []

        best: tuple[float, int] | None = None
        for src in sources:
            if needle in _normalize(src.text):
                return [SourceMatch(sentence.start, src.index, plain, 1.0, "exact")]
            ratio = len(words & _tokens(src.text)) / len(words)
            if ratio >= self._threshold and (best is None or ratio > best[0]):
                best = (ratio, src.index)

        if best is None:
            return []
        return [SourceMatch(sentence.start, best[1], plain, round(best[0], 4), "fuzzy")]


class HybridStrategy(CitationStrategy):
    """Markers when present, fuzzy overlap otherwise."""

    name = "hybrid"

    def __init__(self, threshold: float = 0.5, min_span_chars: int = 12) -> None:
        self._marker = MarkerStrategy()
        self._fuzzy = FuzzyOverlapStrategy(threshold, min_span_chars)

    def match(self, sentence, previous, sources):
        if _MARKER.search(sentence.text):
            return self._marker.match(sentence, previous, sources)
        return self._fuzzy.match(sentence, previous, sources)


def create_citation_strategy(
    name: str = "hybrid",
    fuzzy_threshold: float = 0.5,
    min_span_chars: int = 12,
) -> CitationStrategy:
    """Build a strategy by name (marker, exact, fuzzy, hybrid)."""
    if name == "marker":
        return MarkerStrategy()
    if name == "exact":
        return ExactSubstringStrategy(min_span_chars)
    if name == "fuzzy":
        return FuzzyOverlapStrategy(fuzzy_threshold, min_span_chars)
    if name == "hybrid":
        return HybridStrategy(fuzzy_threshold, min_span_chars)
    raise ValueError(f"Unknown citation strategy '{name}'")


def split_sentences(text: str, offset: int = 0) -> list[Sentence]:
    """Split on sentence punctuation followed by whitespace, or newlines."""
    sentences: list[Sentence] = []
    pos = 0
    for m in _BOUNDARY.finditer(text):
        _append_sentence(sentences, text, pos, m.start(), offset)
        pos = m.end()
    _append_sentence(sentences, text, pos, len(text), offset)
    return sentences


def _append_sentence(out: list[Sentence], text: str, start: int, end: int, offset: int) -> None:
    chunk = text[start:end]
    stripped = chunk.strip()
    if stripped:
        lead = len(chunk) - len(chunk.lstrip())
        out.append(Sentence(start=offset + start + lead, text=stripped))


class CitationExtractor:
    """One-pass extraction over a complete answer."""

    def __init__(self, strategy: CitationStrategy | None = None) -> None:
        self._strategy = strategy or HybridStrategy()

    @property
    def strategy(self) -> CitationStrategy:
        return self._strategy

    def extract(self, answer: str, sources: Sequence[ContextSource]) -> list[Citation]:
        inc = self.incremental(sources)
        citations = inc.feed(answer)
        citations += inc.finish()
        return citations

    def incremental(self, sources: Sequence[ContextSource]) -> IncrementalCitationExtractor:
        return IncrementalCitationExtractor(self._strategy, sources)


class IncrementalCitationExtractor:
    """Consume generated fragments; emit citations as sentences complete.

    A sentence is complete once a boundary is followed by more text, so
    fragment edges never split a sentence or a marker. ``finish()``
    processes whatever remains.
    """

    def __init__(self, strategy: CitationStrategy, sources: Sequence[ContextSource]) -> None:
        self._strategy = strategy
        self._sources = list(sources)
        self._buffer = ""
        self._offset = 0
        self._previous: Sentence | None = None
        self._seen: set[int] = set()
        self._citations: list[Citation] = []

    @property
    def citations(self) -> list[Citation]:
        return list(self._citations)

    def feed(self, fragment: str) -> list[Citation]:
        """Add a fragment; return citations first found in it."""
        self._buffer += fragment
        last_end = 0
        for m in _BOUNDARY.finditer(self._buffer):
            if m.end() >= len(self._buffer):
                break
            last_end = m.end()
        if not last_end:
            return []
        complete = self._buffer[:last_end]
        self._buffer = self._buffer[last_end:]
        new = self._process(split_sentences(complete, self._offset))
        self._offset += last_end
        return new

    def finish(self) -> list[Citation]:
        """Process the trailing sentence; return its new citations."""
        new = self._process(split_sentences(self._buffer, self._offset))
        self._offset += len(self._buffer)
        self._buffer = ""
        return new

    def _process(self, sentences: list[Sentence]) -> list[Citation]:
        new: list[Citation] = []
        if not self._sources:
            return new
        for sentence in sentences:
            matches = self._strategy.match(sentence, self._previous, self._sources)
            for m in sorted(matches, key=lambda x: (x.position, x.source_index)):
                if m.source_index in self._seen:
                    continue
                self._seen.add(m.source_index)
                src = self._sources[m.source_index - 1]
                citation = Citation(
                    source_index=m.source_index,
                    document_id=src.result.document_id,
                    chunk_id=src.result.chunk_id,
                    document_title=src.result.document_title,
                    quoted_span=m.span,
                    confidence=m.confidence,
                    match_type=m.match_type,
                )
                new.append(citation)
            self._previous = sentence
        self._citations.extend(new)
        return new
