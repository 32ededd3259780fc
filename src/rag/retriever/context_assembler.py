# src/rag/retriever/context_assembler.py — v4
"""Context builder — bounded grounding context and prompt from fused results.

Results arrive filtered and ranked (highest fused score first). A prefix
is taken greedily until the character budget is exhausted; the first
result that does not fit is truncated (with "...", counted against the
budget) when more than ``min_truncated_chars`` remain for its text, and
nothing after it is considered. Selected text never exceeds ``max_chars``.
When no result fits, the prompt states that no grounding was found.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from hybridrag.core.models import FusedResult
from hybridrag.rag.retriever.prompts import PromptBuilder, get_template

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 8000
DEFAULT_MIN_TRUNCATED_CHARS = 100
TRUNCATION_MARKER = "..."


@dataclass(frozen=True)
class ContextSource:
    """A numbered source as shown to the language model."""

    index: int
    result: FusedResult
    text: str
    truncated: bool = False


@dataclass
class BuiltContext:
    """Rendered prompt plus the sources it numbers."""

    question: str
    prompt: str
    sources: list[ContextSource] = field(default_factory=list)
    used_chars: int = 0

    @property
    def grounded(self) -> bool:
        return bool(self.sources)

    def source(self, index: int) -> ContextSource | None:
        """Source by its 1-based number."""
        if 1 <= index <= len(self.sources):
            return self.sources[index - 1]
        return None


class ContextBuilder:
    """Select a budgeted prefix of results and render the prompt.

    Args:
        max_chars: Character budget for source snippets.
        min_truncated_chars: Smallest remainder worth a truncated source.
        language: Prompt language ("ko" or "en").
        ontology_schema: Optional schema text shown in the system block.
        include_ontology: Whether to show ``ontology_schema`` at all.
    """

    def __init__(
        self,
        max_chars: int = DEFAULT_MAX_CHARS,
        min_truncated_chars: int = DEFAULT_MIN_TRUNCATED_CHARS,
        language: str = "ko",
        ontology_schema: str | None = None,
        include_ontology: bool = True,
    ) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be > 0")
        self._max_chars = max_chars
        self._min_truncated = min_truncated_chars
        self._template = get_template(language)
        self._ontology = ontology_schema if include_ontology else None

    @property
    def citation_format(self) -> str:
        return self._template.citation_format

    def select(self, results: Sequence[FusedResult]) -> list[ContextSource]:
        """Greedy prefix of ``results`` within the character budget."""
        sources: list[ContextSource] = []
        used = 0
        for result in results:
            snippet = result.snippet.strip()
            if not snippet:
                continue
            if used + len(snippet) > self._max_chars:
                room = self._max_chars - used - len(TRUNCATION_MARKER)
                if room > self._min_truncated:
                    sources.append(ContextSource(
                        index=len(sources) + 1,
                        result=result,
                        text=snippet[:room] + TRUNCATION_MARKER,
                        truncated=True,
                    ))
                break
            sources.append(ContextSource(index=len(sources) + 1, result=result, text=snippet))
            used += len(snippet)
        return sources

    def build(self, question: str, results: Sequence[FusedResult]) -> BuiltContext:
        """Render the prompt for ``question`` over ``results``."""
        sources = self.select(results)
        builder = PromptBuilder(self._template).with_ontology(self._ontology).with_question(question)
        if sources:
            for src in sources:
                r = src.result
                builder.add_source(
                    src.index, r.document_title or r.document_id, src.text,
                    section=r.section, page=r.page,
                )
        else:
            builder.without_grounding()

        used = sum(len(s.text) for s in sources)
        logger.info(
            "Context built: %d of %d results, %d chars (budget=%d)",
            len(sources), len(results), used, self._max_chars,
        )
        return BuiltContext(question=question, prompt=builder.build(), sources=sources, used_chars=used)
