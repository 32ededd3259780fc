# src/rag/retriever/prompts.py — v1
"""Grounded-answer prompt templates (Korean default, English) and PromptBuilder.

Layout of a rendered prompt:

    <s> role + rules [+ ontology schema] </s>
    <context> numbered sources </context>
    <question> ... </question>
    <instructions> numbered steps </instructions>
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

PromptLanguage = Literal["ko", "en"]


@dataclass(frozen=True)
class PromptTemplate:
    """Fixed wording of one prompt language."""

    system_rules: tuple[str, ...]
    ontology_heading: str
    source_label: str
    section_label: str
    page_label: str
    no_context: str
    instructions: tuple[str, ...]
    citation_format: str


KOREAN = PromptTemplate(
    system_rules=(
        "당신은 조직의 지식 전문가입니다.",
        "제공된 컨텍스트 정보만을 사용하여 질문에 답변하세요.",
        "답변에 사용한 정보의 출처를 반드시 [출처: N] 형식으로 명시하세요.",
        "컨텍스트에 없는 정보는 \"해당 정보를 찾을 수 없습니다\"라고 답변하세요.",
    ),
    ontology_heading="온톨로지 스키마:",
    source_label="출처",
    section_label="섹션",
    page_label="페이지",
    no_context=(
        "관련 문서를 찾을 수 없습니다. 추측하지 말고 "
        "\"해당 정보를 찾을 수 없습니다\"라고 답변하세요."
    ),
    instructions=(
        "컨텍스트를 주의 깊게 읽으세요.",
        "질문에 직접 관련된 정보만 사용하세요.",
        "답변 작성 시 [출처: N] 형식으로 인용하세요.",
        "확실하지 않은 정보는 언급하지 마세요.",
    ),
    citation_format="[출처: {n}]",
)

ENGLISH = PromptTemplate(
    system_rules=(
        "You are the organization's knowledge expert.",
        "Answer the question using only the provided context.",
        "Cite the source of every piece of information as [Source: N].",
        "If the context does not contain the answer, reply \"The information could not be found\".",
    ),
    ontology_heading="Ontology schema:",
    source_label="Source",
    section_label="Section",
    page_label="Page",
    no_context=(
        "No relevant documents were found. Do not guess; reply "
        "\"The information could not be found\"."
    ),
    instructions=(
        "Read the context carefully.",
        "Use only information directly relevant to the question.",
        "Cite sources as [Source: N] in the answer.",
        "Do not mention information you are unsure about.",
    ),
    citation_format="[Source: {n}]",
)

TEMPLATES: dict[str, PromptTemplate] = {"ko": KOREAN, "en": ENGLISH}


def get_template(language: str) -> PromptTemplate:
    try:
        return TEMPLATES[language]
    except KeyError:
        raise ValueError(
            f"Unknown prompt language '{language}'. Available: {sorted(TEMPLATES)}"
        ) from None


class PromptBuilder:
    """Compose the tagged prompt blocks in a fixed order."""

    def __init__(self, template: PromptTemplate) -> None:
        self._template = template
        self._ontology: str | None = None
        self._sources: list[str] = []
        self._question = ""
        self._grounded = True

    def with_ontology(self, schema: str | None) -> PromptBuilder:
        self._ontology = schema.strip() if schema and schema.strip() else None
        return self

    def add_source(
        self,
        index: int,
        label: str,
        text: str,
        section: str | None = None,
        page: int | None = None,
    ) -> PromptBuilder:
        t = self._template
        header = f"[{index}] {t.source_label}: {label}"
        if section:
            header += f" | {t.section_label}: {section}"
        if page is not None:
            header += f" | {t.page_label}: {page}"
        self._sources.append(f"{header}\n{text}")
        return self

    def without_grounding(self) -> PromptBuilder:
        self._sources.clear()
        self._grounded = False
        return self

    def with_question(self, question: str) -> PromptBuilder:
        self._question = question.strip()
        return self

    def build(self) -> str:
        t = self._template
        system_lines = list(t.system_rules)
        if self._ontology:
            system_lines += ["", t.ontology_heading, self._ontology]

        if self._grounded and self._sources:
            context_body = "\n\n".join(self._sources)
        else:
            context_body = t.no_context

        instructions = "\n".join(f"{i}. {line}" for i, line in enumerate(t.instructions, 1))
        return (
            "<s>\n" + "\n".join(system_lines) + "\n</s>\n\n"
            "<context>\n" + context_body + "\n</context>\n\n"
            "<question>\n" + self._question + "\n</question>\n\n"
            "<instructions>\n" + instructions + "\n</instructions>\n"
        )
