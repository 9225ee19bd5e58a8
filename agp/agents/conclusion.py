"""Conclusion — closing section from the outline's conclusion plan."""

from __future__ import annotations

from typing import Any

from agp.agents.base import AgentKind, AgentVariant, count_words, extract_markdown, language_name
from agp.schemas.agents import ConclusionInput, ConclusionOutput


def _context(data: ConclusionInput) -> dict[str, Any]:
    return {
        "title": data.title,
        "primary_keyword": data.primary_keyword,
        "outline": data.outline,
        "brand_voice": data.brand_voice,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: ConclusionInput) -> ConclusionOutput:
    markdown = extract_markdown(raw)
    if not markdown:
        raise ValueError("empty conclusion")
    return ConclusionOutput(markdown=markdown, word_count=count_words(markdown))


VARIANT = AgentVariant(
    kind=AgentKind.CONCLUSION,
    name="ConclusionAgent",
    phase="conclusion",
    template="conclusion.j2",
    temperature=0.7,
    max_tokens=1000,
    timeout_s=60.0,
    build_context=_context,
    parse=_parse,
)
