"""Writer — the introduction and each outline section, one call apiece."""

from __future__ import annotations

from typing import Any

from agp.agents.base import AgentKind, AgentVariant, count_words, extract_markdown, language_name
from agp.schemas.agents import SectionInput, SectionOutput

INTRO_WORDS = (150, 250)


def _context(data: SectionInput) -> dict[str, Any]:
    if data.role == "introduction":
        low, high = INTRO_WORDS
    else:
        target = data.section.target_word_count if data.section else 300
        low, high = max(target - 50, 50), target + 50
    return {
        "role": data.role,
        "title": data.title,
        "primary_keyword": data.primary_keyword,
        "introduction": data.introduction,
        "section": data.section,
        "brand_voice": data.brand_voice,
        "min_words": low,
        "max_words": high,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: SectionInput) -> SectionOutput:
    markdown = extract_markdown(raw)
    if not markdown:
        raise ValueError("empty section content")

    heading = ""
    if data.role == "section" and data.section is not None:
        heading = data.section.heading
        if not markdown.lstrip().startswith("## "):
            markdown = f"## {heading}\n\n{markdown}"
    return SectionOutput(
        index=data.index,
        heading=heading,
        markdown=markdown,
        word_count=count_words(markdown),
    )


VARIANT = AgentVariant(
    kind=AgentKind.WRITER,
    name="WriterAgent",
    phase="writing",
    template="section.j2",
    temperature=0.7,
    max_tokens=2000,
    timeout_s=120.0,
    build_context=_context,
    parse=_parse,
)
