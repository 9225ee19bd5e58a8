"""Outline — introduction plan, H2 sections, conclusion plan and FAQ."""

from __future__ import annotations

from typing import Any

from agp.agents.base import AgentKind, AgentVariant, language_name, parse_json_object
from agp.agents.research import _strings
from agp.schemas.agents import (
    ConclusionPlan,
    FAQItem,
    IntroductionPlan,
    Outline,
    OutlineInput,
    OutlineSection,
)


def _context(data: OutlineInput) -> dict[str, Any]:
    return {
        "strategy": data.strategy,
        "research": data.research,
        "brand_voice": data.brand_voice,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: OutlineInput) -> Outline:
    obj = parse_json_object(raw)
    sections: list[OutlineSection] = []
    for s in obj.get("sections") or []:
        if not isinstance(s, dict) or not str(s.get("heading") or "").strip():
            continue
        try:
            target = int(s.get("target_word_count") or 300)
        except (TypeError, ValueError):
            target = 300
        sections.append(OutlineSection(
            heading=str(s["heading"]).strip(),
            subheadings=_strings(s.get("subheadings")),
            key_points=_strings(s.get("key_points")),
            target_word_count=max(target, 50),
            keywords=_strings(s.get("keywords")),
        ))
    if not sections:
        raise ValueError("outline has no sections")

    intro = obj.get("introduction") if isinstance(obj.get("introduction"), dict) else {}
    concl = obj.get("conclusion") if isinstance(obj.get("conclusion"), dict) else {}
    faq = [
        FAQItem(question=str(q["question"]), answer_hint=str(q.get("answer_hint") or ""))
        for q in obj.get("faq") or []
        if isinstance(q, dict) and q.get("question")
    ]
    return Outline(
        introduction=IntroductionPlan(
            hook=str(intro.get("hook") or ""),
            context=str(intro.get("context") or ""),
            thesis=str(intro.get("thesis") or ""),
        ),
        sections=sections,
        conclusion=ConclusionPlan(
            summary=str(concl.get("summary") or ""),
            call_to_action=str(concl.get("call_to_action") or ""),
        ),
        faq=faq,
    )


VARIANT = AgentVariant(
    kind=AgentKind.OUTLINE,
    name="OutlineAgent",
    phase="outline",
    template="outline.j2",
    temperature=0.4,
    max_tokens=4000,
    timeout_s=120.0,
    build_context=_context,
    parse=_parse,
)
