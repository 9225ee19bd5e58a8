"""Research — search intent, findings and gaps for the target keywords."""

from __future__ import annotations

from typing import Any

from agp.agents.base import AgentKind, AgentVariant, language_name, parse_json_object
from agp.schemas.agents import Reference, ResearchInput, ResearchOutput


def _context(data: ResearchInput) -> dict[str, Any]:
    return {
        "title": data.title,
        "keywords": data.keywords,
        "region": data.region,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: ResearchInput) -> ResearchOutput:
    obj = parse_json_object(raw)
    refs = []
    for r in obj.get("references") or []:
        if isinstance(r, dict):
            refs.append(Reference(
                title=str(r.get("title") or ""),
                url=str(r.get("url") or ""),
                note=str(r.get("note") or ""),
            ))
        elif isinstance(r, str) and r.strip():
            refs.append(Reference(url=r.strip()))
    return ResearchOutput(
        search_intent=str(obj.get("search_intent") or "informational"),
        key_findings=_strings(obj.get("key_findings")),
        content_gaps=_strings(obj.get("content_gaps")),
        related_keywords=_strings(obj.get("related_keywords")),
        references=refs,
    )


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


VARIANT = AgentVariant(
    kind=AgentKind.RESEARCH,
    name="ResearchAgent",
    phase="research",
    template="research.j2",
    temperature=0.3,
    max_tokens=4000,
    timeout_s=120.0,
    build_context=_context,
    parse=_parse,
)
