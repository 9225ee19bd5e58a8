"""Strategy — title options, angle and the keyword set for the article."""

from __future__ import annotations

from typing import Any

from agp.agents.base import AgentKind, AgentVariant, language_name, parse_json_object
from agp.agents.research import _strings
from agp.schemas.agents import StrategyInput, StrategyOutput


def _context(data: StrategyInput) -> dict[str, Any]:
    return {
        "title": data.title,
        "keywords": data.keywords,
        "research": data.research,
        "brand_voice": data.brand_voice,
        "target_word_count": data.target_word_count,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: StrategyInput) -> StrategyOutput:
    obj = parse_json_object(raw)
    options = _strings(obj.get("title_options"))
    selected = str(obj.get("selected_title") or "").strip() or (options[0] if options else data.title)
    if selected not in options:
        options.insert(0, selected)
    keywords = _strings(obj.get("keywords")) or list(data.keywords)
    try:
        word_count = int(obj.get("target_word_count") or data.target_word_count)
    except (TypeError, ValueError):
        word_count = data.target_word_count
    return StrategyOutput(
        title_options=options,
        selected_title=selected,
        angle=str(obj.get("angle") or ""),
        target_audience=str(obj.get("target_audience") or data.brand_voice.target_audience),
        keywords=keywords,
        target_word_count=word_count if word_count > 0 else data.target_word_count,
        image_style=str(obj.get("image_style") or ""),
    )


VARIANT = AgentVariant(
    kind=AgentKind.STRATEGY,
    name="StrategyAgent",
    phase="strategy",
    template="strategy.j2",
    temperature=0.5,
    max_tokens=3000,
    timeout_s=120.0,
    build_context=_context,
    parse=_parse,
)
