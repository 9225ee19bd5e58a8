"""Meta/SEO — title, description, slug, social cards, category and tags for the article."""

from __future__ import annotations

import re
from typing import Any

from agp.agents.base import AgentKind, AgentVariant, language_name, parse_json_object
from agp.agents.research import _strings
from agp.schemas.agents import MetaInput, MetaOutput, OpenGraph, TaxonomyTerm, TwitterCard

DESCRIPTION_MAX = 160
SUMMARY_CHARS = 500
MAX_TAGS = 10
FALLBACK_TAGS = 5


def sanitize_slug(value: str) -> str:
    """Lower-case ASCII slug: drop non-word characters, hyphenate whitespace."""
    s = value.lower()
    s = re.sub(r"[^\w\s-]", "", s, flags=re.ASCII)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def _context(data: MetaInput) -> dict[str, Any]:
    return {
        "title_options": data.title_options,
        "keyword": data.keyword,
        "keywords": data.keywords,
        "summary": data.content_markdown[:SUMMARY_CHARS],
        "word_count": data.word_count,
        "paragraph_count": data.paragraph_count,
        "reading_time": data.reading_time,
        "language_name": language_name(data.target_language),
    }


def _parse(raw: str, data: MetaInput) -> MetaOutput:
    obj = parse_json_object(raw)
    og = obj.get("openGraph") or obj.get("open_graph") or {}
    tw = obj.get("twitterCard") or obj.get("twitter_card") or {}
    og = og if isinstance(og, dict) else {}
    tw = tw if isinstance(tw, dict) else {}

    fallback_title = data.title_options[0] if data.title_options else data.keyword
    title = str(obj.get("title") or "").strip() or fallback_title
    description = str(obj.get("description") or "").strip() or _excerpt(data) or data.keyword
    slug = sanitize_slug(str(obj.get("slug") or "")) or sanitize_slug(data.keyword) or "article"

    return MetaOutput(
        title=title,
        description=description[:DESCRIPTION_MAX],
        slug=slug,
        keywords=_strings(obj.get("keywords")) or [data.keyword],
        open_graph=OpenGraph(
            title=str(og.get("title") or title),
            description=str(og.get("description") or description)[:DESCRIPTION_MAX],
        ),
        twitter_card=TwitterCard(
            title=str(tw.get("title") or title),
            description=str(tw.get("description") or description)[:DESCRIPTION_MAX],
        ),
        focus_keyphrase=str(obj.get("focusKeyphrase") or obj.get("focus_keyphrase") or data.keyword),
        categories=_categories(obj.get("categories"), data),
        tags=_tags(obj.get("tags"), data),
    )


def _term(value: Any, score: float) -> TaxonomyTerm | None:
    if isinstance(value, dict):
        name = str(value.get("name") or "").strip()
        raw_score = value.get("confidence", value.get("relevance", score))
        try:
            score = float(raw_score)
        except (TypeError, ValueError):
            pass
    else:
        name = str(value or "").strip()
    if not name:
        return None
    slug = sanitize_slug(name) or name.lower()
    return TaxonomyTerm(name=name, slug=slug, score=min(max(score, 0.0), 1.0))


def _categories(value: Any, data: MetaInput) -> list[TaxonomyTerm]:
    """Exactly one category; the title-cased primary keyword when none is usable."""
    for item in value if isinstance(value, list) else []:
        term = _term(item, 0.9)
        if term:
            return [term]
    name = data.keyword.strip().title() or "General"
    return [TaxonomyTerm(name=name, slug=sanitize_slug(name) or "general", score=0.5)]


def _tags(value: Any, data: MetaInput) -> list[TaxonomyTerm]:
    items = value if isinstance(value, list) else []
    tags: list[TaxonomyTerm] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        term = _term(item, 1 - i * 0.05)
        if term and term.slug not in seen:
            seen.add(term.slug)
            tags.append(term)
        if len(tags) == MAX_TAGS:
            break
    if tags:
        return tags
    fallback = [k for k in data.keywords or [data.keyword] if k.strip()]
    return [
        TaxonomyTerm(name=k, slug=sanitize_slug(k) or k.lower(), score=round(1 - i * 0.1, 2))
        for i, k in enumerate(fallback[:FALLBACK_TAGS])
    ]


def _excerpt(data: MetaInput) -> str:
    return re.sub(r"[#*\[\]]", "", data.content_markdown[:150]).strip()


VARIANT = AgentVariant(
    kind=AgentKind.META,
    name="MetaAgent",
    phase="meta",
    template="meta.j2",
    temperature=0.3,
    max_tokens=1500,
    timeout_s=60.0,
    build_context=_context,
    parse=_parse,
)
