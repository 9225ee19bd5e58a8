"""Stitch phase outputs into the final article (markdown, HTML, statistics)."""

from __future__ import annotations

import math
import re
from datetime import datetime

import markdown

from agp.agents.base import count_words
from agp.jobs.models import JobDescriptor, JobState
from agp.schemas.agents import GeneratedImage, SectionOutput
from agp.schemas.article import ArticleStatistics, GeneratedArticle

WORDS_PER_MINUTE = 200


def _image_md(image: GeneratedImage) -> str:
    return f"![{image.alt_text}]({image.url})"


def _with_image(section: SectionOutput, image: GeneratedImage | None) -> str:
    """Place a rendered section image right after the section heading."""
    if image is None or not image.url:
        return section.markdown
    lines = section.markdown.split("\n")
    at = 1 if lines and lines[0].startswith("#") else 0
    rest = lines[at:]
    while rest and not rest[0].strip():
        rest = rest[1:]
    return "\n".join(lines[:at] + ["", _image_md(image), ""] + rest)


def build_markdown(title: str, state: JobState) -> str:
    writing = state.writing
    images = state.image
    by_section = {img.section_index: img for img in (images.content_images if images else [])}

    parts = [f"# {title}"]
    if images and images.featured_image and images.featured_image.url:
        parts.append(_image_md(images.featured_image))
    parts.append(writing.introduction.markdown)
    for section in sorted(writing.sections, key=lambda s: s.index):
        parts.append(_with_image(section, by_section.get(section.index)))
    if state.conclusion:
        parts.append(state.conclusion.markdown)
    return "\n\n".join(p.strip() for p in parts if p and p.strip()) + "\n"


def compute_statistics(md: str, section_count: int) -> ArticleStatistics:
    words = count_words(md)
    paragraphs = [
        block for block in re.split(r"\n\s*\n", md)
        if block.strip() and not block.lstrip().startswith(("#", "!["))
    ]
    return ArticleStatistics(
        word_count=words,
        paragraph_count=len(paragraphs),
        reading_time=max(1, math.ceil(words / WORDS_PER_MINUTE)),
        section_count=section_count,
    )


def render_html(md: str) -> str:
    return markdown.markdown(md, extensions=["tables", "fenced_code"])


def assemble_article(descriptor: JobDescriptor, state: JobState, *, tokens_used: int = 0) -> GeneratedArticle:
    """Build the article from a state holding every phase output up to image."""
    meta = state.meta
    title = (state.strategy.selected_title if state.strategy else "") or (meta.title if meta else "") \
        or descriptor.display_title
    md = build_markdown(title, state)
    images = state.image
    return GeneratedArticle(
        job_id=descriptor.job_id,
        company_id=descriptor.company_id,
        website_id=descriptor.website_id,
        user_id=descriptor.user_id,
        title=title,
        slug=meta.slug if meta else "",
        keywords=(meta.keywords if meta and meta.keywords else list(descriptor.keywords)),
        categories=list(meta.categories) if meta else [],
        tags=list(meta.tags) if meta else [],
        language=descriptor.target_language,
        markdown=md,
        html=render_html(md),
        statistics=compute_statistics(md, len(state.writing.sections)),
        seo=meta,
        featured_image=images.featured_image if images else None,
        content_images=list(images.content_images) if images else [],
        tokens_used=tokens_used,
        created_at=datetime.utcnow(),
    )
