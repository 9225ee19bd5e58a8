"""The finished article handed to the article store."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agp.schemas.agents import GeneratedImage, MetaOutput, TaxonomyTerm


class ArticleStatistics(BaseModel):
    word_count: int = 0
    paragraph_count: int = 0
    reading_time: int = 0          # minutes
    section_count: int = 0


class GeneratedArticle(BaseModel):
    job_id: str
    company_id: str
    website_id: str | None = None
    user_id: str | None = None
    title: str
    slug: str = ""
    keywords: list[str] = Field(default_factory=list)
    categories: list[TaxonomyTerm] = Field(default_factory=list)
    tags: list[TaxonomyTerm] = Field(default_factory=list)
    language: str = "zh-TW"
    markdown: str
    html: str = ""
    statistics: ArticleStatistics = Field(default_factory=ArticleStatistics)
    seo: MetaOutput | None = None
    featured_image: GeneratedImage | None = None
    content_images: list[GeneratedImage] = Field(default_factory=list)
    tokens_used: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
