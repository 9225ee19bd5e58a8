"""Typed input/output records for each agent."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from agp.llm.base import TokenUsage


class ExecutionInfo(BaseModel):
    """What a single agent call actually did — attached to every output."""

    agent_name: str = ""
    phase: str = ""
    model: str = ""
    temperature: float = 0.0
    max_tokens: int = 0
    latency_ms: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)


class BrandVoice(BaseModel):
    brand_name: str = ""
    tone_of_voice: str = "professional and friendly"
    target_audience: str = "general readers"
    sentence_style: str = "clear and concise"
    interactivity: str = "moderate"


class AgentInput(BaseModel):
    """Common per-call overrides; ``None`` means the agent's default."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------

class ResearchInput(AgentInput):
    title: str
    keywords: list[str] = Field(default_factory=list)
    target_language: str = "zh-TW"
    region: str = ""


class Reference(BaseModel):
    title: str = ""
    url: str = ""
    note: str = ""


class ResearchOutput(BaseModel):
    search_intent: str = "informational"
    key_findings: list[str] = Field(default_factory=list)
    content_gaps: list[str] = Field(default_factory=list)
    related_keywords: list[str] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    execution_info: ExecutionInfo | None = None


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class StrategyInput(AgentInput):
    title: str
    keywords: list[str] = Field(default_factory=list)
    research: ResearchOutput
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    target_word_count: int = 1500
    target_language: str = "zh-TW"


class StrategyOutput(BaseModel):
    title_options: list[str] = Field(default_factory=list)
    selected_title: str = ""
    angle: str = ""
    target_audience: str = ""
    keywords: list[str] = Field(default_factory=list)
    target_word_count: int = 1500
    image_style: str = ""
    execution_info: ExecutionInfo | None = None


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------

class OutlineInput(AgentInput):
    strategy: StrategyOutput
    research: ResearchOutput
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    target_language: str = "zh-TW"


class IntroductionPlan(BaseModel):
    hook: str = ""
    context: str = ""
    thesis: str = ""


class OutlineSection(BaseModel):
    heading: str
    subheadings: list[str] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    target_word_count: int = 300
    keywords: list[str] = Field(default_factory=list)


class ConclusionPlan(BaseModel):
    summary: str = ""
    call_to_action: str = ""


class FAQItem(BaseModel):
    question: str
    answer_hint: str = ""


class Outline(BaseModel):
    introduction: IntroductionPlan = Field(default_factory=IntroductionPlan)
    sections: list[OutlineSection] = Field(default_factory=list)
    conclusion: ConclusionPlan = Field(default_factory=ConclusionPlan)
    faq: list[FAQItem] = Field(default_factory=list)
    execution_info: ExecutionInfo | None = None


# ---------------------------------------------------------------------------
# Writing (introduction + one call per outline section)
# ---------------------------------------------------------------------------

class SectionInput(AgentInput):
    index: int
    role: Literal["introduction", "section"] = "section"
    title: str
    primary_keyword: str = ""
    introduction: IntroductionPlan | None = None
    section: OutlineSection | None = None
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    target_language: str = "zh-TW"


class SectionOutput(BaseModel):
    index: int
    heading: str = ""
    markdown: str
    word_count: int = 0
    execution_info: ExecutionInfo | None = None


class WritingOutput(BaseModel):
    introduction: SectionOutput
    sections: list[SectionOutput] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Conclusion
# ---------------------------------------------------------------------------

class ConclusionInput(AgentInput):
    title: str
    primary_keyword: str = ""
    outline: Outline
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    target_language: str = "zh-TW"


class ConclusionOutput(BaseModel):
    markdown: str
    word_count: int = 0
    execution_info: ExecutionInfo | None = None


# ---------------------------------------------------------------------------
# Meta / SEO
# ---------------------------------------------------------------------------

class MetaInput(AgentInput):
    title_options: list[str] = Field(default_factory=list)
    keyword: str
    keywords: list[str] = Field(default_factory=list)
    content_markdown: str = ""
    word_count: int = 0
    paragraph_count: int = 0
    reading_time: int = 0
    target_language: str = "zh-TW"


class OpenGraph(BaseModel):
    title: str = ""
    description: str = ""
    type: str = "article"


class TwitterCard(BaseModel):
    card: str = "summary_large_image"
    title: str = ""
    description: str = ""


class TaxonomyTerm(BaseModel):
    """A category or tag; ``score`` is confidence for categories, relevance for tags."""

    name: str
    slug: str
    score: float = 1.0


class MetaOutput(BaseModel):
    title: str
    description: str
    slug: str
    keywords: list[str] = Field(default_factory=list)
    open_graph: OpenGraph = Field(default_factory=OpenGraph)
    twitter_card: TwitterCard = Field(default_factory=TwitterCard)
    focus_keyphrase: str = ""
    categories: list[TaxonomyTerm] = Field(default_factory=list, max_length=1)
    tags: list[TaxonomyTerm] = Field(default_factory=list, max_length=10)
    execution_info: ExecutionInfo | None = None


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

class ImageInput(AgentInput):
    title: str
    outline: Outline
    count: int = 3
    image_style: str = ""
    target_language: str = "zh-TW"


class GeneratedImage(BaseModel):
    prompt: str
    alt_text: str = ""
    section_index: int | None = None   # None = featured image
    url: str | None = None
    model: str = ""


class ImageOutput(BaseModel):
    featured_image: GeneratedImage | None = None
    content_images: list[GeneratedImage] = Field(default_factory=list)
    execution_info: ExecutionInfo | None = None
