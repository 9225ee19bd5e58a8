"""Pydantic models — agent inputs/outputs and the generated article."""

from agp.schemas.agents import (
    BrandVoice,
    ConclusionInput,
    ConclusionOutput,
    ExecutionInfo,
    GeneratedImage,
    ImageInput,
    ImageOutput,
    MetaInput,
    MetaOutput,
    Outline,
    OutlineInput,
    OutlineSection,
    ResearchInput,
    ResearchOutput,
    SectionInput,
    SectionOutput,
    StrategyInput,
    StrategyOutput,
    TaxonomyTerm,
    WritingOutput,
)
from agp.schemas.article import ArticleStatistics, GeneratedArticle

__all__ = [
    "ArticleStatistics",
    "BrandVoice",
    "ConclusionInput",
    "ConclusionOutput",
    "ExecutionInfo",
    "GeneratedArticle",
    "GeneratedImage",
    "ImageInput",
    "ImageOutput",
    "MetaInput",
    "MetaOutput",
    "Outline",
    "OutlineInput",
    "OutlineSection",
    "ResearchInput",
    "ResearchOutput",
    "SectionInput",
    "SectionOutput",
    "StrategyInput",
    "StrategyOutput",
    "TaxonomyTerm",
    "WritingOutput",
]
