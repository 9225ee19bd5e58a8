"""Article job schema, status, phases, and the typed view of job metadata."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agp.errors import ValidationFailure
from agp.schemas.agents import (
    BrandVoice,
    ConclusionOutput,
    ImageOutput,
    MetaOutput,
    Outline,
    ResearchOutput,
    StrategyOutput,
    WritingOutput,
)

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Phase(str, Enum):
    RESEARCH = "research"
    STRATEGY = "strategy"
    OUTLINE = "outline"
    WRITING = "writing"
    CONCLUSION = "conclusion"
    META = "meta"
    IMAGE = "image"
    FINALIZE = "finalize"
    DONE = "done"
    FAILED = "failed"


class ArticleJob(BaseModel):
    """One requested article generation — created by an external trigger."""

    id: str = ""
    company_id: str = ""
    website_id: str | None = None
    user_id: str | None = None
    idempotency_key: str = ""
    status: JobStatus = JobStatus.PENDING
    keywords: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None


class JobState(BaseModel):
    """Explicit view of ``ArticleJob.metadata``.

    Every field is optional and unknown keys are carried through untouched,
    so metadata written by older or newer code round-trips without loss.
    Aliases keep the camelCase keys other services write.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    current_phase: Phase | None = None
    title: str | None = None
    target_language: str | None = Field(default=None, alias="targetLanguage")
    word_count: int | None = Field(default=None, alias="wordCount")
    image_count: int | None = Field(default=None, alias="imageCount")

    research: ResearchOutput | None = None
    strategy: StrategyOutput | None = None
    outline: Outline | None = None
    writing: WritingOutput | None = None
    conclusion: ConclusionOutput | None = None
    meta: MetaOutput | None = None
    image: ImageOutput | None = None

    saved_article_id: str | None = None
    token_deduction_error: str | None = None
    token_deducted_at: str | None = None
    tokens_charged: int | None = None
    error: dict[str, Any] | None = None

    @field_validator("current_phase", mode="before")
    @classmethod
    def _known_phase(cls, v: Any) -> Any:
        if v is None or isinstance(v, Phase):
            return v
        try:
            return Phase(str(v))
        except ValueError:
            # e.g. "research_completed" from the previous pipeline
            logger.warning("Ignoring unknown current_phase %r", v)
            return None

    @field_validator("word_count", "image_count", mode="before")
    @classmethod
    def _numeric_string(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().replace(",", "")
            return int(v) if v else None
        return v

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any] | None) -> "JobState":
        return cls.model_validate(metadata or {})

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def has_output(self, phase: Phase) -> bool:
        return getattr(self, phase.value, None) is not None


class JobDescriptor(BaseModel):
    """Everything the orchestrator needs to run one job."""

    job_id: str
    company_id: str
    website_id: str | None = None
    user_id: str | None = None
    title: str = ""
    keywords: list[str] = Field(default_factory=list)
    target_language: str = "zh-TW"
    region: str = ""
    word_count: int = 1500
    image_count: int = 3
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    model_overrides: dict[str, str] = Field(default_factory=dict)

    @property
    def primary_keyword(self) -> str:
        return self.keywords[0] if self.keywords else self.title

    @property
    def display_title(self) -> str:
        return self.title or self.primary_keyword

    def validate_for_run(self) -> None:
        """Raise ValidationFailure before any phase runs."""
        problems: list[str] = []
        if not self.job_id:
            problems.append("job_id is required")
        if not self.company_id:
            problems.append("company_id is required")
        if not any(k.strip() for k in self.keywords) and not self.title.strip():
            problems.append("at least one keyword or a title is required")
        if self.word_count <= 0:
            problems.append(f"word_count must be positive (got {self.word_count})")
        if self.image_count < 0:
            problems.append(f"image_count must not be negative (got {self.image_count})")
        if problems:
            raise ValidationFailure("; ".join(problems))

    @classmethod
    def from_job(cls, job: ArticleJob, settings) -> "JobDescriptor":
        """Build a descriptor from the stored job, falling back to settings defaults."""
        try:
            state = JobState.from_metadata(job.metadata)
        except ValidationError as e:
            raise ValidationFailure(f"job {job.id} has invalid metadata: {e}") from e
        extra = state.model_extra or {}
        brand_voice = extra.get("brand_voice")
        return cls(
            job_id=job.id,
            company_id=job.company_id,
            website_id=job.website_id,
            user_id=job.user_id,
            title=state.title or "",
            keywords=[k for k in job.keywords if k and k.strip()],
            target_language=state.target_language or settings.agp_default_language,
            region=str(extra.get("region") or settings.agp_default_region),
            word_count=settings.agp_default_word_count if state.word_count is None else state.word_count,
            image_count=settings.agp_default_image_count if state.image_count is None else state.image_count,
            brand_voice=BrandVoice.model_validate(brand_voice) if isinstance(brand_voice, dict) else BrandVoice(),
            model_overrides=dict(extra.get("model_overrides") or {}),
        )


def normalize_keyword(keyword: str) -> str:
    """Lower-case and drop whitespace and punctuation (letters and digits of any script stay)."""
    return re.sub(r"[\W_]+", "", keyword.lower())


def idempotency_key(website_id: str | None, title: str) -> str:
    return f"{website_id or '-'}:{normalize_keyword(title)}"
