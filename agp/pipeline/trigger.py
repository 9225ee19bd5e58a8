"""Entry points used by the HTTP API and the CLI to create and drive jobs."""

from __future__ import annotations

import logging
from typing import Any

from agp.config import Settings, get_settings
from agp.errors import JobNotFound, JobRequiresReset, ValidationFailure
from agp.jobs.models import ArticleJob, JobDescriptor, JobState, JobStatus, idempotency_key
from agp.jobs.store import JobStore, new_job_id
from agp.pipeline.orchestrator import ExecutionReport, Outcome, ParallelOrchestrator

logger = logging.getLogger(__name__)


def create_job(
    store: JobStore,
    *,
    company_id: str,
    keywords: list[str],
    title: str = "",
    website_id: str | None = None,
    user_id: str | None = None,
    target_language: str | None = None,
    word_count: int | None = None,
    image_count: int | None = None,
    region: str | None = None,
    brand_voice: dict[str, Any] | None = None,
    model_overrides: dict[str, str] | None = None,
) -> tuple[ArticleJob, bool]:
    """Create a pending job.

    Returns ``(job, created)``.  When a job for the same website and
    normalized title is already pending, processing or completed, that job
    is returned with ``created=False`` instead of starting a second one.
    """
    keywords = [k.strip() for k in keywords if k and k.strip()]
    title = title.strip()
    if not company_id:
        raise ValidationFailure("company_id is required")
    if not keywords and not title:
        raise ValidationFailure("at least one keyword or a title is required")
    if not keywords:
        keywords = [title]

    key = idempotency_key(website_id, title or keywords[0])
    existing = store.get_by_idempotency_key(key)
    if existing is not None and existing.status != JobStatus.FAILED:
        logger.info("Duplicate request for %s; returning job %s (%s)", key, existing.id, existing.status.value)
        return existing, False

    state = JobState(
        title=title or None,
        target_language=target_language,
        word_count=word_count,
        image_count=image_count,
    )
    metadata = state.to_metadata()
    if region:
        metadata["region"] = region
    if brand_voice:
        metadata["brand_voice"] = brand_voice
    if model_overrides:
        metadata["model_overrides"] = model_overrides

    job = ArticleJob(
        id=new_job_id(),
        company_id=company_id,
        website_id=website_id,
        user_id=user_id,
        idempotency_key=key,
        keywords=keywords,
        metadata=metadata,
    )
    store.create(job)
    logger.info("Created job %s for %s", job.id, key)
    return job, True


def check_startable(store: JobStore, job_id: str) -> ArticleJob:
    """Raise unless ``job_id`` may be started or resumed now; return the job otherwise."""
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFound(job_id)
    if job.status == JobStatus.FAILED:
        raise JobRequiresReset(job_id)
    return job


async def start_or_resume(
    orchestrator: ParallelOrchestrator,
    store: JobStore,
    job_id: str,
    settings: Settings | None = None,
) -> ExecutionReport:
    """Run or resume a job; a completed job is a successful no-op."""
    job = check_startable(store, job_id)
    if job.status == JobStatus.COMPLETED:
        state = JobState.from_metadata(job.metadata)
        return ExecutionReport(job_id=job_id, outcome=Outcome.ALREADY_COMPLETED, saved_article_id=state.saved_article_id)
    descriptor = JobDescriptor.from_job(job, settings or get_settings())
    return await orchestrator.execute(descriptor)


def reset_job(store: JobStore, job_id: str, settings: Settings | None = None) -> ArticleJob:
    """Move a failed (or abandoned processing) job back to pending."""
    settings = settings or get_settings()
    job = store.reset(job_id, settings.agp_stale_after_s)
    logger.info("Job %s reset to %s", job_id, job.status.value)
    return job
