"""Article generation API.

POST /api/articles/generate
  → Creates a job (or returns the matching in-flight one) and runs the
    pipeline in the background.  Returns { job_id, status } immediately.

POST /api/articles/continue
  → Resumes a pending or abandoned job from its last completed phase.

GET  /api/article-jobs/{job_id}
  → Poll status, current phase, error and saved article id.

POST /api/article-jobs/{job_id}/reset
  → Move a failed job back to pending.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agp.config import Settings, get_settings
from agp.errors import (
    JobAlreadyCompleted,
    JobAlreadyRunning,
    JobNotFound,
    JobRequiresReset,
    ValidationFailure,
)
from agp.jobs.models import JobState, JobStatus
from agp.jobs.store import JobStore, get_job_store, is_stale
from agp.pipeline import ParallelOrchestrator, check_startable, create_job, get_orchestrator, reset_job, start_or_resume

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    company_id: str
    keywords: list[str] = Field(default_factory=list)
    title: str = ""
    website_id: Optional[str] = None
    user_id: Optional[str] = None
    target_language: Optional[str] = None
    word_count: Optional[int] = Field(default=None, gt=0)
    image_count: Optional[int] = Field(default=None, ge=0)
    region: Optional[str] = None
    brand_voice: Optional[dict[str, Any]] = None
    model_overrides: Optional[dict[str, str]] = None


class ContinueRequest(BaseModel):
    job_id: str


class JobStartResponse(BaseModel):
    job_id: str
    status: str
    created: bool = True
    saved_article_id: Optional[str] = None
    message: str = ""


class ArticleJobStatusResponse(BaseModel):
    job_id: str
    status: str
    current_phase: Optional[str] = None
    error_message: Optional[str] = None
    saved_article_id: Optional[str] = None
    token_deduction_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Dependencies (overridden in tests)
# ---------------------------------------------------------------------------

def job_store_dep() -> JobStore:
    return get_job_store()


def orchestrator_dep() -> ParallelOrchestrator:
    return get_orchestrator()


def settings_dep() -> Settings:
    return get_settings()


async def _run_in_background(
    orchestrator: ParallelOrchestrator, store: JobStore, job_id: str, settings: Settings,
) -> None:
    try:
        report = await start_or_resume(orchestrator, store, job_id, settings)
    except (JobNotFound, JobRequiresReset, ValidationFailure) as e:
        logger.warning("Background run of %s not started: %s", job_id, e)
        return
    logger.info("Background run of %s finished: %s", job_id, report.outcome.value)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/articles/generate",
    response_model=JobStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create an article job and start generating",
)
async def generate_article(
    body: GenerateRequest,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(job_store_dep),
    orchestrator: ParallelOrchestrator = Depends(orchestrator_dep),
    settings: Settings = Depends(settings_dep),
):
    try:
        job, created = create_job(
            store,
            company_id=body.company_id,
            keywords=body.keywords,
            title=body.title,
            website_id=body.website_id,
            user_id=body.user_id,
            target_language=body.target_language,
            word_count=body.word_count,
            image_count=body.image_count,
            region=body.region,
            brand_voice=body.brand_voice,
            model_overrides=body.model_overrides,
        )
    except ValidationFailure as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    if created:
        background_tasks.add_task(_run_in_background, orchestrator, store, job.id, settings)
        return JobStartResponse(job_id=job.id, status=job.status.value, message="Generation started")

    state = JobState.from_metadata(job.metadata)
    return JobStartResponse(
        job_id=job.id,
        status=job.status.value,
        created=False,
        saved_article_id=state.saved_article_id,
        message="A job for this article already exists",
    )


@router.post(
    "/articles/continue",
    response_model=JobStartResponse,
    summary="Resume a job from its last completed phase",
    responses={404: {"description": "Job not found"}, 409: {"description": "Job failed or already running"}},
)
async def continue_article(
    body: ContinueRequest,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(job_store_dep),
    orchestrator: ParallelOrchestrator = Depends(orchestrator_dep),
    settings: Settings = Depends(settings_dep),
):
    try:
        job = check_startable(store, body.job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobRequiresReset as e:
        raise HTTPException(status_code=409, detail=str(e))

    if job.status == JobStatus.COMPLETED:
        state = JobState.from_metadata(job.metadata)
        return JobStartResponse(
            job_id=job.id,
            status=job.status.value,
            created=False,
            saved_article_id=state.saved_article_id,
            message="Job already completed",
        )

    if job.status == JobStatus.PROCESSING and not is_stale(job, settings.agp_stale_after_s):
        raise HTTPException(status_code=409, detail=str(JobAlreadyRunning(job.id)))

    background_tasks.add_task(_run_in_background, orchestrator, store, job.id, settings)
    return JobStartResponse(job_id=job.id, status=job.status.value, created=False, message="Generation resumed")


@router.get(
    "/article-jobs/{job_id}",
    response_model=ArticleJobStatusResponse,
    summary="Poll article job status",
)
async def get_article_job(job_id: str, store: JobStore = Depends(job_store_dep)):
    job = store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    state = JobState.from_metadata(job.metadata)
    return ArticleJobStatusResponse(
        job_id=job.id,
        status=job.status.value,
        current_phase=state.current_phase.value if state.current_phase else None,
        error_message=job.error_message,
        saved_article_id=state.saved_article_id,
        token_deduction_error=state.token_deduction_error,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )


@router.post(
    "/article-jobs/{job_id}/reset",
    response_model=ArticleJobStatusResponse,
    summary="Reset a failed job to pending",
)
async def reset_article_job(
    job_id: str,
    store: JobStore = Depends(job_store_dep),
    settings: Settings = Depends(settings_dep),
):
    try:
        job = reset_job(store, job_id, settings)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (JobAlreadyRunning, JobAlreadyCompleted) as e:
        raise HTTPException(status_code=409, detail=str(e))
    state = JobState.from_metadata(job.metadata)
    return ArticleJobStatusResponse(
        job_id=job.id,
        status=job.status.value,
        current_phase=state.current_phase.value if state.current_phase else None,
        error_message=job.error_message,
        saved_article_id=state.saved_article_id,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )
