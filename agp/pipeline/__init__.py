"""Phase machine, orchestrator and the entry points that drive it."""

from agp.pipeline.orchestrator import ExecutionReport, Outcome, ParallelOrchestrator, tokens_used
from agp.pipeline.phases import PIPELINE_ORDER, next_phase, resume_phase
from agp.pipeline.trigger import check_startable, create_job, reset_job, start_or_resume

_orchestrator: ParallelOrchestrator | None = None


def get_orchestrator() -> ParallelOrchestrator:
    """Process-wide orchestrator wired to the configured stores and router."""
    global _orchestrator
    if _orchestrator is not None:
        return _orchestrator
    from agp.agents import OpenAIImageGenerator
    from agp.articles.store import get_article_sink
    from agp.billing import get_token_ledger
    from agp.config import get_settings
    from agp.jobs.store import get_job_store
    from agp.llm import get_router

    settings = get_settings()
    image_generator = None
    if settings.openai_api_key and settings.agp_image_model:
        image_generator = OpenAIImageGenerator(settings.openai_api_key, model=settings.agp_image_model)
    _orchestrator = ParallelOrchestrator(
        get_job_store(),
        get_router(),
        get_article_sink(),
        get_token_ledger(),
        settings,
        image_generator=image_generator,
    )
    return _orchestrator


__all__ = [
    "ExecutionReport",
    "Outcome",
    "PIPELINE_ORDER",
    "ParallelOrchestrator",
    "check_startable",
    "create_job",
    "get_orchestrator",
    "next_phase",
    "reset_job",
    "resume_phase",
    "start_or_resume",
    "tokens_used",
]
