"""Run one article job through every phase, checkpointing as it goes.

    research → strategy → outline → writing → conclusion → meta → image → finalize

Each phase's output is merged into job metadata together with the advance of
``current_phase``; a job that stops for any reason resumes at the first phase
without output.  Writing fans out the introduction and every outline section
concurrently.  ``execute`` never raises: the outcome, including failures, is
returned as an :class:`ExecutionReport` and recorded on the job.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, ValidationError

from agp.agents import Agent, AgentKind, ImageGenerator, build_agents, render_images
from agp.agents.base import Completer
from agp.articles.store import ArticleSink
from agp.billing import TokenLedger
from agp.config import Settings
from agp.errors import (
    AgentExecutionFailure,
    BillingFailure,
    JobAlreadyCompleted,
    JobAlreadyRunning,
    JobNotFound,
    PersistenceFailure,
    PhaseTimeout,
    ValidationFailure,
)
from agp.jobs.models import JobDescriptor, JobState, JobStatus, Phase
from agp.jobs.store import JobStore
from agp.llm.catalog import billing_multiplier
from agp.pipeline.assembler import assemble_article, build_markdown, compute_statistics
from agp.pipeline.budget import Deadline
from agp.pipeline.phases import PHASES, missing_inputs, next_phase, phases_from, resume_phase
from agp.schemas.agents import (
    AgentInput,
    ConclusionInput,
    ExecutionInfo,
    ImageInput,
    ImageOutput,
    MetaInput,
    OutlineInput,
    ResearchInput,
    SectionInput,
    StrategyInput,
    WritingOutput,
)

logger = logging.getLogger(__name__)

# Backoff between attempts of one agent call (only when agp_agent_max_attempts > 1)
RETRY_INITIAL_S = 2.0
RETRY_FACTOR = 2.0
RETRY_MAX_S = 30.0

# Pause between attempts of a failed checkpoint write, times the attempt number
PERSIST_RETRY_S = 0.5

ORCHESTRATOR = "Orchestrator"


class Outcome(str, Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    FAILED = "failed"
    REJECTED = "rejected"


class ExecutionReport(BaseModel):
    job_id: str
    outcome: Outcome
    phases_run: list[Phase] = Field(default_factory=list)
    failed_phase: Phase | None = None
    error: str | None = None
    saved_article_id: str | None = None
    tokens_used: int = 0
    billing_error: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.outcome in (Outcome.COMPLETED, Outcome.ALREADY_COMPLETED)


class _PhaseFailed(Exception):
    def __init__(self, phase: Phase, agent_name: str, cause: BaseException | str):
        self.phase = phase
        self.agent_name = agent_name
        self.cause = cause
        super().__init__(f"{phase.value} phase failed in {agent_name}: {cause}")


async def _blocking(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a store, sink or ledger call on the default executor so the event loop keeps serving other jobs."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


def tokens_used(state: JobState) -> int:
    """Billable tokens across every phase output, weighted per model."""
    infos: list[ExecutionInfo | None] = []
    for key in ("research", "strategy", "outline", "conclusion", "meta", "image"):
        output = getattr(state, key)
        if output is not None:
            infos.append(output.execution_info)
    if state.writing is not None:
        infos.append(state.writing.introduction.execution_info)
        infos.extend(s.execution_info for s in state.writing.sections)
    total = sum(info.usage.total_tokens * billing_multiplier(info.model) for info in infos if info)
    return int(math.ceil(total))


class ParallelOrchestrator:
    """Drives jobs through the phase machine; safe to share across jobs."""

    def __init__(
        self,
        store: JobStore,
        router: Completer,
        sink: ArticleSink,
        billing: TokenLedger,
        settings: Settings,
        image_generator: ImageGenerator | None = None,
        agents: dict[AgentKind, Agent] | None = None,
    ):
        self._store = store
        self._sink = sink
        self._billing = billing
        self._settings = settings
        self._image_generator = image_generator
        self._agents = agents or build_agents(router, settings.agent_models())
        self._handlers: dict[Phase, Callable[[JobDescriptor, JobState, Deadline], Awaitable[BaseModel]]] = {
            Phase.RESEARCH: self._research,
            Phase.STRATEGY: self._strategy,
            Phase.OUTLINE: self._outline,
            Phase.WRITING: self._writing,
            Phase.CONCLUSION: self._conclusion,
            Phase.META: self._meta,
            Phase.IMAGE: self._image,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self, descriptor: JobDescriptor) -> ExecutionReport:
        started = time.perf_counter()
        job_id = descriptor.job_id

        def report(outcome: Outcome, **kwargs: Any) -> ExecutionReport:
            return ExecutionReport(
                job_id=job_id,
                outcome=outcome,
                duration_ms=int((time.perf_counter() - started) * 1000),
                **kwargs,
            )

        try:
            descriptor.validate_for_run()
        except ValidationFailure as e:
            logger.error("Job %s rejected: %s", job_id, e)
            return report(Outcome.REJECTED, error=str(e))

        try:
            job = await _blocking(self._store.claim, job_id, self._settings.agp_stale_after_s)
        except JobAlreadyCompleted:
            done = await _blocking(self._store.get_job, job_id)
            state = JobState.from_metadata(done.metadata if done else {})
            logger.info("Job %s already completed", job_id)
            return report(Outcome.ALREADY_COMPLETED, saved_article_id=state.saved_article_id)
        except (JobAlreadyRunning, JobNotFound, PersistenceFailure) as e:
            logger.warning("Job %s not started: %s", job_id, e)
            return report(Outcome.REJECTED, error=str(e))

        deadline = Deadline(self._settings.agp_job_budget_s)
        phases_run: list[Phase] = []
        phase = Phase.RESEARCH
        try:
            try:
                state = JobState.from_metadata(job.metadata)
            except ValidationError as e:
                raise _PhaseFailed(phase, ORCHESTRATOR, f"unreadable job metadata: {e}") from e

            if state.saved_article_id:
                # Article already saved by an earlier run; only settle what is left
                phase = Phase.FINALIZE
                logger.info("Job %s has article %s, settling", job_id, state.saved_article_id)
                state = await self._settle(descriptor, state)
                return report(
                    Outcome.COMPLETED,
                    saved_article_id=state.saved_article_id,
                    tokens_used=tokens_used(state),
                    billing_error=state.token_deduction_error,
                )

            start = resume_phase(state)
            logger.info("Job %s starting at phase %s", job_id, start.value)
            for phase in phases_from(start):
                state = await self._run_phase(phase, descriptor, state, deadline)
                phases_run.append(phase)

            if state.saved_article_id is None:
                # current_phase was already "done" but the job was never closed
                phase = Phase.FINALIZE
                state = await self._finalize(descriptor, state, deadline)

        except _PhaseFailed as f:
            await self._fail(job_id, f)
            return report(Outcome.FAILED, phases_run=phases_run, failed_phase=f.phase, error=str(f))
        except Exception as e:
            logger.exception("Job %s crashed in phase %s", job_id, phase.value)
            f = _PhaseFailed(phase, ORCHESTRATOR, e)
            await self._fail(job_id, f)
            return report(Outcome.FAILED, phases_run=phases_run, failed_phase=phase, error=str(f))

        logger.info(
            "Job %s completed in %.1fs (article %s)",
            job_id, time.perf_counter() - started, state.saved_article_id,
        )
        return report(
            Outcome.COMPLETED,
            phases_run=phases_run,
            saved_article_id=state.saved_article_id,
            tokens_used=tokens_used(state),
            billing_error=state.token_deduction_error,
        )

    # ------------------------------------------------------------------
    # Phase plumbing
    # ------------------------------------------------------------------

    async def _run_phase(self, phase: Phase, descriptor: JobDescriptor, state: JobState, deadline: Deadline) -> JobState:
        missing = missing_inputs(state, phase)
        if missing:
            raise _PhaseFailed(phase, ORCHESTRATOR, f"missing output of {', '.join(missing)}")
        if phase is Phase.FINALIZE:
            return await self._finalize(descriptor, state, deadline)

        agent_name = self._agents[PHASES[phase].agent].name
        if deadline.expired:
            raise _PhaseFailed(phase, agent_name, PhaseTimeout(agent_name, "job time budget exhausted"))

        t0 = time.perf_counter()
        logger.info("Job %s: phase %s", descriptor.job_id, phase.value)
        try:
            output = await self._handlers[phase](descriptor, state, deadline)
        except AgentExecutionFailure as e:
            raise _PhaseFailed(phase, e.agent_name, e.cause) from e

        upcoming = next_phase(phase)
        await self._persist(
            phase,
            self._store.merge_phase_output,
            descriptor.job_id, phase, output.model_dump(mode="json"), upcoming,
        )
        setattr(state, phase.value, output)
        state.current_phase = upcoming

        elapsed = time.perf_counter() - t0
        timings = dict((state.model_extra or {}).get("phase_timings") or {})
        timings[phase.value] = int(elapsed * 1000)
        state.phase_timings = timings
        try:
            await _blocking(self._store.merge_metadata, descriptor.job_id, {"phase_timings": timings})
        except PersistenceFailure as e:
            # Timings are informational; the phase output is already checkpointed
            logger.warning("Could not record timing of %s for job %s: %s", phase.value, descriptor.job_id, e)
        logger.info("Job %s: phase %s done in %.1fs", descriptor.job_id, phase.value, elapsed)
        return state

    async def _persist(self, phase: Phase, write: Callable[..., None], *args: Any) -> None:
        attempts = max(1, self._settings.agp_persist_attempts)
        for attempt in range(1, attempts + 1):
            try:
                await _blocking(write, *args)
                return
            except PersistenceFailure as e:
                if attempt == attempts:
                    raise _PhaseFailed(phase, "JobStore", e) from e
                logger.warning("Persist attempt %d/%d failed: %s", attempt, attempts, e)
                await asyncio.sleep(PERSIST_RETRY_S * attempt)

    async def _fail(self, job_id: str, failure: _PhaseFailed) -> None:
        message = str(failure)
        logger.error("Job %s failed: %s", job_id, message)
        try:
            await _blocking(self._store.merge_metadata, job_id, {
                "error": {
                    "phase": failure.phase.value,
                    "agent": failure.agent_name,
                    "message": str(failure.cause),
                    "failed_at": datetime.utcnow().isoformat(),
                },
            })
            await _blocking(self._store.set_status, job_id, JobStatus.FAILED, message)
        except PersistenceFailure:
            logger.exception("Could not record failure of job %s", job_id)

    def _input(self, cls: type[AgentInput], kind: AgentKind, descriptor: JobDescriptor, **fields: Any) -> Any:
        return cls(model=descriptor.model_overrides.get(kind.value), **fields)

    async def _call(self, kind: AgentKind, agent_input: AgentInput, deadline: Deadline) -> Any:
        """One agent call with the remaining budget; retries only retryable provider errors."""
        agent = self._agents[kind]
        attempts = max(1, self._settings.agp_agent_max_attempts)
        delay = RETRY_INITIAL_S
        for attempt in range(1, attempts + 1):
            timeout = deadline.timeout_for(agent.variant.timeout_s)
            if timeout <= 0:
                raise PhaseTimeout(agent.name, "job time budget exhausted")
            try:
                return await agent.execute(agent_input, timeout=timeout)
            except AgentExecutionFailure as e:
                if attempt == attempts or not e.retryable:
                    raise
                wait = min(delay, RETRY_MAX_S, deadline.remaining())
                logger.warning("[%s] attempt %d/%d failed (%s); retrying in %.1fs", agent.name, attempt, attempts, e, wait)
                await asyncio.sleep(wait)
                delay *= RETRY_FACTOR

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _research(self, d: JobDescriptor, state: JobState, deadline: Deadline):
        return await self._call(AgentKind.RESEARCH, self._input(
            ResearchInput, AgentKind.RESEARCH, d,
            title=d.display_title,
            keywords=d.keywords,
            target_language=d.target_language,
            region=d.region,
        ), deadline)

    async def _strategy(self, d: JobDescriptor, state: JobState, deadline: Deadline):
        return await self._call(AgentKind.STRATEGY, self._input(
            StrategyInput, AgentKind.STRATEGY, d,
            title=d.display_title,
            keywords=d.keywords,
            research=state.research,
            brand_voice=d.brand_voice,
            target_word_count=d.word_count,
            target_language=d.target_language,
        ), deadline)

    async def _outline(self, d: JobDescriptor, state: JobState, deadline: Deadline):
        return await self._call(AgentKind.OUTLINE, self._input(
            OutlineInput, AgentKind.OUTLINE, d,
            strategy=state.strategy,
            research=state.research,
            brand_voice=d.brand_voice,
            target_language=d.target_language,
        ), deadline)

    async def _writing(self, d: JobDescriptor, state: JobState, deadline: Deadline) -> WritingOutput:
        title = state.strategy.selected_title or d.display_title
        common = dict(
            title=title,
            primary_keyword=d.primary_keyword,
            brand_voice=d.brand_voice,
            target_language=d.target_language,
        )
        inputs = [self._input(
            SectionInput, AgentKind.WRITER, d,
            index=0, role="introduction", introduction=state.outline.introduction, **common,
        )]
        inputs += [
            self._input(SectionInput, AgentKind.WRITER, d, index=i, role="section", section=section, **common)
            for i, section in enumerate(state.outline.sections)
        ]

        sem = asyncio.Semaphore(max(1, self._settings.agp_max_fanout))

        async def _one(section_input: SectionInput):
            async with sem:
                return await self._call(AgentKind.WRITER, section_input, deadline)

        tasks = [asyncio.create_task(_one(i)) for i in inputs]
        try:
            # gather keeps input order, whatever order the calls finish in
            results = await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        introduction, *sections = results
        return WritingOutput(introduction=introduction, sections=sorted(sections, key=lambda s: s.index))

    async def _conclusion(self, d: JobDescriptor, state: JobState, deadline: Deadline):
        return await self._call(AgentKind.CONCLUSION, self._input(
            ConclusionInput, AgentKind.CONCLUSION, d,
            title=state.strategy.selected_title or d.display_title,
            primary_keyword=d.primary_keyword,
            outline=state.outline,
            brand_voice=d.brand_voice,
            target_language=d.target_language,
        ), deadline)

    async def _meta(self, d: JobDescriptor, state: JobState, deadline: Deadline):
        md = build_markdown(state.strategy.selected_title or d.display_title, state)
        stats = compute_statistics(md, len(state.writing.sections))
        return await self._call(AgentKind.META, self._input(
            MetaInput, AgentKind.META, d,
            title_options=state.strategy.title_options,
            keyword=d.primary_keyword,
            keywords=list(d.keywords),
            content_markdown=md,
            word_count=stats.word_count,
            paragraph_count=stats.paragraph_count,
            reading_time=stats.reading_time,
            target_language=d.target_language,
        ), deadline)

    async def _image(self, d: JobDescriptor, state: JobState, deadline: Deadline) -> ImageOutput:
        if d.image_count == 0:
            return ImageOutput()
        output = await self._call(AgentKind.IMAGE, self._input(
            ImageInput, AgentKind.IMAGE, d,
            title=state.strategy.selected_title or d.display_title,
            outline=state.outline,
            count=d.image_count,
            image_style=state.strategy.image_style,
            target_language=d.target_language,
        ), deadline)
        if self._image_generator is not None:
            agent = self._agents[AgentKind.IMAGE]
            timeout = deadline.timeout_for(agent.variant.timeout_s)
            try:
                await asyncio.wait_for(
                    render_images(output, self._image_generator, model=self._settings.agp_image_model, timeout=timeout),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise PhaseTimeout(agent.name, f"image rendering timed out after {timeout:.0f}s") from e
        return output

    # ------------------------------------------------------------------
    # Finalize: save once, record the id, then debit once
    # ------------------------------------------------------------------

    async def _finalize(self, d: JobDescriptor, state: JobState, deadline: Deadline) -> JobState:
        phase = Phase.FINALIZE
        tokens = tokens_used(state)
        article_id = state.saved_article_id or await _blocking(self._sink.find_by_job, d.job_id)
        if article_id is None:
            article = assemble_article(d, state, tokens_used=tokens)
            try:
                article_id = await _blocking(self._sink.save, article)
            except PersistenceFailure as e:
                raise _PhaseFailed(phase, "ArticleSink", e) from e
        await self._persist(phase, self._store.merge_metadata, d.job_id, {
            "saved_article_id": article_id,
            "tokens_used": tokens,
        })
        state.saved_article_id = article_id
        return await self._settle(d, state)

    async def _settle(self, d: JobDescriptor, state: JobState) -> JobState:
        """Debit (at most once) and close the job; the article is already saved."""
        phase = Phase.FINALIZE
        if state.token_deducted_at is None and state.token_deduction_error is None:
            tokens = tokens_used(state)
            try:
                receipt = await _blocking(
                    self._billing.debit, d.company_id, tokens, job_id=d.job_id, article_id=state.saved_article_id,
                )
            except BillingFailure as e:
                # The article stands; billing is reconciled out of band
                logger.error("Token deduction failed for job %s: %s", d.job_id, e)
                state.token_deduction_error = str(e)
                billing = {"token_deduction_error": str(e), "billing_status": "failed"}
            else:
                state.token_deducted_at = receipt.debited_at.isoformat()
                state.tokens_charged = receipt.tokens
                billing = {
                    "token_deducted_at": state.token_deducted_at,
                    "tokens_charged": receipt.tokens,
                    "billing_status": "charged",
                }
            await self._persist(phase, self._store.merge_metadata, d.job_id, billing)

        await self._persist(phase, self._store.merge_metadata, d.job_id, {
            "current_phase": Phase.DONE.value,
            "generation_completed_at": datetime.utcnow().isoformat(),
        })
        await self._persist(phase, self._store.set_status, d.job_id, JobStatus.COMPLETED)
        state.current_phase = Phase.DONE
        return state
