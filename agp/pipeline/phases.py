"""Phase order and resume logic.

``current_phase`` in job metadata always names the next phase to run.  It
is advanced in the same store write that merges the finished phase's output,
so a crash between phases resumes at the first phase without output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from agp.agents.base import AgentKind
from agp.jobs.models import JobState, Phase

logger = logging.getLogger(__name__)

PIPELINE_ORDER: tuple[Phase, ...] = (
    Phase.RESEARCH,
    Phase.STRATEGY,
    Phase.OUTLINE,
    Phase.WRITING,
    Phase.CONCLUSION,
    Phase.META,
    Phase.IMAGE,
    Phase.FINALIZE,
)

TERMINAL = (Phase.DONE, Phase.FAILED)


@dataclass(frozen=True)
class PhaseSpec:
    phase: Phase
    agent: AgentKind | None
    reads: tuple[str, ...]
    writes: str


PHASES: dict[Phase, PhaseSpec] = {
    Phase.RESEARCH: PhaseSpec(Phase.RESEARCH, AgentKind.RESEARCH, (), "research"),
    Phase.STRATEGY: PhaseSpec(Phase.STRATEGY, AgentKind.STRATEGY, ("research",), "strategy"),
    Phase.OUTLINE: PhaseSpec(Phase.OUTLINE, AgentKind.OUTLINE, ("research", "strategy"), "outline"),
    Phase.WRITING: PhaseSpec(Phase.WRITING, AgentKind.WRITER, ("strategy", "outline"), "writing"),
    Phase.CONCLUSION: PhaseSpec(Phase.CONCLUSION, AgentKind.CONCLUSION, ("strategy", "outline"), "conclusion"),
    Phase.META: PhaseSpec(Phase.META, AgentKind.META, ("strategy", "writing", "conclusion"), "meta"),
    Phase.IMAGE: PhaseSpec(Phase.IMAGE, AgentKind.IMAGE, ("strategy", "outline"), "image"),
    Phase.FINALIZE: PhaseSpec(
        Phase.FINALIZE, None,
        ("strategy", "outline", "writing", "conclusion", "meta", "image"),
        "saved_article_id",
    ),
}


def next_phase(phase: Phase) -> Phase:
    if phase in TERMINAL:
        return phase
    i = PIPELINE_ORDER.index(phase)
    return PIPELINE_ORDER[i + 1] if i + 1 < len(PIPELINE_ORDER) else Phase.DONE


def _has_output(state: JobState, spec: PhaseSpec) -> bool:
    return getattr(state, spec.writes, None) is not None


def resume_phase(state: JobState) -> Phase:
    """Phase to run next for a job whose metadata is ``state``."""
    if state.current_phase is not None and state.current_phase is not Phase.FAILED:
        return state.current_phase
    for phase in PIPELINE_ORDER:
        if not _has_output(state, PHASES[phase]):
            return phase
    return Phase.DONE


def phases_from(start: Phase) -> tuple[Phase, ...]:
    if start in TERMINAL:
        return ()
    return PIPELINE_ORDER[PIPELINE_ORDER.index(start):]


def missing_inputs(state: JobState, phase: Phase) -> list[str]:
    """Metadata keys ``phase`` reads that are not present."""
    return [key for key in PHASES[phase].reads if getattr(state, key, None) is None]
