"""Failure taxonomy for the generation pipeline.

Provider SDK exceptions never leave ``agp.llm``: adapters re-raise them as
:class:`ProviderError`.  Agents wrap anything that goes wrong in
:class:`AgentExecutionFailure`.  The orchestrator catches all of these at its
boundary and turns them into a failed job with a readable ``error_message``.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(PipelineError):
    """An AI provider call failed (non-success response, network, empty body)."""

    def __init__(self, provider: str, model: str, message: str, *, retryable: bool = False):
        self.provider = provider
        self.model = model
        self.retryable = retryable
        super().__init__(f"{provider}/{model}: {message}")


class AgentExecutionFailure(PipelineError):
    """An agent could not produce usable output."""

    def __init__(self, agent_name: str, cause: BaseException | str):
        self.agent_name = agent_name
        self.cause = cause
        super().__init__(f"{agent_name}: {cause}")

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, ProviderError) and self.cause.retryable


class PhaseTimeout(AgentExecutionFailure):
    """An agent call ran past its own timeout or the job's remaining budget."""


class PersistenceFailure(PipelineError):
    """The job store could not durably record a write."""

    def __init__(self, job_id: str, message: str):
        self.job_id = job_id
        super().__init__(f"job {job_id}: {message}")


class ValidationFailure(PipelineError):
    """The job descriptor is missing required fields or holds invalid values."""


class BillingFailure(PipelineError):
    """Token/credit deduction failed."""


class JobNotFound(PipelineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobAlreadyRunning(PipelineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already running")


class JobAlreadyCompleted(PipelineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already completed")


class JobRequiresReset(PipelineError):
    """A failed job must be reset to pending before it can be continued."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} has failed; reset it before continuing")
