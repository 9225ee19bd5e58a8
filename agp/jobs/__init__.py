"""Article job storage and retrieval."""

from agp.jobs.models import (
    ArticleJob,
    JobDescriptor,
    JobState,
    JobStatus,
    Phase,
    idempotency_key,
    normalize_keyword,
)
from agp.jobs.store import (
    FileJobStore,
    InMemoryJobStore,
    JobStore,
    PostgresJobStore,
    get_job_store,
    new_job_id,
)

__all__ = [
    "ArticleJob",
    "FileJobStore",
    "InMemoryJobStore",
    "JobDescriptor",
    "JobState",
    "JobStatus",
    "JobStore",
    "Phase",
    "PostgresJobStore",
    "get_job_store",
    "idempotency_key",
    "new_job_id",
    "normalize_keyword",
]
