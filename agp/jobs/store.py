"""Article job storage — Postgres, file-based, or in-memory.

Every method is atomic with respect to other calls on the same job id: the
record stores serialize through a per-job lock, the Postgres store relies on
single conditional statements.  Storage errors surface as PersistenceFailure.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

from agp.config import get_settings
from agp.errors import (
    JobAlreadyCompleted,
    JobAlreadyRunning,
    JobNotFound,
    PersistenceFailure,
)
from agp.jobs.models import ArticleJob, JobStatus, Phase

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX = 500


class JobStore(Protocol):
    def create(self, job: ArticleJob) -> ArticleJob: ...
    def get_job(self, job_id: str) -> ArticleJob | None: ...
    def get_by_idempotency_key(self, key: str) -> ArticleJob | None: ...
    def claim(self, job_id: str, stale_after_s: float) -> ArticleJob: ...
    def set_status(self, job_id: str, status: JobStatus, error_message: str | None = None) -> None: ...
    def merge_phase_output(self, job_id: str, phase: Phase, output: dict[str, Any], next_phase: Phase) -> None: ...
    def merge_metadata(self, job_id: str, values: dict[str, Any]) -> None: ...
    def get_current_phase(self, job_id: str) -> Phase | None: ...
    def reset(self, job_id: str, stale_after_s: float) -> ArticleJob: ...


def is_stale(job: ArticleJob, stale_after_s: float, now: datetime | None = None) -> bool:
    """True when a processing job has not been touched for ``stale_after_s`` seconds."""
    updated = job.updated_at
    if updated.tzinfo is not None:
        updated = updated.astimezone(timezone.utc).replace(tzinfo=None)
    return updated < (now or datetime.utcnow()) - timedelta(seconds=stale_after_s)


def _phase_of(metadata: dict[str, Any] | None) -> Phase | None:
    value = (metadata or {}).get("current_phase")
    try:
        return Phase(value) if value else None
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Shared read-modify-write logic for record stores
# ---------------------------------------------------------------------------

class _RecordJobStore:
    """Stores that load and save whole job records under a per-job lock."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)

    # subclasses implement
    def _read(self, job_id: str) -> ArticleJob | None:
        raise NotImplementedError

    def _write(self, job: ArticleJob) -> None:
        raise NotImplementedError

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._guard:
            return self._locks[job_id]

    def _mutate(self, job_id: str, change: Callable[[ArticleJob, datetime], None]) -> ArticleJob:
        with self._lock_for(job_id):
            job = self._read(job_id)
            if job is None:
                raise JobNotFound(job_id)
            now = datetime.utcnow()
            change(job, now)
            job.updated_at = now
            try:
                self._write(job)
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceFailure(job_id, f"write failed: {e}") from e
            return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> ArticleJob | None:
        with self._lock_for(job_id):
            return self._read(job_id)

    def claim(self, job_id: str, stale_after_s: float) -> ArticleJob:
        def _claim(job: ArticleJob, now: datetime) -> None:
            if job.status == JobStatus.COMPLETED:
                raise JobAlreadyCompleted(job_id)
            if job.status == JobStatus.PROCESSING and not is_stale(job, stale_after_s, now):
                raise JobAlreadyRunning(job_id)
            if job.status == JobStatus.PROCESSING:
                logger.warning("Reclaiming stale processing job %s", job_id)
            job.status = JobStatus.PROCESSING
            job.error_message = None

        return self._mutate(job_id, _claim)

    def set_status(self, job_id: str, status: JobStatus, error_message: str | None = None) -> None:
        def _set(job: ArticleJob, now: datetime) -> None:
            job.status = status
            if status == JobStatus.FAILED:
                job.error_message = (error_message or "Unknown error")[:ERROR_MESSAGE_MAX]
                job.completed_at = now
            elif status == JobStatus.COMPLETED:
                job.error_message = None
                job.completed_at = now
                job.metadata["current_phase"] = Phase.DONE.value
            else:
                job.error_message = None

        self._mutate(job_id, _set)

    def merge_phase_output(self, job_id: str, phase: Phase, output: dict[str, Any], next_phase: Phase) -> None:
        def _merge(job: ArticleJob, now: datetime) -> None:
            job.metadata[phase.value] = output
            job.metadata["current_phase"] = next_phase.value

        self._mutate(job_id, _merge)

    def merge_metadata(self, job_id: str, values: dict[str, Any]) -> None:
        self._mutate(job_id, lambda job, now: job.metadata.update(values))

    def get_current_phase(self, job_id: str) -> Phase | None:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return _phase_of(job.metadata)

    def reset(self, job_id: str, stale_after_s: float) -> ArticleJob:
        def _reset(job: ArticleJob, now: datetime) -> None:
            if job.status == JobStatus.COMPLETED:
                raise JobAlreadyCompleted(job_id)
            if job.status == JobStatus.PROCESSING and not is_stale(job, stale_after_s, now):
                raise JobAlreadyRunning(job_id)
            job.status = JobStatus.PENDING
            job.error_message = None
            job.completed_at = None
            job.metadata.pop("error", None)

        return self._mutate(job_id, _reset)


# ---------------------------------------------------------------------------
# In-memory implementation (tests, single process)
# ---------------------------------------------------------------------------

class InMemoryJobStore(_RecordJobStore):
    """Keeps serialized copies so callers never share mutable state with the store."""

    def __init__(self) -> None:
        super().__init__()
        self._rows: dict[str, str] = {}
        self._index: dict[str, str] = {}

    def _read(self, job_id: str) -> ArticleJob | None:
        row = self._rows.get(job_id)
        return ArticleJob.model_validate_json(row) if row is not None else None

    def _write(self, job: ArticleJob) -> None:
        self._rows[job.id] = job.model_dump_json()

    def create(self, job: ArticleJob) -> ArticleJob:
        with self._lock_for(job.id):
            self._write(job)
        with self._guard:
            if job.idempotency_key:
                self._index[job.idempotency_key] = job.id
        return job

    def get_by_idempotency_key(self, key: str) -> ArticleJob | None:
        with self._guard:
            job_id = self._index.get(key)
        return self.get_job(job_id) if job_id else None


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore(_RecordJobStore):
    """Persist jobs as JSON files. Survives restarts within the same data dir."""

    def __init__(self, data_dir: Path):
        super().__init__()
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.json"
        self._index: dict[str, str] = self._load_index()

    def _load_index(self) -> dict[str, str]:
        """Maps idempotency_key -> job_id for lookup."""
        if self._index_path.exists():
            try:
                with open(self._index_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Job index unreadable (%s), starting empty", e)
        return {}

    def _save_index(self) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(self._index, f, indent=2)

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    def _read(self, job_id: str) -> ArticleJob | None:
        path = self._job_path(job_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(job_id, f"read failed: {e}") from e
        return ArticleJob.model_validate(data)

    def _write(self, job: ArticleJob) -> None:
        # Write-then-rename so a crash never leaves a truncated record
        path = self._job_path(job.id)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(job.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        tmp.replace(path)

    def create(self, job: ArticleJob) -> ArticleJob:
        try:
            with self._lock_for(job.id):
                self._write(job)
            with self._guard:
                if job.idempotency_key:
                    self._index[job.idempotency_key] = job.id
                    self._save_index()
        except OSError as e:
            raise PersistenceFailure(job.id, f"create failed: {e}") from e
        return job

    def get_by_idempotency_key(self, key: str) -> ArticleJob | None:
        with self._guard:
            job_id = self._index.get(key)
        return self.get_job(job_id) if job_id else None


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

_COLUMNS = (
    "id, company_id, website_id, user_id, idempotency_key, status, keywords, "
    "metadata, error_message, created_at, updated_at, completed_at"
)


class PostgresJobStore:
    """Persist jobs in Postgres. Survives restarts; safe across processes."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS article_jobs (
                id TEXT PRIMARY KEY,
                company_id TEXT NOT NULL,
                website_id TEXT,
                user_id TEXT,
                idempotency_key TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL,
                keywords JSONB NOT NULL DEFAULT '[]',
                metadata JSONB NOT NULL DEFAULT '{}',
                error_message TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                completed_at TIMESTAMPTZ
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_article_jobs_idempotency
            ON article_jobs (idempotency_key, created_at DESC)
        """)
        return conn

    def _execute(self, job_id: str, sql: str, params: tuple) -> Any:
        import psycopg

        try:
            return self._conn.execute(sql, params)
        except psycopg.Error as e:
            raise PersistenceFailure(job_id, str(e)) from e

    def create(self, job: ArticleJob) -> ArticleJob:
        self._execute(
            job.id,
            f"""
            INSERT INTO article_jobs ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb, %s::jsonb, %s, NOW(), NOW(), NULL)
            """,
            (
                job.id, job.company_id, job.website_id, job.user_id, job.idempotency_key,
                job.status.value, json.dumps(job.keywords), json.dumps(job.metadata), job.error_message,
            ),
        )
        return job

    def get_job(self, job_id: str) -> ArticleJob | None:
        row = self._execute(
            job_id, f"SELECT {_COLUMNS} FROM article_jobs WHERE id = %s", (job_id,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def get_by_idempotency_key(self, key: str) -> ArticleJob | None:
        row = self._execute(
            key,
            f"""
            SELECT {_COLUMNS} FROM article_jobs
            WHERE idempotency_key = %s ORDER BY created_at DESC LIMIT 1
            """,
            (key,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def claim(self, job_id: str, stale_after_s: float) -> ArticleJob:
        row = self._execute(
            job_id,
            f"""
            UPDATE article_jobs SET status = 'processing', error_message = NULL, updated_at = NOW()
            WHERE id = %s AND (
                status IN ('pending', 'failed')
                OR (status = 'processing' AND updated_at < NOW() - make_interval(secs => %s))
            )
            RETURNING {_COLUMNS}
            """,
            (job_id, stale_after_s),
        ).fetchone()
        if row:
            return self._row_to_job(row)
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.status == JobStatus.COMPLETED:
            raise JobAlreadyCompleted(job_id)
        raise JobAlreadyRunning(job_id)

    def set_status(self, job_id: str, status: JobStatus, error_message: str | None = None) -> None:
        if status == JobStatus.FAILED:
            error_message = (error_message or "Unknown error")[:ERROR_MESSAGE_MAX]
        else:
            error_message = None
        patch = {"current_phase": Phase.DONE.value} if status == JobStatus.COMPLETED else {}
        terminal = status in (JobStatus.COMPLETED, JobStatus.FAILED)
        cur = self._execute(
            job_id,
            """
            UPDATE article_jobs SET status = %s, error_message = %s,
                metadata = metadata || %s::jsonb,
                completed_at = CASE WHEN %s THEN NOW() ELSE NULL END,
                updated_at = NOW()
            WHERE id = %s
            """,
            (status.value, error_message, json.dumps(patch), terminal, job_id),
        )
        if cur.rowcount == 0:
            raise JobNotFound(job_id)

    def merge_phase_output(self, job_id: str, phase: Phase, output: dict[str, Any], next_phase: Phase) -> None:
        self.merge_metadata(job_id, {phase.value: output, "current_phase": next_phase.value})

    def merge_metadata(self, job_id: str, values: dict[str, Any]) -> None:
        cur = self._execute(
            job_id,
            "UPDATE article_jobs SET metadata = metadata || %s::jsonb, updated_at = NOW() WHERE id = %s",
            (json.dumps(values, ensure_ascii=False), job_id),
        )
        if cur.rowcount == 0:
            raise JobNotFound(job_id)

    def get_current_phase(self, job_id: str) -> Phase | None:
        row = self._execute(
            job_id, "SELECT metadata->>'current_phase' FROM article_jobs WHERE id = %s", (job_id,),
        ).fetchone()
        if row is None:
            raise JobNotFound(job_id)
        return _phase_of({"current_phase": row[0]})

    def reset(self, job_id: str, stale_after_s: float) -> ArticleJob:
        row = self._execute(
            job_id,
            f"""
            UPDATE article_jobs SET status = 'pending', error_message = NULL, completed_at = NULL,
                metadata = metadata - 'error', updated_at = NOW()
            WHERE id = %s AND (
                status = 'failed'
                OR (status = 'processing' AND updated_at < NOW() - make_interval(secs => %s))
            )
            RETURNING {_COLUMNS}
            """,
            (job_id, stale_after_s),
        ).fetchone()
        if row:
            return self._row_to_job(row)
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.status == JobStatus.COMPLETED:
            raise JobAlreadyCompleted(job_id)
        if job.status == JobStatus.PROCESSING:
            raise JobAlreadyRunning(job_id)
        return job

    def _row_to_job(self, row) -> ArticleJob:
        def _json(value, default):
            if value is None:
                return default
            return value if isinstance(value, (dict, list)) else json.loads(value)

        return ArticleJob(
            id=row[0],
            company_id=row[1],
            website_id=row[2],
            user_id=row[3],
            idempotency_key=row[4],
            status=JobStatus(row[5]),
            keywords=_json(row[6], []),
            metadata=_json(row[7], {}),
            error_message=row[8],
            created_at=row[9],
            updated_at=row[10],
            completed_at=row[11],
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStore | None = None


def get_job_store() -> JobStore:
    """Return singleton job store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.agp_database_url:
        try:
            _store = PostgresJobStore(settings.agp_database_url)
            logger.info("Using Postgres job store")
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
            _store = FileJobStore(settings.data_dir)
    else:
        _store = FileJobStore(settings.data_dir)
        logger.info("Using file-based job store (AGP_DATA_DIR/jobs)")
    return _store


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"
