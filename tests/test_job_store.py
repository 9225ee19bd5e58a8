"""Tests for the job stores (in-memory and file-based share one contract)."""

from datetime import datetime, timedelta

import pytest

from agp.errors import JobAlreadyCompleted, JobAlreadyRunning, JobNotFound
from agp.jobs.models import ArticleJob, JobStatus, Phase
from agp.jobs.store import FileJobStore, InMemoryJobStore, is_stale, new_job_id


@pytest.fixture(params=["memory", "file"])
def job_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryJobStore()
    return FileJobStore(tmp_path)


def _job(job_id="job_a", **kwargs):
    return ArticleJob(id=job_id, company_id="co", idempotency_key="site:coffee", keywords=["coffee"], **kwargs)


def test_new_job_id_format():
    job_id = new_job_id()
    assert job_id.startswith("job_")
    assert len(job_id) == 20


def test_create_and_get(job_store):
    job_store.create(_job(metadata={"title": "T"}))
    job = job_store.get_job("job_a")
    assert job.status == JobStatus.PENDING
    assert job.metadata == {"title": "T"}
    assert job_store.get_job("missing") is None


def test_get_returns_a_copy(job_store):
    job_store.create(_job())
    job = job_store.get_job("job_a")
    job.metadata["mutated"] = True
    assert "mutated" not in job_store.get_job("job_a").metadata


def test_idempotency_lookup(job_store):
    job_store.create(_job())
    assert job_store.get_by_idempotency_key("site:coffee").id == "job_a"
    assert job_store.get_by_idempotency_key("site:tea") is None


def test_claim_moves_to_processing(job_store):
    job_store.create(_job())
    job = job_store.claim("job_a", stale_after_s=60)
    assert job.status == JobStatus.PROCESSING
    assert job_store.get_job("job_a").status == JobStatus.PROCESSING


def test_second_claim_is_rejected(job_store):
    job_store.create(_job())
    job_store.claim("job_a", stale_after_s=60)
    with pytest.raises(JobAlreadyRunning):
        job_store.claim("job_a", stale_after_s=60)


def test_stale_processing_job_can_be_reclaimed(job_store):
    job_store.create(_job())
    job_store.claim("job_a", stale_after_s=60)
    # negative tolerance: every processing job counts as abandoned
    job = job_store.claim("job_a", stale_after_s=-1)
    assert job.status == JobStatus.PROCESSING


def test_claim_failed_job_clears_error(job_store):
    job_store.create(_job())
    job_store.claim("job_a", stale_after_s=60)
    job_store.set_status("job_a", JobStatus.FAILED, "boom")
    job = job_store.claim("job_a", stale_after_s=60)
    assert job.status == JobStatus.PROCESSING
    assert job.error_message is None


def test_claim_completed_or_missing(job_store):
    job_store.create(_job())
    job_store.set_status("job_a", JobStatus.COMPLETED)
    with pytest.raises(JobAlreadyCompleted):
        job_store.claim("job_a", stale_after_s=60)
    with pytest.raises(JobNotFound):
        job_store.claim("nope", stale_after_s=60)


def test_merge_phase_output_advances_phase(job_store):
    job_store.create(_job(metadata={"title": "T"}))
    job_store.merge_phase_output("job_a", Phase.RESEARCH, {"search_intent": "x"}, Phase.STRATEGY)
    job = job_store.get_job("job_a")
    assert job.metadata["research"] == {"search_intent": "x"}
    assert job.metadata["current_phase"] == "strategy"
    assert job.metadata["title"] == "T"
    assert job_store.get_current_phase("job_a") is Phase.STRATEGY


def test_get_current_phase_unknown_value(job_store):
    job_store.create(_job(metadata={"current_phase": "legacy_step"}))
    assert job_store.get_current_phase("job_a") is None


def test_merge_metadata_missing_job(job_store):
    with pytest.raises(JobNotFound):
        job_store.merge_metadata("nope", {"a": 1})


def test_failed_status_sets_error_and_completed_sets_done(job_store):
    job_store.create(_job())
    job_store.set_status("job_a", JobStatus.FAILED, "x" * 600)
    job = job_store.get_job("job_a")
    assert len(job.error_message) == 500
    job_store.create(_job("job_b"))
    job_store.set_status("job_b", JobStatus.COMPLETED)
    done = job_store.get_job("job_b")
    assert done.metadata["current_phase"] == "done"
    assert done.completed_at is not None
    assert done.error_message is None


def test_reset(job_store):
    job_store.create(_job())
    job_store.merge_metadata("job_a", {"error": {"phase": "meta"}, "research": {}})
    job_store.set_status("job_a", JobStatus.FAILED, "boom")
    job = job_store.reset("job_a", stale_after_s=60)
    assert job.status == JobStatus.PENDING
    assert job.error_message is None
    assert "error" not in job.metadata
    assert "research" in job.metadata


def test_reset_running_or_completed_is_rejected(job_store):
    job_store.create(_job())
    job_store.claim("job_a", stale_after_s=60)
    with pytest.raises(JobAlreadyRunning):
        job_store.reset("job_a", stale_after_s=60)
    job_store.set_status("job_a", JobStatus.COMPLETED)
    with pytest.raises(JobAlreadyCompleted):
        job_store.reset("job_a", stale_after_s=60)


def test_file_store_survives_restart(tmp_path):
    FileJobStore(tmp_path).create(_job())
    FileJobStore(tmp_path).merge_phase_output("job_a", Phase.RESEARCH, {}, Phase.STRATEGY)
    reopened = FileJobStore(tmp_path)
    assert reopened.get_job("job_a").metadata["current_phase"] == "strategy"
    assert reopened.get_by_idempotency_key("site:coffee").id == "job_a"


def test_is_stale():
    job = _job(updated_at=datetime.utcnow() - timedelta(seconds=120))
    assert is_stale(job, 60)
    assert not is_stale(job, 600)
