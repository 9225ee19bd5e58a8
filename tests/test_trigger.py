"""Job creation, duplicate detection, start and reset entry points."""

import pytest

from conftest import make_job, run
from agp.errors import JobAlreadyRunning, JobNotFound, JobRequiresReset, ValidationFailure
from agp.jobs.models import JobStatus, idempotency_key, normalize_keyword
from agp.pipeline.orchestrator import Outcome
from agp.pipeline.trigger import check_startable, create_job, reset_job, start_or_resume


def test_create_job_stores_request_in_metadata(store):
    job, created = create_job(
        store,
        company_id="co_1",
        keywords=[" coffee ", "", "beans"],
        title="How to Brew",
        website_id="site_1",
        target_language="ja",
        word_count=800,
        image_count=0,
        region="JP",
        model_overrides={"writer": "gpt-5-mini"},
    )
    assert created
    assert job.id.startswith("job_")
    assert job.status == JobStatus.PENDING
    assert job.keywords == ["coffee", "beans"]
    assert job.metadata == {
        "title": "How to Brew",
        "targetLanguage": "ja",
        "wordCount": 800,
        "imageCount": 0,
        "region": "JP",
        "model_overrides": {"writer": "gpt-5-mini"},
    }
    assert store.get_job(job.id) is not None


def test_duplicate_request_returns_existing_job(store):
    first, _ = create_job(store, company_id="co_1", keywords=["coffee"], title="How to Brew!", website_id="s")
    second, created = create_job(store, company_id="co_1", keywords=["x"], title="how to brew", website_id="s")
    assert not created
    assert second.id == first.id


def test_failed_job_does_not_block_a_new_one(store):
    first, _ = create_job(store, company_id="co_1", keywords=["coffee"], website_id="s")
    store.set_status(first.id, JobStatus.FAILED, "boom")
    second, created = create_job(store, company_id="co_1", keywords=["coffee"], website_id="s")
    assert created
    assert second.id != first.id


def test_other_website_is_not_a_duplicate(store):
    create_job(store, company_id="co_1", keywords=["coffee"], website_id="a")
    _, created = create_job(store, company_id="co_1", keywords=["coffee"], website_id="b")
    assert created


def test_title_only_request_uses_title_as_keyword(store):
    job, created = create_job(store, company_id="co_1", keywords=["", "  "], title=" Cold Brew Guide ")
    assert created
    assert job.keywords == ["Cold Brew Guide"]
    assert store.get_job(job.id).keywords == ["Cold Brew Guide"]
    assert job.metadata["title"] == "Cold Brew Guide"


@pytest.mark.parametrize("kwargs", [
    {"company_id": "", "keywords": ["coffee"]},
    {"company_id": "co_1", "keywords": ["  "], "title": ""},
])
def test_create_job_validation(store, kwargs):
    with pytest.raises(ValidationFailure):
        create_job(store, **kwargs)


def test_idempotency_key_normalization():
    assert normalize_keyword("Café, Latte & Co.") == "cafélatteco"
    assert normalize_keyword("咖啡 沖煮！") == "咖啡沖煮"
    assert idempotency_key(None, "A b") == "-:ab"


def test_check_startable(store):
    with pytest.raises(JobNotFound):
        check_startable(store, "missing")
    make_job(store)
    assert check_startable(store, "job_1").id == "job_1"
    store.set_status("job_1", JobStatus.FAILED, "boom")
    with pytest.raises(JobRequiresReset):
        check_startable(store, "job_1")


def test_start_or_resume_runs_and_then_noops(store, llm, settings, orchestrator):
    make_job(store)
    report = run(start_or_resume(orchestrator, store, "job_1", settings))
    assert report.outcome == Outcome.COMPLETED
    calls = len(llm.calls)

    again = run(start_or_resume(orchestrator, store, "job_1", settings))
    assert again.outcome == Outcome.ALREADY_COMPLETED
    assert again.saved_article_id == report.saved_article_id
    assert len(llm.calls) == calls


def test_reset_job(store, settings):
    make_job(store)
    store.set_status("job_1", JobStatus.FAILED, "boom")
    job = reset_job(store, "job_1", settings)
    assert job.status == JobStatus.PENDING
    assert job.error_message is None

    store.claim("job_1", settings.agp_stale_after_s)
    with pytest.raises(JobAlreadyRunning):
        reset_job(store, "job_1", settings)
