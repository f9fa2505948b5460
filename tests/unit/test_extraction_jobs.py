"""Unit tests for the extraction job lifecycle."""

import asyncio
from datetime import timedelta
from itertools import product
from uuid import uuid4

import pytest

from libris.core.extraction.jobs import (
    VALID_TRANSITIONS,
    ExtractionCancellationToken,
    ExtractionJobService,
    is_valid_transition,
    should_stop_job,
)
from libris.db.models.extraction import ExtractedBook, JobStatus
from libris.utils.exceptions import InvalidTransitionError, NotFoundError, ValidationError


@pytest.fixture
def service(extraction_store, clock) -> ExtractionJobService:
    return ExtractionJobService(extraction_store, clock=clock)


async def job_in_status(service: ExtractionJobService, status: JobStatus):
    job = await service.create_job("https://example.org/catalog")
    job.status = status.value
    await service.store.save_job(job)
    return job


@pytest.mark.asyncio
@pytest.mark.parametrize(("current", "target"), list(product(JobStatus, JobStatus)))
async def test_transition_table(service, current, target):
    """Test every (current, target) pair against the allowed transitions."""
    job = await job_in_status(service, current)

    if target in VALID_TRANSITIONS[current]:
        updated = await service.transition(job.id, target)
        assert updated.status == target.value
    else:
        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.transition(job.id, target)
        assert str(exc_info.value) == (
            f"Invalid status transition from {current.value} to {target.value}"
        )
        assert (await service.get_job(job.id)).status == current.value


def test_is_valid_transition_accepts_strings():
    assert is_valid_transition("pending", "running")
    assert not is_valid_transition("completed", "running")


@pytest.mark.asyncio
async def test_create_job(service, extraction_store):
    job = await service.create_job("  https://example.org/list  ", created_by="admin")

    assert job.status == "pending"
    assert job.source_url == "https://example.org/list"
    assert job.started_at is None
    assert extraction_store.logs[0].message == "Extraction job created"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("url", "minutes", "books"),
    [("", 60, 100), ("https://x", 0, 100), ("https://x", 60, 0)],
)
async def test_create_job_validation(service, url, minutes, books):
    with pytest.raises(ValidationError):
        await service.create_job(url, max_time_minutes=minutes, max_books=books)


@pytest.mark.asyncio
async def test_pause_resume_preserves_progress(service, clock):
    """Test pausing and resuming keeps started_at and counters."""
    job = await service.create_job("https://example.org/catalog")
    started = await service.start(job.id)
    started_at = started.started_at
    await service.record_progress(job.id, books_extracted=3, books_queued=10)

    clock.advance(60)
    await service.pause(job.id)
    clock.advance(60)
    resumed = await service.resume(job.id)

    assert resumed.status == "running"
    assert resumed.started_at == started_at
    assert resumed.books_extracted == 3
    assert resumed.books_queued == 10
    assert resumed.completed_at is None


@pytest.mark.asyncio
async def test_terminal_transition_sets_completed_at(service, clock):
    job = await service.create_job("https://example.org/catalog")
    await service.start(job.id)
    clock.advance(30)

    stopped = await service.stop(job.id)

    assert stopped.status == "stopped"
    assert stopped.completed_at == clock.now


@pytest.mark.asyncio
async def test_transition_logs_status_change(service):
    job = await service.create_job("https://example.org/catalog")
    await service.start(job.id)

    logs = await service.get_logs(job.id)

    assert logs[0].message == "Job status changed from pending to running"
    assert logs[0].details == {"previous_status": "pending", "new_status": "running"}


@pytest.mark.asyncio
async def test_fail_records_error(service):
    job = await service.create_job("https://example.org/catalog")
    await service.start(job.id)

    failed = await service.fail(job.id, "source went away")

    assert failed.status == "failed"
    logs = await service.get_logs(job.id)
    assert logs[0].message == "source went away"
    assert logs[0].level == "error"


@pytest.mark.asyncio
async def test_unknown_job(service):
    with pytest.raises(NotFoundError):
        await service.start(uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [JobStatus.PENDING, JobStatus.RUNNING, JobStatus.PAUSED])
async def test_delete_refused_for_active_jobs(service, extraction_store, status):
    job = await job_in_status(service, status)

    with pytest.raises(ValidationError):
        await service.delete_job(job.id)
    assert job.id in extraction_store.jobs


@pytest.mark.asyncio
async def test_delete_cascades(service, extraction_store):
    job = await service.create_job("https://example.org/catalog")
    other = await service.create_job("https://example.org/other")
    await service.start(job.id)
    await service.add_extracted_book(job.id, ExtractedBook(job_id=job.id, title="Leviathan"))
    await service.complete(job.id)

    await service.delete_job(job.id)

    assert job.id not in extraction_store.jobs
    assert all(log.job_id != job.id for log in extraction_store.logs)
    assert extraction_store.books == []
    assert other.id in extraction_store.jobs


@pytest.mark.asyncio
async def test_add_extracted_book_counts(service):
    job = await service.create_job("https://example.org/catalog")
    await service.start(job.id)

    await service.add_extracted_book(job.id, ExtractedBook(job_id=job.id, title="Utopia"))

    assert (await service.get_job(job.id)).books_extracted == 1
    assert [b.title for b in await service.get_extracted_books(job.id)] == ["Utopia"]


@pytest.mark.asyncio
async def test_progress_estimate(service, clock):
    job = await service.create_job("https://example.org/catalog")
    assert (await service.get_progress(job.id)).elapsed_seconds == 0.0

    await service.start(job.id)
    await service.record_progress(job.id, books_extracted=2, books_queued=6)
    clock.advance(100)

    progress = await service.get_progress(job.id)

    assert progress.elapsed_seconds == 100.0
    assert progress.estimated_remaining_seconds == 200.0
    assert progress.to_dict()["job_id"] == str(job.id)


@pytest.mark.asyncio
async def test_should_stop_job(service, clock):
    job = await service.create_job("https://example.org/catalog", max_time_minutes=1, max_books=2)
    job = await service.start(job.id)

    assert should_stop_job(job, clock.now) is False
    assert should_stop_job(job, clock.now + timedelta(minutes=1)) is True
    job.books_extracted = 2
    assert should_stop_job(job, clock.now) is True


@pytest.mark.asyncio
async def test_cancellation_token_follows_transitions(service):
    job = await service.create_job("https://example.org/catalog")
    token = service.cancellation_token(job.id)
    await service.start(job.id)

    await service.pause(job.id)
    assert token.is_paused is True

    await service.resume(job.id)
    assert await token.checkpoint() is True

    await service.stop(job.id)
    assert await token.checkpoint() is False


@pytest.mark.asyncio
async def test_checkpoint_blocks_while_paused():
    token = ExtractionCancellationToken()
    token.request_pause()

    waiter = asyncio.create_task(token.checkpoint())
    await asyncio.sleep(0)
    assert not waiter.done()

    token.request_resume()
    assert await waiter is True
