"""Extraction job lifecycle: admin-operable state machine with audit logs."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from libris.core.ports import ExtractionStore
from libris.db.models.extraction import (
    ExtractedBook,
    ExtractionJob,
    ExtractionLog,
    JobStatus,
    LogLevel,
)
from libris.utils.dates import utc_now
from libris.utils.exceptions import InvalidTransitionError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TIME_MINUTES = 60
DEFAULT_MAX_BOOKS = 100

VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.PAUSED, JobStatus.COMPLETED, JobStatus.STOPPED, JobStatus.FAILED}
    ),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING, JobStatus.STOPPED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.STOPPED: frozenset(),
}

DELETABLE_STATUSES = frozenset({JobStatus.FAILED, JobStatus.STOPPED, JobStatus.COMPLETED})
TERMINAL_STATUSES = DELETABLE_STATUSES


def is_valid_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    return JobStatus(target) in VALID_TRANSITIONS[JobStatus(current)]


def has_reached_time_limit(job: ExtractionJob, now: datetime) -> bool:
    if job.started_at is None:
        return False
    return (now - job.started_at).total_seconds() >= job.max_time_minutes * 60


def has_reached_book_limit(job: ExtractionJob) -> bool:
    return job.books_extracted >= job.max_books


def should_stop_job(job: ExtractionJob, now: datetime) -> bool:
    """True when a running job has hit either of its limits."""
    return has_reached_time_limit(job, now) or has_reached_book_limit(job)


@dataclass
class JobProgress:
    job_id: UUID
    status: str
    books_extracted: int
    books_queued: int
    error_count: int
    elapsed_seconds: float
    estimated_remaining_seconds: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "status": self.status,
            "books_extracted": self.books_extracted,
            "books_queued": self.books_queued,
            "error_count": self.error_count,
            "elapsed_seconds": self.elapsed_seconds,
            "estimated_remaining_seconds": self.estimated_remaining_seconds,
        }


class ExtractionCancellationToken:
    """
    Cooperative pause/stop signal for an extraction worker.

    The worker calls ``checkpoint()`` between pages and between books. A
    requested pause blocks there until resumed; a requested stop makes
    ``checkpoint()`` return False so the worker can wind down cleanly.
    """

    def __init__(self) -> None:
        self._running = asyncio.Event()
        self._running.set()
        self._stopped = False

    def request_pause(self) -> None:
        self._running.clear()

    def request_resume(self) -> None:
        self._running.set()

    def request_stop(self) -> None:
        self._stopped = True
        self._running.set()

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    async def checkpoint(self) -> bool:
        """Wait while paused. Returns False once a stop was requested."""
        await self._running.wait()
        return not self._stopped


class ExtractionJobService:
    """
    Creates extraction jobs and moves them through their lifecycle.

    Every transition is validated against VALID_TRANSITIONS before anything
    is written, and appends an ExtractionLog row recording the previous and
    new status. Pausing and resuming never touch started_at or the counters;
    extracted books are never rolled back.

    Args:
        store: Extraction persistence port
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: ExtractionStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock
        self._tokens: dict[UUID, ExtractionCancellationToken] = {}

    async def create_job(
        self,
        source_url: str,
        created_by: str | None = None,
        max_time_minutes: int = DEFAULT_MAX_TIME_MINUTES,
        max_books: int = DEFAULT_MAX_BOOKS,
    ) -> ExtractionJob:
        """
        Create a pending extraction job.

        Raises:
            ValidationError: If the URL is empty or a limit is not positive
        """
        if not source_url or not source_url.strip():
            raise ValidationError("source_url is required")
        if max_time_minutes < 1 or max_books < 1:
            raise ValidationError("max_time_minutes and max_books must be positive")

        job = await self.store.create_job(
            ExtractionJob(
                source_url=source_url.strip(),
                created_by=created_by,
                max_time_minutes=max_time_minutes,
                max_books=max_books,
                status=JobStatus.PENDING.value,
                created_at=self.clock(),
            )
        )
        await self._log(job.id, LogLevel.INFO, "Extraction job created", {"source_url": job.source_url})
        logger.info("extraction_job_created", job_id=str(job.id), source_url=job.source_url)
        return job

    async def get_job(self, job_id: UUID) -> ExtractionJob:
        job = await self.store.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Extraction job not found: {job_id}")
        return job

    async def list_jobs(self, created_by: str | None = None) -> list[ExtractionJob]:
        return await self.store.list_jobs(created_by)

    async def transition(self, job_id: UUID, target: JobStatus) -> ExtractionJob:
        """
        Move a job to a new status.

        Raises:
            NotFoundError: If the job does not exist
            InvalidTransitionError: If the move is not in VALID_TRANSITIONS;
                the job is left unchanged
        """
        job = await self.get_job(job_id)
        previous = JobStatus(job.status)
        if not is_valid_transition(previous, target):
            logger.warning(
                "extraction_transition_rejected",
                job_id=str(job_id),
                current=previous.value,
                target=target.value,
            )
            raise InvalidTransitionError(previous.value, target.value)

        now = self.clock()
        job.status = target.value
        if target == JobStatus.RUNNING and previous == JobStatus.PENDING:
            job.started_at = now
        if target in TERMINAL_STATUSES:
            job.completed_at = now

        saved = await self.store.save_job(job)
        await self._log(
            job_id,
            LogLevel.ERROR if target == JobStatus.FAILED else LogLevel.INFO,
            f"Job status changed from {previous.value} to {target.value}",
            {"previous_status": previous.value, "new_status": target.value},
        )
        self._signal(job_id, target)
        logger.info(
            "extraction_job_transition",
            job_id=str(job_id),
            previous=previous.value,
            new=target.value,
        )
        return saved

    async def start(self, job_id: UUID) -> ExtractionJob:
        return await self.transition(job_id, JobStatus.RUNNING)

    async def pause(self, job_id: UUID) -> ExtractionJob:
        return await self.transition(job_id, JobStatus.PAUSED)

    async def resume(self, job_id: UUID) -> ExtractionJob:
        return await self.transition(job_id, JobStatus.RUNNING)

    async def stop(self, job_id: UUID) -> ExtractionJob:
        return await self.transition(job_id, JobStatus.STOPPED)

    async def complete(self, job_id: UUID) -> ExtractionJob:
        return await self.transition(job_id, JobStatus.COMPLETED)

    async def fail(self, job_id: UUID, error: str | None = None) -> ExtractionJob:
        job = await self.transition(job_id, JobStatus.FAILED)
        if error:
            await self._log(job_id, LogLevel.ERROR, error)
        return job

    async def delete_job(self, job_id: UUID) -> None:
        """
        Delete a finished job with its logs and extracted books.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the job is pending, running or paused
        """
        job = await self.get_job(job_id)
        if JobStatus(job.status) not in DELETABLE_STATUSES:
            raise ValidationError(
                f"Cannot delete job in status {job.status}; stop it first"
            )
        await self.store.delete_job(job_id)
        self._tokens.pop(job_id, None)
        logger.info("extraction_job_deleted", job_id=str(job_id))

    async def record_progress(
        self,
        job_id: UUID,
        books_extracted: int = 0,
        books_queued: int = 0,
        errors: int = 0,
    ) -> ExtractionJob:
        """Add to a job's counters (deltas, never decreasing)."""
        job = await self.get_job(job_id)
        job.books_extracted += max(0, books_extracted)
        job.books_queued += max(0, books_queued)
        job.error_count += max(0, errors)
        return await self.store.save_job(job)

    async def add_extracted_book(self, job_id: UUID, book: ExtractedBook) -> ExtractedBook:
        book.job_id = job_id
        saved = await self.store.add_book(book)
        await self.record_progress(job_id, books_extracted=1)
        return saved

    async def get_progress(self, job_id: UUID) -> JobProgress:
        """
        Elapsed time and a linear estimate of time remaining.

        The estimate is (elapsed / extracted) * (queued - extracted), and is
        None until at least one book was extracted and more remain queued.
        """
        job = await self.get_job(job_id)
        if job.started_at is None:
            elapsed = 0.0
        else:
            end = job.completed_at or self.clock()
            elapsed = max(0.0, (end - job.started_at).total_seconds())

        remaining = None
        if job.books_extracted > 0 and job.books_queued > job.books_extracted:
            remaining = (elapsed / job.books_extracted) * (job.books_queued - job.books_extracted)

        return JobProgress(
            job_id=job.id,
            status=job.status,
            books_extracted=job.books_extracted,
            books_queued=job.books_queued,
            error_count=job.error_count,
            elapsed_seconds=elapsed,
            estimated_remaining_seconds=remaining,
        )

    async def get_logs(self, job_id: UUID, limit: int = 100) -> list[ExtractionLog]:
        await self.get_job(job_id)
        return await self.store.list_logs(job_id, limit)

    async def get_extracted_books(self, job_id: UUID) -> list[ExtractedBook]:
        await self.get_job(job_id)
        return await self.store.list_books(job_id)

    def cancellation_token(self, job_id: UUID) -> ExtractionCancellationToken:
        """Token a worker for this job should consult at page and book boundaries."""
        return self._tokens.setdefault(job_id, ExtractionCancellationToken())

    def _signal(self, job_id: UUID, target: JobStatus) -> None:
        token = self._tokens.get(job_id)
        if token is None:
            return
        if target == JobStatus.PAUSED:
            token.request_pause()
        elif target == JobStatus.RUNNING:
            token.request_resume()
        elif target in TERMINAL_STATUSES:
            token.request_stop()

    async def _log(
        self,
        job_id: UUID,
        level: LogLevel,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        await self.store.add_log(
            ExtractionLog(
                job_id=job_id,
                level=level.value,
                message=message,
                details=details,
                created_at=self.clock(),
            )
        )
