"""Idempotent book inserts and ingestion run audit logging."""

from collections.abc import Sequence
from enum import Enum
from typing import Any
from uuid import UUID

import structlog

from libris.core.ingestion.metadata_mapper import NormalizedBook
from libris.core.ports import BookStore, JobLogStore
from libris.db.models.book import Book
from libris.db.models.ingestion_log import IngestionLog, JobType, RunStatus
from libris.utils.dates import utc_now
from libris.utils.exceptions import DuplicateError, ValidationError

logger = structlog.get_logger(__name__)


class InsertOutcome(str, Enum):
    ADDED = "added"
    DUPLICATE = "duplicate"


class DatabaseWriter:
    """
    Writes normalized books and run audit rows.

    Args:
        books: Book persistence port
        job_logs: Ingestion log persistence port
    """

    def __init__(self, books: BookStore, job_logs: JobLogStore):
        self.books = books
        self.job_logs = job_logs

    async def insert_book(self, book: NormalizedBook) -> InsertOutcome:
        """
        Insert a book unless its (source, source_identifier) already exists.

        Args:
            book: Normalized book

        Returns:
            InsertOutcome.ADDED or InsertOutcome.DUPLICATE

        Raises:
            ValidationError: If title, author or source_identifier is empty
            StorageError: If the store fails for another reason
        """
        self.validate(book)
        try:
            await self.books.insert(
                Book(
                    title=book.title,
                    author=book.author,
                    published_year=book.year,
                    language=book.language,
                    description=book.description,
                    source=book.source,
                    source_identifier=book.source_identifier,
                    pdf_url=book.pdf_url,
                    cover_url=book.cover_url,
                    genres=book.genres or None,
                    subgenre=book.subgenre,
                    book_metadata=dict(book.metadata) or None,
                )
            )
        except DuplicateError:
            logger.debug(
                "book_duplicate",
                source=book.source,
                source_identifier=book.source_identifier,
            )
            return InsertOutcome.DUPLICATE
        logger.info(
            "book_inserted",
            source=book.source,
            source_identifier=book.source_identifier,
            title=book.title,
        )
        return InsertOutcome.ADDED

    async def book_exists(self, book: NormalizedBook) -> bool:
        return await self.books.exists(book.source, book.source_identifier)

    @staticmethod
    def validate(book: NormalizedBook) -> None:
        missing = [
            name
            for name in ("title", "author", "source_identifier")
            if not (getattr(book, name) or "").strip()
        ]
        if missing:
            raise ValidationError(f"Book is missing required fields: {', '.join(missing)}")

    async def create_job_log(self, job_type: JobType | str = JobType.SCHEDULED) -> IngestionLog:
        """Open a running audit row for a new ingestion run."""
        log = await self.job_logs.create(
            IngestionLog(
                job_type=JobType(job_type).value,
                status=RunStatus.RUNNING.value,
                started_at=utc_now(),
            )
        )
        logger.info("job_log_created", job_id=str(log.id), job_type=log.job_type)
        return log

    async def log_job_result(
        self,
        job_id: UUID,
        status: RunStatus | str,
        processed: int,
        added: int,
        skipped: int,
        failed: int,
        errors: Sequence[dict[str, Any]] = (),
    ) -> IngestionLog | None:
        """
        Close a run's audit row with its final status and counts.

        Returns:
            The updated row, or None if no row with that id exists
        """
        log = await self.job_logs.get(job_id)
        if log is None:
            logger.warning("job_log_not_found", job_id=str(job_id))
            return None
        log.status = RunStatus(status).value
        log.completed_at = utc_now()
        log.books_processed = processed
        log.books_added = added
        log.books_skipped = skipped
        log.books_failed = failed
        log.error_details = list(errors) or None
        return await self.job_logs.save(log)

    async def get_recent_job_logs(self, limit: int = 10) -> list[IngestionLog]:
        return await self.job_logs.list_recent(limit)

    async def get_job_log(self, job_id: UUID) -> IngestionLog | None:
        return await self.job_logs.get(job_id)
