"""Persistence ports the ingestion and extraction components depend on.

Components receive implementations at construction time: the SQL
repositories in ``libris.db.repositories`` in production, in-memory stores in
tests.
"""

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from libris.db.models import (
    Book,
    ExtractedBook,
    ExtractionJob,
    ExtractionLog,
    FilterStat,
    IngestionLog,
    IngestionState,
    SourceConfiguration,
    SourceStatistics,
)


class BookStore(Protocol):
    async def insert(self, book: Book) -> Book:
        """Insert a book. Raises DuplicateError on (source, source_identifier) conflict."""
        ...

    async def exists(self, source: str, source_identifier: str) -> bool: ...


class JobLogStore(Protocol):
    async def create(self, log: IngestionLog) -> IngestionLog: ...

    async def save(self, log: IngestionLog) -> IngestionLog: ...

    async def get(self, log_id: UUID) -> IngestionLog | None: ...

    async def list_recent(self, limit: int = 10) -> list[IngestionLog]: ...


class IngestionStateStore(Protocol):
    async def get(self, source_id: str) -> IngestionState | None: ...

    async def save(self, state: IngestionState) -> IngestionState: ...

    async def list_all(self) -> list[IngestionState]: ...


class SourceConfigurationStore(Protocol):
    async def get(self, source_id: str) -> SourceConfiguration | None: ...

    async def list_all(self) -> list[SourceConfiguration]: ...

    async def list_enabled(self) -> list[SourceConfiguration]:
        """Enabled configurations ordered by (priority, source_id)."""
        ...

    async def create(self, config: SourceConfiguration) -> SourceConfiguration:
        """Insert a configuration. Raises DuplicateError if source_id exists."""
        ...

    async def save(self, config: SourceConfiguration) -> SourceConfiguration: ...

    async def delete(self, source_id: str) -> bool: ...

    async def get_statistics(self, source_id: str) -> SourceStatistics | None: ...

    async def save_statistics(self, stats: SourceStatistics) -> SourceStatistics: ...


class FilterStatStore(Protocol):
    async def add(self, stat: FilterStat) -> FilterStat: ...

    async def list_for_jobs(self, job_ids: Sequence[str]) -> list[FilterStat]: ...


class ExtractionStore(Protocol):
    async def create_job(self, job: ExtractionJob) -> ExtractionJob: ...

    async def get_job(self, job_id: UUID) -> ExtractionJob | None: ...

    async def save_job(self, job: ExtractionJob) -> ExtractionJob: ...

    async def list_jobs(self, created_by: str | None = None) -> list[ExtractionJob]:
        """Jobs newest first, optionally restricted to one creator."""
        ...

    async def delete_job(self, job_id: UUID) -> None:
        """Delete logs, then extracted books, then the job row."""
        ...

    async def add_log(self, log: ExtractionLog) -> ExtractionLog: ...

    async def list_logs(self, job_id: UUID, limit: int = 100) -> list[ExtractionLog]: ...

    async def add_book(self, book: ExtractedBook) -> ExtractedBook: ...

    async def list_books(self, job_id: UUID) -> list[ExtractedBook]: ...


class ObjectStorage(Protocol):
    """Bucket storage addressed by object path; objects are publicly readable."""

    async def upload(self, path: str, content: bytes, content_type: str = "application/pdf") -> str:
        """Store an object and return its public URL. An existing object is not overwritten."""
        ...

    def public_url(self, path: str) -> str: ...

    async def close(self) -> None: ...
