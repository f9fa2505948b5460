"""Extraction job models: the job itself, its extracted books and its logs."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class JobStatus(str, Enum):
    """Lifecycle states of an extraction job."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class ExtractedBookStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PUBLISHED = "published"


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ExtractionJob(SQLModel, table=True):
    """Admin-triggered bulk extraction from a single source URL."""

    __tablename__ = "extraction_jobs"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    source_url: str = Field(nullable=False)
    created_by: str | None = Field(default=None, index=True)
    max_time_minutes: int = Field(default=60, nullable=False)
    max_books: int = Field(default=100, nullable=False)
    status: str = Field(default=JobStatus.PENDING.value, nullable=False, index=True)
    books_extracted: int = Field(default=0, nullable=False)
    books_queued: int = Field(default=0, nullable=False)
    error_count: int = Field(default=0, nullable=False)
    started_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    completed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
        index=True,
    )


class ExtractedBook(SQLModel, table=True):
    """A book produced by an extraction job."""

    __tablename__ = "extracted_books"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    job_id: UUID = Field(
        foreign_key="extraction_jobs.id",
        nullable=False,
        index=True,
    )
    title: str = Field(nullable=False)
    author: str | None = Field(default=None)
    description: str | None = Field(default=None)
    synopsis: str | None = Field(default=None)
    cover_url: str | None = Field(default=None)
    pdf_url: str | None = Field(default=None)
    source_pdf_url: str | None = Field(default=None)
    status: str = Field(default=ExtractedBookStatus.PROCESSING.value, nullable=False)
    error_message: str | None = Field(default=None)
    extracted_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )
    published_at: datetime | None = Field(default=None, sa_type=UTCDateTime)


class ExtractionLog(SQLModel, table=True):
    """Append-only log line attached to an extraction job."""

    __tablename__ = "extraction_logs"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    job_id: UUID = Field(
        foreign_key="extraction_jobs.id",
        nullable=False,
        index=True,
    )
    level: str = Field(default=LogLevel.INFO.value, nullable=False)
    message: str = Field(nullable=False)
    details: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
        index=True,
    )
