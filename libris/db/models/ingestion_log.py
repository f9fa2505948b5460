"""IngestionLog model for the audit trail of ingestion runs."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class JobType(str, Enum):
    """How an ingestion run was triggered."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class RunStatus(str, Enum):
    """Lifecycle of a single ingestion run."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class IngestionLog(SQLModel, table=True):
    """One append-only row per orchestrator invocation."""

    __tablename__ = "ingestion_logs"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    job_type: str = Field(default=JobType.SCHEDULED.value, nullable=False, index=True)
    status: str = Field(default=RunStatus.RUNNING.value, nullable=False, index=True)
    started_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
        index=True,
    )
    completed_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    books_processed: int = Field(default=0, nullable=False)
    books_added: int = Field(default=0, nullable=False)
    books_skipped: int = Field(default=0, nullable=False)
    books_failed: int = Field(default=0, nullable=False)
    error_details: list[dict[str, Any]] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
