"""IngestionState model holding the per-source resumption cursor."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class IngestionState(SQLModel, table=True):
    """Persisted resume point and pause flag for one source.

    last_page is the next page to fetch. last_offset counts records of that
    page already handled by a run that stopped part-way through it.
    """

    __tablename__ = "ingestion_state"

    source_id: str = Field(primary_key=True, nullable=False)
    last_page: int = Field(default=1, nullable=False)
    last_cursor: str | None = Field(default=None)
    last_offset: int = Field(default=0, nullable=False)
    total_ingested: int = Field(default=0, nullable=False)

    last_run_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    last_run_status: str = Field(default="idle", nullable=False)
    last_run_added: int = Field(default=0, nullable=False)
    last_run_skipped: int = Field(default=0, nullable=False)
    last_run_failed: int = Field(default=0, nullable=False)

    is_paused: bool = Field(default=False, nullable=False)
    paused_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    paused_by: str | None = Field(default=None)

    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )
