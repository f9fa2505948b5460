"""FilterStat model recording one filter decision per evaluated candidate."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class FilterResult(str, Enum):
    PASSED = "passed"
    FILTERED_GENRE = "filtered_genre"
    FILTERED_AUTHOR = "filtered_author"


class FilterStat(SQLModel, table=True):
    """Snapshot of a candidate book and the filter outcome for it."""

    __tablename__ = "ingestion_filter_stats"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    job_id: str = Field(nullable=False, index=True)
    book_identifier: str = Field(nullable=False)
    book_title: str | None = Field(default=None)
    book_author: str | None = Field(default=None)
    book_genres: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    filter_result: str = Field(nullable=False, index=True)
    filter_reason: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )
