"""Source configuration and statistics models."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class SourceConfiguration(SQLModel, table=True):
    """Admin-editable settings for one catalog source."""

    __tablename__ = "source_configurations"

    source_id: str = Field(primary_key=True, nullable=False)
    display_name: str = Field(nullable=False)
    description: str | None = Field(default=None)
    website: str | None = Field(default=None)
    supported_formats: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )

    enabled: bool = Field(default=False, nullable=False, index=True)
    priority: int = Field(default=100, nullable=False)
    rate_limit_ms: int = Field(default=1500, nullable=False)
    batch_size: int = Field(default=30, nullable=False)
    source_specific_config: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )


class SourceStatistics(SQLModel, table=True):
    """Running totals for one catalog source."""

    __tablename__ = "source_statistics"

    source_id: str = Field(primary_key=True, nullable=False)
    total_books: int = Field(default=0, nullable=False)
    last_fetch_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTCDateTime,
        nullable=False,
    )
