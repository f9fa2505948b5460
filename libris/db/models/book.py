"""Book model for catalog records ingested from external sources."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from libris.db.types import UTCDateTime
from libris.utils.dates import utc_now


class Book(SQLModel, table=True):
    """Book model representing one catalog entry in the library.

    A book is identified externally by (source, source_identifier); inserting
    the same pair twice is reported as a duplicate rather than an error.
    """

    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("source", "source_identifier", name="uq_books_source_identifier"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
    )
    title: str = Field(nullable=False, index=True)
    author: str = Field(nullable=False, index=True)
    published_year: int | None = Field(default=None, index=True)
    language: str | None = Field(default=None, max_length=3)
    description: str | None = Field(default=None)

    # Provenance
    source: str = Field(nullable=False, index=True)
    source_identifier: str = Field(nullable=False)
    pdf_url: str | None = Field(default=None)
    cover_url: str | None = Field(default=None)

    # Classification
    genres: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )
    subgenre: str | None = Field(default=None)
    book_metadata: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
    )

    # Timestamps
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
