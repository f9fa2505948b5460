"""Pydantic schemas for extraction job endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from libris.config import settings


class ExtractionJobCreate(BaseModel):
    source_url: str = Field(..., min_length=1, max_length=2048)
    created_by: str | None = Field(None, max_length=100)
    max_time_minutes: int = Field(
        default_factory=lambda: settings.extraction_max_time_minutes, ge=1, le=24 * 60
    )
    max_books: int = Field(
        default_factory=lambda: settings.extraction_max_books, ge=1, le=10_000
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{"source_url": "https://example.org/collection/classics", "max_books": 50}]
        }
    )


class ExtractionJobItem(BaseModel):
    id: UUID
    source_url: str
    created_by: str | None
    max_time_minutes: int
    max_books: int
    status: str
    books_extracted: int
    books_queued: int
    error_count: int
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExtractionProgressResponse(BaseModel):
    job_id: UUID
    status: str
    books_extracted: int
    books_queued: int
    error_count: int
    elapsed_seconds: float
    estimated_remaining_seconds: float | None


class ExtractionLogItem(BaseModel):
    id: UUID
    level: str
    message: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExtractedBookItem(BaseModel):
    id: UUID
    title: str
    author: str | None
    description: str | None
    synopsis: str | None
    cover_url: str | None
    pdf_url: str | None
    source_pdf_url: str | None
    status: str
    error_message: str | None
    extracted_at: datetime
    published_at: datetime | None

    model_config = ConfigDict(from_attributes=True)
