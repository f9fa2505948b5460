"""Pydantic schemas for ingestion run endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class IngestionTriggerRequest(BaseModel):
    """Options for a manually triggered ingestion run."""

    batch_size: int | None = Field(None, ge=1, le=100, description="Records per page")
    max_books: int | None = Field(None, ge=1, le=500, description="Cap on processed records")
    max_duration_seconds: float | None = Field(
        None, gt=0, le=900, description="Wall-clock ceiling for the run"
    )
    dry_run: bool = Field(False, description="Evaluate without writing books, state or logs")
    start_page: int | None = Field(
        None, ge=1, description="Fetch from this page for every source, ignoring saved cursors"
    )
    reset: bool = Field(False, description="Reset every enabled source to page 1 first")

    model_config = {
        "json_schema_extra": {
            "examples": [{"batch_size": 30, "max_books": 100, "dry_run": False}]
        }
    }


class IngestionErrorItem(BaseModel):
    identifier: str
    error: str
    source: str | None = None
    timestamp: datetime


class SourceRunItem(BaseModel):
    source_id: str
    status: str
    start_page: int
    next_page: int
    next_cursor: str | None
    next_offset: int
    pages_fetched: int
    processed: int
    added: int
    skipped: int
    failed: int
    filtered: int
    stop_reason: str | None


class IngestionContinuation(BaseModel):
    next_page: int | None
    last_cursor: str | None


class IngestionRunResponse(BaseModel):
    """Result of one ingestion run."""

    job_id: str
    status: str
    started_at: datetime
    completed_at: datetime | None
    processed: int
    added: int
    skipped: int
    failed: int
    filtered: int
    dry_run: bool
    errors: list[IngestionErrorItem]
    sources: list[SourceRunItem]
    continuation: IngestionContinuation

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "job_id": "0d6c1bde-7f7e-4d9b-9d0b-3b2b8c1f4a11",
                    "status": "completed",
                    "started_at": "2026-01-10T04:00:00Z",
                    "completed_at": "2026-01-10T04:00:41Z",
                    "processed": 30,
                    "added": 27,
                    "skipped": 3,
                    "failed": 0,
                    "filtered": 0,
                    "dry_run": False,
                    "errors": [],
                    "sources": [],
                    "continuation": {"next_page": 6, "last_cursor": None},
                }
            ]
        }
    }


class SourceStateItem(BaseModel):
    source_id: str
    last_page: int
    last_cursor: str | None
    last_offset: int
    total_ingested: int
    last_run_at: datetime | None
    last_run_status: str
    last_run_added: int
    last_run_skipped: int
    last_run_failed: int
    is_paused: bool
    paused_at: datetime | None
    paused_by: str | None

    model_config = {"from_attributes": True}


class PauseRequest(BaseModel):
    paused_by: str = Field("admin", min_length=1, max_length=100)


class JobLogItem(BaseModel):
    id: UUID
    job_type: str
    status: str
    started_at: datetime
    completed_at: datetime | None
    books_processed: int
    books_added: int
    books_skipped: int
    books_failed: int
    error_details: list[dict[str, Any]] | None

    model_config = {"from_attributes": True}


class CountItem(BaseModel):
    name: str
    count: int


class FilterStatisticsResponse(BaseModel):
    """Aggregated filter outcomes over recent runs."""

    total_evaluated: int
    passed: int
    filtered: int
    filtered_by_genre: int
    filtered_by_author: int
    jobs_analyzed: int
    top_filtered_genres: list[CountItem]
    top_filtered_authors: list[CountItem]
    approximate: bool
    note: str | None
    active_filters: dict[str, Any]
