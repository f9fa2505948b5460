"""Database models for Libris."""

from libris.db.models.book import Book
from libris.db.models.extraction import (
    ExtractedBook,
    ExtractedBookStatus,
    ExtractionJob,
    ExtractionLog,
    JobStatus,
    LogLevel,
)
from libris.db.models.filter_stat import FilterResult, FilterStat
from libris.db.models.ingestion_log import IngestionLog, JobType, RunStatus
from libris.db.models.ingestion_state import IngestionState
from libris.db.models.source_configuration import SourceConfiguration, SourceStatistics

__all__ = [
    "Book",
    "ExtractedBook",
    "ExtractedBookStatus",
    "ExtractionJob",
    "ExtractionLog",
    "FilterResult",
    "FilterStat",
    "IngestionLog",
    "IngestionState",
    "JobStatus",
    "JobType",
    "LogLevel",
    "RunStatus",
    "SourceConfiguration",
    "SourceStatistics",
]
