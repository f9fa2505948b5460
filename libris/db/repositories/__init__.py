"""Database repositories for Libris."""

from libris.db.repositories.base_repository import BaseRepository
from libris.db.repositories.book_repository import BookRepository
from libris.db.repositories.extraction_repository import ExtractionRepository
from libris.db.repositories.filter_stat_repository import FilterStatRepository
from libris.db.repositories.ingestion_log_repository import IngestionLogRepository
from libris.db.repositories.ingestion_state_repository import IngestionStateRepository
from libris.db.repositories.source_configuration_repository import (
    SourceConfigurationRepository,
)

__all__ = [
    "BaseRepository",
    "BookRepository",
    "ExtractionRepository",
    "FilterStatRepository",
    "IngestionLogRepository",
    "IngestionStateRepository",
    "SourceConfigurationRepository",
]
