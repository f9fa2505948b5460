"""FastAPI dependencies for route handlers."""

from collections.abc import AsyncGenerator, Awaitable, Callable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from libris.config import settings
from libris.core.extraction.jobs import ExtractionJobService
from libris.core.ingestion.orchestrator import (
    IngestionOptions,
    IngestionResult,
    run_ingestion_job,
)
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.state_manager import IngestionStateManager
from libris.db.repositories import (
    ExtractionRepository,
    FilterStatRepository,
    IngestionLogRepository,
    IngestionStateRepository,
    SourceConfigurationRepository,
)
from libris.db.session import get_session

IngestionRunner = Callable[[IngestionOptions], Awaitable[IngestionResult]]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide async database session to route handlers.

    This dependency function provides an async database session with automatic
    cleanup and transaction management (commit on success, rollback on error).
    Raises ConfigurationError (mapped to 503) when no database is configured.

    Yields:
        AsyncSession: Database session for the request
    """
    async for session in get_session():
        yield session


def get_configuration_service(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> SourceConfigurationService:
    return SourceConfigurationService(SourceConfigurationRepository(db))


def get_state_manager(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> IngestionStateManager:
    return IngestionStateManager(IngestionStateRepository(db))


def get_job_log_repository(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> IngestionLogRepository:
    return IngestionLogRepository(db)


def get_filter_stat_repository(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> FilterStatRepository:
    return FilterStatRepository(db)


def get_extraction_service(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> ExtractionJobService:
    return ExtractionJobService(ExtractionRepository(db))


def get_ingestion_runner() -> IngestionRunner:
    """Callable that executes one ingestion run with its own session."""

    async def runner(options: IngestionOptions) -> IngestionResult:
        return await run_ingestion_job(options, settings=settings)

    return runner
