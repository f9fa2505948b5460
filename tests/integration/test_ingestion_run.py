"""End-to-end ingestion runs against the SQL repositories."""

import pytest
from sqlalchemy import func, select

from libris.config import Settings
from libris.core.ingestion.database_writer import DatabaseWriter
from libris.core.ingestion.ingestion_filter import FilterConfig, IngestionFilter
from libris.core.ingestion.orchestrator import IngestionOptions, IngestionOrchestrator
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.source_registry import SourceRegistry
from libris.core.ingestion.state_manager import IngestionStateManager
from libris.db.models import Book
from libris.db.repositories import (
    BookRepository,
    FilterStatRepository,
    IngestionLogRepository,
    IngestionStateRepository,
    SourceConfigurationRepository,
)

from tests.fakes import FakeClock, FakeFetcher, RecordingSleep, make_raw_book, source_config

pytestmark = pytest.mark.integration


def build_orchestrator(session, fetchers: list[FakeFetcher]) -> IngestionOrchestrator:
    clock = FakeClock()
    configuration_service = SourceConfigurationService(SourceConfigurationRepository(session))
    registry = SourceRegistry(configuration_service)
    for fetcher in fetchers:
        registry.register(fetcher)
    return IngestionOrchestrator(
        registry=registry,
        state_manager=IngestionStateManager(IngestionStateRepository(session), clock=clock),
        writer=DatabaseWriter(BookRepository(session), IngestionLogRepository(session)),
        ingestion_filter=IngestionFilter(FilterConfig(), FilterStatRepository(session)),
        settings=Settings(_env_file=None),
        configuration_service=configuration_service,
        clock=clock,
        sleep=RecordingSleep(),
    )


async def count_books(session) -> int:
    result = await session.execute(select(func.count()).select_from(Book))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_repeated_runs_resume_without_duplicates(session):
    """Test a budget-limited run followed by a second run picks up where it stopped."""
    config_repo = SourceConfigurationRepository(session)
    await config_repo.create(source_config("alpha", priority=1))
    await config_repo.create(source_config("beta", priority=2))

    def fetchers() -> list[FakeFetcher]:
        return [
            FakeFetcher(
                "alpha",
                pages={
                    1: [make_raw_book("a1"), make_raw_book("a2")],
                    2: [make_raw_book("a3"), make_raw_book("a4")],
                },
            ),
            FakeFetcher("beta", pages={1: [make_raw_book("b1")]}),
        ]

    first = await build_orchestrator(session, fetchers()).run_ingestion_job(
        IngestionOptions(max_books=3)
    )

    assert first.added == 3
    assert await count_books(session) == 3
    state = await IngestionStateRepository(session).get("alpha")
    assert (state.last_page, state.last_offset) == (2, 1)

    second = await build_orchestrator(session, fetchers()).run_ingestion_job(IngestionOptions())

    assert second.status == "completed"
    assert (second.added, second.skipped) == (2, 0)
    assert await count_books(session) == 5
    books = BookRepository(session)
    assert await books.count_by_source("alpha") == 4
    assert await books.count_by_source("beta") == 1

    logs = await IngestionLogRepository(session).list_recent(5)
    assert len(logs) == 2
    assert {log.books_added for log in logs} == {3, 2}
    stats = await config_repo.get_statistics("alpha")
    assert stats.total_books == 4


@pytest.mark.asyncio
async def test_dry_run_leaves_database_untouched(session):
    await SourceConfigurationRepository(session).create(source_config("alpha"))
    await BookRepository(session).insert(
        Book(title="Known", author="Someone", source="alpha", source_identifier="a1")
    )
    fetcher = FakeFetcher("alpha", pages={1: [make_raw_book("a1"), make_raw_book("a2")]})

    result = await build_orchestrator(session, [fetcher]).run_ingestion_job(
        IngestionOptions(dry_run=True)
    )

    assert result.dry_run is True
    assert (result.added, result.skipped) == (1, 1)
    assert await count_books(session) == 1
    assert await IngestionStateRepository(session).get("alpha") is None
    assert await IngestionLogRepository(session).list_recent() == []
