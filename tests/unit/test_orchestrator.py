"""Unit tests for the ingestion orchestrator."""

from uuid import UUID

import pytest

from libris.config import Settings
from libris.core.ingestion.database_writer import DatabaseWriter
from libris.core.ingestion.fetchers.base import FetchOptions
from libris.core.ingestion.ingestion_filter import FilterConfig, IngestionFilter
from libris.core.ingestion.metadata_mapper import MetadataMapper, NormalizedBook
from libris.core.ingestion.orchestrator import (
    IngestionOptions,
    IngestionOrchestrator,
    determine_status,
    run_ingestion_job,
)
from libris.core.ingestion.pdf_storage import PdfArchiver
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.source_registry import SourceRegistry
from libris.core.ingestion.state_manager import IngestionStateManager
from libris.db.models import Book, IngestionState
from libris.db.models.ingestion_log import JobType, RunStatus
from libris.utils.exceptions import ConfigurationError

from tests.fakes import (
    FakeClock,
    FakeFetcher,
    InMemoryBookStore,
    InMemoryFilterStatStore,
    InMemoryJobLogStore,
    InMemoryObjectStorage,
    InMemorySourceConfigurationStore,
    InMemoryStateStore,
    RecordingSleep,
    StubPdfDownloader,
    make_raw_book,
    source_config,
)


def books(prefix: str, *numbers: int, **extra) -> list[dict]:
    return [make_raw_book(f"{prefix}{n}", **extra) for n in numbers]


class Harness:
    """Wires an orchestrator to in-memory stores."""

    def __init__(
        self,
        sources: list[tuple[FakeFetcher, dict]],
        filter_config: FilterConfig | None = None,
        clock: FakeClock | None = None,
        **settings_overrides,
    ):
        self.clock = clock or FakeClock()
        self.sleep = RecordingSleep()
        self.settings = Settings(_env_file=None, **settings_overrides)
        self.book_store = InMemoryBookStore()
        self.job_logs = InMemoryJobLogStore()
        self.state_store = InMemoryStateStore()
        self.filter_stats = InMemoryFilterStatStore()
        self.config_store = InMemorySourceConfigurationStore(
            [source_config(fetcher.source_id, **config) for fetcher, config in sources]
        )
        self.configuration_service = SourceConfigurationService(self.config_store)
        self.registry = SourceRegistry(self.configuration_service)
        for fetcher, _ in sources:
            self.registry.register(fetcher)
        self.state_manager = IngestionStateManager(self.state_store, clock=self.clock)
        self.orchestrator = IngestionOrchestrator(
            registry=self.registry,
            state_manager=self.state_manager,
            writer=DatabaseWriter(self.book_store, self.job_logs),
            ingestion_filter=IngestionFilter(filter_config or FilterConfig(), self.filter_stats),
            settings=self.settings,
            configuration_service=self.configuration_service,
            clock=self.clock,
            sleep=self.sleep,
        )

    async def run(self, **options):
        return await self.orchestrator.run_ingestion_job(IngestionOptions(**options))

    def state(self, source_id: str) -> IngestionState:
        return self.state_store.states[source_id]

    def stored_ids(self) -> list[str]:
        return sorted(identifier for _, identifier in self.book_store.books)


@pytest.mark.parametrize(
    ("added", "failed", "source_failures", "expected"),
    [
        (3, 0, 0, RunStatus.COMPLETED),
        (0, 0, 0, RunStatus.COMPLETED),
        (3, 1, 0, RunStatus.PARTIAL),
        (3, 0, 1, RunStatus.PARTIAL),
        (0, 2, 0, RunStatus.FAILED),
        (0, 0, 1, RunStatus.FAILED),
    ],
)
def test_determine_status(added, failed, source_failures, expected):
    assert determine_status(added, failed, source_failures) == expected


@pytest.mark.asyncio
async def test_single_source_runs_to_exhaustion():
    fetcher = FakeFetcher("alpha", pages={1: books("a", 1, 2), 2: books("a", 3)})
    harness = Harness([(fetcher, {})])

    result = await harness.run()

    assert result.status == "completed"
    assert (result.processed, result.added, result.skipped, result.failed) == (3, 3, 0, 0)
    assert harness.stored_ids() == ["a1", "a2", "a3"]
    state = harness.state("alpha")
    assert (state.last_page, state.last_offset) == (3, 0)
    assert state.total_ingested == 3
    assert state.last_run_status == "completed"
    stored = harness.book_store.books[("alpha", "a1")]
    assert stored.pdf_url == "https://files.example.org/a1.pdf"


@pytest.mark.asyncio
async def test_resumes_from_persisted_page_and_cursor():
    """Test a cursor source picks up at the stored page 5 / cursor c5."""
    fetcher = FakeFetcher(
        "gamma",
        pages={"c5": books("g", 1, 2), "c6": books("g", 3)},
        cursor_based=True,
    )
    harness = Harness([(fetcher, {})])
    harness.state_store.states["gamma"] = IngestionState(
        source_id="gamma", last_page=5, last_cursor="c5"
    )

    result = await harness.run()

    first = fetcher.requests[0]
    assert (first.page, first.cursor) == (5, "c5")
    assert fetcher.requests[1].cursor == "c6"
    assert result.added == 3
    state = harness.state("gamma")
    assert state.last_page == 7
    assert state.last_cursor is None


@pytest.mark.asyncio
async def test_priority_order_and_budget_carry_over():
    """Test the book cap stops mid-page and the next run continues without re-ingesting."""
    source_a = FakeFetcher("a_source", pages={1: books("a", 1, 2), 2: books("a", 3, 4)})
    source_b = FakeFetcher("b_source", pages={1: books("b", 1, 2)})
    harness = Harness(
        [(source_b, {"priority": 20}), (source_a, {"priority": 10})],
    )

    first = await harness.run(max_books=3)

    assert first.processed == 3
    assert harness.stored_ids() == ["a1", "a2", "a3"]
    assert [s.source_id for s in first.sources] == ["a_source"]
    assert source_b.requests == []
    state_a = harness.state("a_source")
    assert (state_a.last_page, state_a.last_offset) == (2, 1)
    assert "b_source" not in harness.state_store.states

    second = await harness.run(max_books=3)

    assert second.skipped == 0
    assert second.added == 3
    assert harness.stored_ids() == ["a1", "a2", "a3", "a4", "b1", "b2"]
    assert source_a.requests[-2].page == 2
    assert [s.source_id for s in second.sources] == ["a_source", "b_source"]
    assert harness.state("a_source").last_page == 3
    assert harness.state("b_source").last_page == 2


@pytest.mark.asyncio
async def test_fetch_failure_makes_run_partial():
    failing = FakeFetcher("a_source", pages={1: books("a", 1, 2)}, failing={2})
    healthy = FakeFetcher("b_source", pages={1: books("b", 1)})
    harness = Harness([(failing, {"priority": 1}), (healthy, {"priority": 2})])

    result = await harness.run()

    assert result.status == "partial"
    assert result.added == 3
    assert harness.state("a_source").last_page == 2
    assert harness.state("a_source").last_run_status == "partial"
    assert harness.state("b_source").last_run_status == "completed"
    assert result.errors[0].identifier == "a_source:page:2"
    assert result.errors[0].source == "a_source"


@pytest.mark.asyncio
async def test_fetch_failure_with_nothing_added_fails_run():
    harness = Harness([(FakeFetcher("a_source", failing={1}), {})])

    result = await harness.run()

    assert result.status == "failed"
    assert harness.state("a_source").last_page == 1


@pytest.mark.asyncio
async def test_record_failures_are_counted_and_batch_continues():
    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1, 2, 3)}), {})])
    harness.book_store.fail_on.add("a2")

    result = await harness.run()

    assert result.status == "partial"
    assert (result.added, result.failed) == (2, 1)
    assert result.errors[0].identifier == "a2"
    assert harness.state("alpha").last_page == 2


@pytest.mark.asyncio
async def test_duplicates_are_skipped():
    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1, 1, 2)}), {})])

    result = await harness.run()

    assert (result.added, result.skipped) == (2, 1)
    assert result.status == "completed"


@pytest.mark.asyncio
async def test_paused_source_is_skipped():
    paused = FakeFetcher("a_source", pages={1: books("a", 1)})
    active = FakeFetcher("b_source", pages={1: books("b", 1)})
    harness = Harness([(paused, {"priority": 1}), (active, {"priority": 2})])
    await harness.state_manager.pause("a_source", paused_by="ops")

    result = await harness.run()

    assert paused.requests == []
    assert harness.stored_ids() == ["b1"]
    assert result.sources[0].status == "paused"
    assert result.status == "completed"
    assert harness.state("a_source").last_page == 1


@pytest.mark.asyncio
async def test_dry_run_writes_nothing():
    harness = Harness(
        [(FakeFetcher("alpha", pages={1: books("a", 1, 2, 3)}), {})],
        filter_config=FilterConfig(enable_author_filter=True, allowed_authors=["Test"]),
    )
    await harness.book_store.insert(
        Book(title="Existing", author="Someone", source="alpha", source_identifier="a1")
    )

    result = await harness.run(dry_run=True)

    assert result.dry_run is True
    assert (result.added, result.skipped) == (2, 1)
    assert harness.stored_ids() == ["a1"]
    assert harness.state_store.states == {}
    assert harness.job_logs.logs == {}
    assert harness.filter_stats.stats == []
    assert UUID(result.job_id)


@pytest.mark.asyncio
async def test_filtered_books_are_counted_and_recorded():
    pages = {
        1: [
            make_raw_book("h1", subject=["History"]),
            make_raw_book("p1", subject=["Poetry"]),
            make_raw_book("s1", subject=["Science"]),
        ]
    }
    harness = Harness(
        [(FakeFetcher("alpha", pages=pages), {})],
        filter_config=FilterConfig(enable_genre_filter=True, allowed_genres=["History", "Poetry"]),
    )

    result = await harness.run()

    assert harness.stored_ids() == ["h1", "p1"]
    assert (result.processed, result.added, result.filtered) == (3, 2, 1)
    assert result.status == "completed"
    recorded = {s.book_identifier: s.filter_result for s in harness.filter_stats.stats}
    assert recorded == {"h1": "passed", "p1": "passed", "s1": "filtered_genre"}
    assert {s.job_id for s in harness.filter_stats.stats} == {result.job_id}


@pytest.mark.asyncio
async def test_time_budget_stops_between_pages():
    clock = FakeClock()

    class SlowFetcher(FakeFetcher):
        async def fetch_books(self, options: FetchOptions):
            clock.advance(30)
            return await super().fetch_books(options)

    fetcher = SlowFetcher("alpha", pages={1: books("a", 1), 2: books("a", 2), 3: books("a", 3)})
    harness = Harness([(fetcher, {})], clock=clock)

    result = await harness.run(max_duration_seconds=50)

    assert harness.stored_ids() == ["a1"]
    assert result.sources[0].stop_reason == "time_limit"
    state = harness.state("alpha")
    assert (state.last_page, state.last_offset) == (2, 0)


@pytest.mark.asyncio
async def test_rate_limit_between_pages():
    harness = Harness(
        [(FakeFetcher("alpha", pages={1: books("a", 1), 2: books("a", 2)}), {"rate_limit_ms": 1500})]
    )

    await harness.run()

    assert harness.sleep.calls == [1.5, 1.5]


@pytest.mark.asyncio
async def test_start_page_override_and_batch_size():
    fetcher = FakeFetcher("alpha", pages={4: books("a", 1)})
    harness = Harness([(fetcher, {"batch_size": 12})])

    await harness.run(page=4)

    assert fetcher.requests[0].page == 4
    assert fetcher.requests[0].batch_size == 12

    await harness.run(page=4, batch_size=5)

    assert fetcher.requests[-1].batch_size == 5


@pytest.mark.asyncio
async def test_error_list_is_capped():
    harness = Harness(
        [(FakeFetcher("alpha", pages={1: books("a", 1, 2, 3, 4, 5)}), {})],
        ingest_error_cap=2,
    )
    harness.book_store.fail_on.update({"a1", "a2", "a3", "a4", "a5"})

    result = await harness.run()

    assert result.failed == 5
    assert len(result.errors) == 2
    assert result.status == "failed"


@pytest.mark.asyncio
async def test_job_log_and_statistics_written():
    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1, 2)}), {})])

    result = await harness.run(job_type=JobType.MANUAL)

    log = harness.job_logs.logs[UUID(result.job_id)]
    assert log.job_type == "manual"
    assert log.status == "completed"
    assert (log.books_processed, log.books_added) == (2, 2)
    assert log.completed_at is not None
    assert harness.config_store.statistics["alpha"].total_books == 2


@pytest.mark.asyncio
async def test_job_log_failure_does_not_fail_run():
    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1)}), {})])
    harness.job_logs.fail = True

    result = await harness.run()

    assert result.status == "completed"
    assert result.added == 1


@pytest.mark.asyncio
async def test_enricher_adds_genres():
    class GenreEnricher:
        async def enrich(self, book: NormalizedBook) -> NormalizedBook:
            book.genres = ["History"]
            return book

    harness = Harness(
        [(FakeFetcher("alpha", pages={1: books("a", 1)}), {})],
        filter_config=FilterConfig(enable_genre_filter=True, allowed_genres=["History"]),
    )
    harness.orchestrator.enricher = GenreEnricher()

    result = await harness.run()

    assert result.added == 1
    assert harness.book_store.books[("alpha", "a1")].genres == ["History"]


@pytest.mark.asyncio
async def test_no_enabled_sources():
    harness = Harness([(FakeFetcher("alpha"), {"enabled": False})])

    result = await harness.run()

    assert result.status == "completed"
    assert result.sources == []
    assert result.to_dict()["processed"] == 0


@pytest.mark.asyncio
async def test_module_runner_requires_database():
    with pytest.raises(ConfigurationError):
        await run_ingestion_job(settings=Settings(_env_file=None, database_url=None))



@pytest.mark.asyncio
async def test_non_mapping_records_fail_without_aborting_run():
    page = [make_raw_book("a1"), 42, ["identifier", "a9"], make_raw_book("a2")]
    harness = Harness([(FakeFetcher("alpha", pages={1: page}), {})])

    result = await harness.run()

    assert (result.processed, result.added, result.failed) == (4, 2, 2)
    assert result.status == "partial"
    assert [e.identifier for e in result.errors] == ["alpha:unknown", "alpha:unknown"]
    log = harness.job_logs.logs[UUID(result.job_id)]
    assert log.status == "partial"
    assert (log.books_added, log.books_failed) == (2, 2)
    assert (harness.state("alpha").last_page, harness.state("alpha").last_offset) == (2, 0)


@pytest.mark.asyncio
async def test_unexpected_mapper_error_counts_as_record_failure():
    class ExplodingMapper(MetadataMapper):
        def normalize(self, raw_book, source_id):
            if raw_book.get("identifier") == "a1":
                raise KeyError("creator")
            return super().normalize(raw_book, source_id)

    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1, 2)}), {})])
    harness.orchestrator.mapper = ExplodingMapper()

    result = await harness.run()

    assert (result.added, result.failed) == (1, 1)
    assert result.errors[0].identifier == "a1"
    assert harness.stored_ids() == ["a2"]


@pytest.mark.asyncio
async def test_unexpected_source_error_does_not_stop_other_sources():
    broken = FakeFetcher("a_source", pages={1: books("a", 1)})
    healthy = FakeFetcher("b_source", pages={1: books("b", 1)})
    harness = Harness([(broken, {"priority": 1}), (healthy, {"priority": 2})])
    original_get = harness.state_store.get

    async def get(source_id):
        if source_id == "a_source":
            raise RuntimeError("state row unreadable")
        return await original_get(source_id)

    harness.state_store.get = get

    result = await harness.run()

    assert result.status == "partial"
    assert harness.stored_ids() == ["b1"]
    assert result.errors[0].identifier == "a_source:run"
    assert harness.job_logs.logs[UUID(result.job_id)].status == "partial"


@pytest.mark.asyncio
async def test_job_log_closed_as_failed_when_run_aborts():
    harness = Harness([(FakeFetcher("alpha", pages={1: books("a", 1)}), {})])

    async def unavailable():
        raise RuntimeError("registry crashed")

    harness.registry.get_enabled_fetchers = unavailable

    with pytest.raises(RuntimeError):
        await harness.run()

    [log] = harness.job_logs.logs.values()
    assert log.status == "failed"
    assert log.completed_at is not None


@pytest.mark.asyncio
async def test_synthesized_identifier_gets_no_download_url():
    record = make_raw_book("ignored")
    del record["identifier"]
    harness = Harness([(FakeFetcher("alpha", pages={1: [record]}), {})])

    result = await harness.run()

    assert result.added == 1
    [stored] = harness.book_store.books.values()
    assert stored.source_identifier.startswith("alpha_unknown_")
    assert stored.pdf_url is None


class TestPdfArchiving:
    @staticmethod
    def archiving_harness(pages, files):
        harness = Harness([(FakeFetcher("alpha", pages=pages), {})])
        storage = InMemoryObjectStorage()
        downloader = StubPdfDownloader(files)
        harness.orchestrator.archiver = PdfArchiver(storage, downloader)
        return harness, storage, downloader

    @pytest.mark.asyncio
    async def test_stored_book_points_at_bucket_copy(self):
        harness, storage, _ = self.archiving_harness(
            {1: books("a", 1)}, {"https://files.example.org/a1.pdf": b"%PDF-1.4 a1"}
        )

        result = await harness.run()

        assert result.added == 1
        assert storage.objects == {"alpha/a1.pdf": b"%PDF-1.4 a1"}
        stored = harness.book_store.books[("alpha", "a1")]
        assert stored.pdf_url == "https://storage.example.org/books/alpha/a1.pdf"
        assert stored.book_metadata == {"source_pdf_url": "https://files.example.org/a1.pdf"}

    @pytest.mark.asyncio
    async def test_rejected_pdf_fails_only_that_record(self):
        harness, storage, _ = self.archiving_harness(
            {1: books("a", 1, 2)}, {"https://files.example.org/a2.pdf": b"%PDF-1.7"}
        )

        result = await harness.run()

        assert (result.added, result.failed) == (1, 1)
        assert result.errors[0].identifier == "a1"
        assert "not a PDF" in result.errors[0].error
        assert harness.stored_ids() == ["a2"]
        assert list(storage.objects) == ["alpha/a2.pdf"]

    @pytest.mark.asyncio
    async def test_existing_book_is_skipped_before_download(self):
        harness, _, downloader = self.archiving_harness({1: books("a", 1)}, {})
        await harness.book_store.insert(
            Book(title="Existing", author="Someone", source="alpha", source_identifier="a1")
        )

        result = await harness.run()

        assert (result.skipped, result.failed) == (1, 0)
        assert downloader.requested == []

    @pytest.mark.asyncio
    async def test_dry_run_does_not_archive(self):
        harness, storage, downloader = self.archiving_harness({1: books("a", 1)}, {})

        result = await harness.run(dry_run=True)

        assert result.added == 1
        assert downloader.requested == []
        assert storage.objects == {}
