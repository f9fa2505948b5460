"""Ingestion orchestrator: one bounded, resumable run over all enabled sources."""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

import structlog

from libris.config import Settings
from libris.config import settings as default_settings
from libris.core.ingestion.database_writer import DatabaseWriter, InsertOutcome
from libris.core.ingestion.fetchers.base import BookFetcher, FetchOptions, RawBook
from libris.core.ingestion.ingestion_filter import FilterConfig, IngestionFilter
from libris.core.ingestion.metadata_mapper import MetadataMapper, NormalizedBook
from libris.core.ingestion.pdf_storage import PdfArchiver, create_pdf_archiver
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.source_registry import SourceRegistry, create_default_registry
from libris.core.ingestion.state_manager import IngestionStateManager, SourceRunOutcome
from libris.db.models.ingestion_log import JobType, RunStatus
from libris.db.models.ingestion_state import IngestionState
from libris.db.models.source_configuration import SourceConfiguration
from libris.db.repositories import (
    BookRepository,
    FilterStatRepository,
    IngestionLogRepository,
    IngestionStateRepository,
    SourceConfigurationRepository,
)
from libris.db.session import get_session_factory
from libris.utils.dates import utc_now
from libris.utils.exceptions import ConfigurationError, LibrisError

logger = structlog.get_logger(__name__)

SOURCE_PAUSED = "paused"


class BookEnricher(Protocol):
    """Optional collaborator that adds metadata (e.g. genres) to a book."""

    async def enrich(self, book: NormalizedBook) -> NormalizedBook: ...


@dataclass
class IngestionOptions:
    """Caller overrides for one run. None means use configured defaults."""

    batch_size: int | None = None
    max_books: int | None = None
    max_duration_seconds: float | None = None
    dry_run: bool = False
    page: int | None = None
    job_type: JobType = JobType.SCHEDULED


@dataclass
class IngestionErrorEntry:
    identifier: str
    error: str
    source: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "error": self.error,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SourceRunSummary:
    """What one run did for one source."""

    source_id: str
    status: str = RunStatus.COMPLETED.value
    start_page: int = 1
    next_page: int = 1
    next_cursor: str | None = None
    next_offset: int = 0
    pages_fetched: int = 0
    processed: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0
    filtered: int = 0
    fetch_failed: bool = False
    stop_reason: str | None = None


@dataclass
class IngestionResult:
    job_id: str
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    processed: int = 0
    added: int = 0
    skipped: int = 0
    failed: int = 0
    filtered: int = 0
    next_page: int | None = None
    last_cursor: str | None = None
    dry_run: bool = False
    errors: list[IngestionErrorEntry] = field(default_factory=list)
    sources: list[SourceRunSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


def determine_status(added: int, failed: int, source_failures: int) -> RunStatus:
    """Failures with something added are partial; failures alone are failed."""
    if failed > 0 or source_failures > 0:
        return RunStatus.PARTIAL if added > 0 else RunStatus.FAILED
    return RunStatus.COMPLETED


class _RunBudget:
    def __init__(
        self,
        max_books: int,
        max_duration_seconds: float,
        clock: Callable[[], datetime],
    ):
        self.max_books = max_books
        self.max_duration_seconds = max_duration_seconds
        self.clock = clock
        self.started = clock()
        self.processed = 0

    def exhausted(self) -> str | None:
        if self.processed >= self.max_books:
            return "max_books"
        if (self.clock() - self.started).total_seconds() >= self.max_duration_seconds:
            return "time_limit"
        return None


class IngestionOrchestrator:
    """
    Runs one ingestion job: fetch, normalize, filter, persist, checkpoint.

    Sources run one after another in (priority, source_id) order. Each source
    resumes from its persisted page, cursor and in-page offset, and its new
    resume point is written once, when the source's segment ends. The run stops
    at the book budget or the time ceiling; both are checked only between
    pages and between records, so no record is left half processed.

    Failure handling is layered:
    - a record that fails for any reason (malformed, PDF rejected, insert
      error) is counted as failed and the batch continues; duplicates are
      counted as skipped
    - a page that cannot be fetched ends that source's segment and the run
      moves on to the next source
    - job log bookkeeping failures are logged and never fail the run; the job
      log is closed even when the run is aborted, with status failed

    Args:
        registry: Source registry with fetchers registered
        state_manager: Per-source resume state
        writer: Book and job log writer
        ingestion_filter: Allow-list filter
        settings: Run defaults (batch size, budgets, error cap)
        configuration_service: Used to update per-source statistics
        mapper: Metadata mapper
        enricher: Optional metadata enrichment collaborator
        archiver: Optional PDF archiver; when set, PDFs are copied into bucket
            storage before insert and the stored book points at the copy
        clock: Returns the current UTC time
        sleep: Awaitable sleep used for rate limiting

    Example:
        ```python
        orchestrator = IngestionOrchestrator(registry, state_manager, writer, ingestion_filter, settings)
        result = await orchestrator.run_ingestion_job(IngestionOptions(max_books=50))
        print(result.status, result.added)
        ```
    """

    def __init__(
        self,
        registry: SourceRegistry,
        state_manager: IngestionStateManager,
        writer: DatabaseWriter,
        ingestion_filter: IngestionFilter,
        settings: Settings,
        configuration_service: SourceConfigurationService | None = None,
        mapper: MetadataMapper | None = None,
        enricher: BookEnricher | None = None,
        archiver: PdfArchiver | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.state_manager = state_manager
        self.writer = writer
        self.ingestion_filter = ingestion_filter
        self.settings = settings
        self.configuration_service = configuration_service
        self.mapper = mapper or MetadataMapper()
        self.enricher = enricher
        self.archiver = archiver
        self.clock = clock
        self.sleep = sleep

    async def run_ingestion_job(
        self, options: IngestionOptions | None = None
    ) -> IngestionResult:
        """
        Execute one ingestion run.

        Args:
            options: Per-run overrides

        Returns:
            IngestionResult with counts, status and continuation point
        """
        options = options or IngestionOptions()
        budget = _RunBudget(
            max_books=options.max_books or self.settings.ingest_max_books,
            max_duration_seconds=(
                options.max_duration_seconds or self.settings.ingest_max_duration_seconds
            ),
            clock=self.clock,
        )
        job_id = await self._open_job_log(options)
        result = IngestionResult(
            job_id=job_id,
            status=RunStatus.RUNNING.value,
            started_at=budget.started,
            dry_run=options.dry_run,
        )
        logger.info(
            "ingestion_started",
            job_id=job_id,
            dry_run=options.dry_run,
            max_books=budget.max_books,
            max_duration_seconds=budget.max_duration_seconds,
        )

        source_failures = 0
        try:
            sources = await self._enabled_sources(result)
            for fetcher, config in sources:
                reason = budget.exhausted()
                if reason:
                    logger.info("ingestion_budget_reached", job_id=job_id, reason=reason)
                    break

                try:
                    summary = await self._run_source(fetcher, config, options, budget, result)
                except Exception as e:
                    logger.exception(
                        "source_run_failed", job_id=job_id, source_id=config.source_id
                    )
                    self._add_error(result, f"{config.source_id}:run", str(e), config.source_id)
                    source_failures += 1
                    continue
                result.sources.append(summary)
                if summary.status == SOURCE_PAUSED:
                    continue
                if summary.fetch_failed:
                    source_failures += 1
                result.processed += summary.processed
                result.added += summary.added
                result.skipped += summary.skipped
                result.failed += summary.failed
                result.filtered += summary.filtered
                result.next_page = summary.next_page
                result.last_cursor = summary.next_cursor

            if not sources:
                logger.warning("no_enabled_sources", job_id=job_id)
            result.status = determine_status(result.added, result.failed, source_failures).value
        finally:
            if result.status == RunStatus.RUNNING.value:
                result.status = RunStatus.FAILED.value
                logger.error("ingestion_aborted", job_id=job_id, processed=result.processed)
            result.completed_at = self.clock()
            await self._close_job_log(result, options)

        logger.info(
            "ingestion_completed",
            job_id=job_id,
            status=result.status,
            processed=result.processed,
            added=result.added,
            skipped=result.skipped,
            failed=result.failed,
            filtered=result.filtered,
        )
        return result

    async def _run_source(
        self,
        fetcher: BookFetcher,
        config: SourceConfiguration,
        options: IngestionOptions,
        budget: _RunBudget,
        result: IngestionResult,
    ) -> SourceRunSummary:
        source_id = config.source_id
        summary = SourceRunSummary(source_id=source_id)

        try:
            state = await self._load_state(source_id, options.dry_run)
        except LibrisError as e:
            self._add_error(result, f"{source_id}:state", str(e), source_id)
            summary.status = RunStatus.FAILED.value
            summary.fetch_failed = True
            return summary

        if state.is_paused:
            logger.info("source_paused_skipped", source_id=source_id, paused_by=state.paused_by)
            summary.status = SOURCE_PAUSED
            summary.next_page = state.last_page
            summary.next_cursor = state.last_cursor
            summary.next_offset = state.last_offset
            return summary

        if options.page:
            page, cursor, offset = options.page, None, 0
        else:
            page, cursor, offset = state.last_page, state.last_cursor, state.last_offset
        summary.start_page = page
        batch_size = options.batch_size or config.batch_size or self.settings.ingest_batch_size

        logger.info(
            "source_started",
            job_id=result.job_id,
            source_id=source_id,
            page=page,
            cursor=cursor,
            offset=offset,
            batch_size=batch_size,
        )

        try:
            while True:
                if summary.pages_fetched and config.rate_limit_ms:
                    await self.sleep(config.rate_limit_ms / 1000)

                reason = budget.exhausted()
                if reason:
                    summary.stop_reason = reason
                    break

                fetch_options = FetchOptions(
                    batch_size=batch_size,
                    page=page,
                    cursor=cursor,
                    source_specific=dict(config.source_specific_config or {}),
                )
                try:
                    raw_books = await fetcher.fetch_books(fetch_options)
                except Exception as e:
                    logger.error(
                        "source_fetch_failed",
                        job_id=result.job_id,
                        source_id=source_id,
                        page=page,
                        error=str(e),
                    )
                    self._add_error(result, f"{source_id}:page:{page}", str(e), source_id)
                    summary.fetch_failed = True
                    summary.stop_reason = "fetch_failed"
                    break

                summary.pages_fetched += 1
                if not raw_books:
                    summary.stop_reason = "exhausted"
                    break

                handled = offset
                for raw_book in raw_books[offset:]:
                    if budget.exhausted():
                        break
                    await self._process_record(raw_book, fetcher, options, budget, summary, result)
                    handled += 1

                if handled < len(raw_books):
                    offset = handled
                    summary.stop_reason = budget.exhausted()
                    break

                page += 1
                cursor = fetcher.next_cursor
                offset = 0
        except Exception as e:
            logger.exception("source_segment_failed", job_id=result.job_id, source_id=source_id)
            self._add_error(result, f"{source_id}:page:{page}", str(e), source_id)
            summary.fetch_failed = True
            summary.stop_reason = "error"

        summary.next_page = page
        summary.next_cursor = cursor
        summary.next_offset = offset
        summary.status = determine_status(
            summary.added, summary.failed, 1 if summary.fetch_failed else 0
        ).value

        if not options.dry_run:
            await self._checkpoint(summary, result)
        logger.info(
            "source_finished",
            job_id=result.job_id,
            source_id=source_id,
            status=summary.status,
            stop_reason=summary.stop_reason,
            next_page=summary.next_page,
            next_offset=summary.next_offset,
            added=summary.added,
        )
        return summary

    async def _process_record(
        self,
        raw_book: RawBook,
        fetcher: BookFetcher,
        options: IngestionOptions,
        budget: _RunBudget,
        summary: SourceRunSummary,
        result: IngestionResult,
    ) -> None:
        budget.processed += 1
        summary.processed += 1
        source_id = summary.source_id

        try:
            outcome = await self._ingest_record(raw_book, fetcher, options, result, source_id)
        except Exception as e:
            identifier = self._raw_identifier(raw_book, source_id)
            summary.failed += 1
            self._add_error(result, identifier, str(e) or type(e).__name__, source_id)
            logger.warning(
                "book_processing_failed",
                source_id=source_id,
                identifier=identifier,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        if outcome is None:
            summary.filtered += 1
        elif outcome == InsertOutcome.DUPLICATE:
            summary.skipped += 1
        else:
            summary.added += 1

    async def _ingest_record(
        self,
        raw_book: RawBook,
        fetcher: BookFetcher,
        options: IngestionOptions,
        result: IngestionResult,
        source_id: str,
    ) -> InsertOutcome | None:
        """Normalize, filter and store one record. None means it was filtered out."""
        book = self.mapper.normalize(raw_book, source_id)

        if not book.pdf_url and not self.mapper.is_synthesized_identifier(
            book.source_identifier, source_id
        ):
            book.pdf_url = fetcher.get_download_url(book.source_identifier)

        if self.enricher is not None:
            try:
                book = await self.enricher.enrich(book)
            except Exception as e:
                logger.warning(
                    "book_enrichment_failed",
                    source_id=source_id,
                    source_identifier=book.source_identifier,
                    error=str(e),
                )

        decision = await self.ingestion_filter.evaluate(
            book, result.job_id, record=not options.dry_run
        )
        if not decision.passed:
            return None

        if options.dry_run:
            if await self.writer.book_exists(book):
                return InsertOutcome.DUPLICATE
            return InsertOutcome.ADDED

        if self.archiver is not None and book.pdf_url:
            if await self.writer.book_exists(book):
                return InsertOutcome.DUPLICATE
            source_pdf_url = book.pdf_url
            book.pdf_url = await self.archiver.archive(book)
            book.metadata["source_pdf_url"] = source_pdf_url

        return await self.writer.insert_book(book)

    async def _enabled_sources(
        self, result: IngestionResult
    ) -> list[tuple[BookFetcher, SourceConfiguration]]:
        try:
            return await self.registry.get_enabled_fetchers()
        except LibrisError as e:
            logger.error("enabled_sources_unavailable", job_id=result.job_id, error=str(e))
            self._add_error(result, "registry", str(e))
            return []

    async def _load_state(self, source_id: str, dry_run: bool) -> IngestionState:
        if dry_run:
            return await self.state_manager.peek_state(source_id)
        return await self.state_manager.get_state(source_id)

    async def _checkpoint(self, summary: SourceRunSummary, result: IngestionResult) -> None:
        outcome = SourceRunOutcome(
            status=summary.status,
            next_page=summary.next_page,
            next_cursor=summary.next_cursor,
            next_offset=summary.next_offset,
            added=summary.added,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        try:
            await self.state_manager.mark_run_completed(summary.source_id, outcome)
        except LibrisError as e:
            logger.error("state_checkpoint_failed", source_id=summary.source_id, error=str(e))
            self._add_error(result, f"{summary.source_id}:state", str(e), summary.source_id)

        if self.configuration_service is not None and summary.pages_fetched:
            try:
                await self.configuration_service.record_ingestion(summary.source_id, summary.added)
            except LibrisError as e:
                logger.warning(
                    "source_statistics_update_failed",
                    source_id=summary.source_id,
                    error=str(e),
                )

    async def _open_job_log(self, options: IngestionOptions) -> str:
        if options.dry_run:
            return str(uuid4())
        try:
            log = await self.writer.create_job_log(options.job_type)
        except LibrisError as e:
            logger.warning("job_log_create_failed", error=str(e))
            return str(uuid4())
        return str(log.id)

    async def _close_job_log(self, result: IngestionResult, options: IngestionOptions) -> None:
        if options.dry_run:
            return
        try:
            await self.writer.log_job_result(
                UUID(result.job_id),
                status=result.status,
                processed=result.processed,
                added=result.added,
                skipped=result.skipped,
                failed=result.failed,
                errors=[e.to_dict() for e in result.errors],
            )
        except LibrisError as e:
            logger.warning("job_log_update_failed", job_id=result.job_id, error=str(e))

    def _add_error(
        self,
        result: IngestionResult,
        identifier: str,
        message: str,
        source_id: str | None = None,
    ) -> None:
        if len(result.errors) < self.settings.ingest_error_cap:
            result.errors.append(
                IngestionErrorEntry(
                    identifier=identifier,
                    error=message,
                    source=source_id,
                    timestamp=self.clock(),
                )
            )

    @staticmethod
    def _raw_identifier(raw_book: RawBook, source_id: str) -> str:
        if not isinstance(raw_book, Mapping):
            return f"{source_id}:unknown"
        for key in ("identifier", "id", "key"):
            if raw_book.get(key):
                return str(raw_book[key])
        return f"{source_id}:unknown"


async def run_ingestion_job(
    options: IngestionOptions | None = None,
    settings: Settings | None = None,
    enricher: BookEnricher | None = None,
) -> IngestionResult:
    """
    Run one ingestion job against the configured database.

    Builds the repositories, the default source registry, the PDF archiver
    (when bucket storage is configured) and the orchestrator for a single
    invocation, then releases their HTTP clients.

    Args:
        options: Per-run overrides
        settings: Settings to use (defaults to the global settings)
        enricher: Optional metadata enrichment collaborator

    Returns:
        IngestionResult

    Raises:
        ConfigurationError: If no database is configured
    """
    settings = settings or default_settings
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL is not configured; refusing to run ingestion")

    async with get_session_factory()() as session:
        configuration_service = SourceConfigurationService(
            SourceConfigurationRepository(session)
        )
        registry = create_default_registry(configuration_service, settings)
        archiver = create_pdf_archiver(settings)
        orchestrator = IngestionOrchestrator(
            registry=registry,
            state_manager=IngestionStateManager(IngestionStateRepository(session)),
            writer=DatabaseWriter(BookRepository(session), IngestionLogRepository(session)),
            ingestion_filter=IngestionFilter(
                FilterConfig.from_settings(settings), FilterStatRepository(session)
            ),
            settings=settings,
            configuration_service=configuration_service,
            enricher=enricher,
            archiver=archiver,
        )
        try:
            return await orchestrator.run_ingestion_job(options)
        finally:
            await registry.close()
            if archiver is not None:
                await archiver.close()
