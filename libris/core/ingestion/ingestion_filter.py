"""Allow-list filtering of candidate books by genre and author."""

from collections import Counter
from dataclasses import dataclass, field

import structlog

from libris.config import Settings
from libris.core.ingestion.metadata_mapper import NormalizedBook
from libris.core.ingestion.taxonomy import validate_genre_names
from libris.core.ports import FilterStatStore, JobLogStore
from libris.db.models.filter_stat import FilterResult, FilterStat
from libris.utils.exceptions import StorageError

logger = structlog.get_logger(__name__)

TOP_N = 5
APPROXIMATION_NOTE = (
    "Estimated from ingestion logs as processed - (added + skipped + failed); "
    "no per-book filter decisions were recorded for these runs."
)


@dataclass
class FilterConfig:
    """Which allow-lists are active and what they contain."""

    enable_genre_filter: bool = False
    allowed_genres: list[str] = field(default_factory=list)
    enable_author_filter: bool = False
    allowed_authors: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "FilterConfig":
        return cls(
            enable_genre_filter=settings.enable_genre_filter,
            allowed_genres=list(settings.ingest_allowed_genres),
            enable_author_filter=settings.enable_author_filter,
            allowed_authors=list(settings.ingest_allowed_authors),
        )

    @property
    def genre_filter_active(self) -> bool:
        return self.enable_genre_filter and bool(self.allowed_genres)

    @property
    def author_filter_active(self) -> bool:
        return self.enable_author_filter and bool(self.allowed_authors)

    def has_active_filters(self) -> bool:
        return self.genre_filter_active or self.author_filter_active

    def invalid_genres(self) -> list[str]:
        return validate_genre_names(self.allowed_genres)

    def summary(self) -> dict[str, object]:
        return {
            "genre_filter": {
                "enabled": self.enable_genre_filter,
                "active": self.genre_filter_active,
                "allowed": list(self.allowed_genres),
            },
            "author_filter": {
                "enabled": self.enable_author_filter,
                "active": self.author_filter_active,
                "allowed": list(self.allowed_authors),
            },
        }


@dataclass
class FilterDecision:
    result: FilterResult
    reason: str | None = None

    @property
    def passed(self) -> bool:
        return self.result == FilterResult.PASSED


@dataclass
class FilterStatistics:
    """Aggregate filter outcomes over recent runs."""

    total_evaluated: int = 0
    passed: int = 0
    filtered: int = 0
    filtered_by_genre: int = 0
    filtered_by_author: int = 0
    jobs_analyzed: int = 0
    top_filtered_genres: list[tuple[str, int]] = field(default_factory=list)
    top_filtered_authors: list[tuple[str, int]] = field(default_factory=list)
    approximate: bool = False
    note: str | None = None


class IngestionFilter:
    """
    Decides whether a normalized book should be ingested.

    The genre allow-list is checked first: a book passes if any of its genres
    equals an allowed genre, ignoring case. The author allow-list passes a
    book whose author contains any allowed name, ignoring case. A disabled
    filter or an empty allow-list lets everything through; a book without
    genres (or author) fails an active filter on that dimension.

    Args:
        config: Active allow-lists
        stats_store: Where per-book decisions are recorded, if anywhere
    """

    def __init__(self, config: FilterConfig, stats_store: FilterStatStore | None = None):
        self.config = config
        self.stats_store = stats_store
        self._allowed_genres = {g.strip().lower() for g in config.allowed_genres if g.strip()}
        self._allowed_authors = [a.strip().lower() for a in config.allowed_authors if a.strip()]

    def check(self, book: NormalizedBook) -> FilterDecision:
        """Evaluate a book without recording anything."""
        if self.config.genre_filter_active:
            book_genres = [g.lower() for g in book.genres]
            if not book_genres:
                return FilterDecision(FilterResult.FILTERED_GENRE, "Book has no genres")
            if not any(genre in self._allowed_genres for genre in book_genres):
                return FilterDecision(
                    FilterResult.FILTERED_GENRE,
                    f"Genres {', '.join(book.genres)} not in allowed list",
                )

        if self.config.author_filter_active:
            author = (book.author or "").lower()
            if not author:
                return FilterDecision(FilterResult.FILTERED_AUTHOR, "Book has no author")
            if not any(allowed in author for allowed in self._allowed_authors):
                return FilterDecision(
                    FilterResult.FILTERED_AUTHOR,
                    f"Author {book.author} not in allowed list",
                )

        return FilterDecision(FilterResult.PASSED)

    async def evaluate(
        self, book: NormalizedBook, job_id: str, record: bool = True
    ) -> FilterDecision:
        """
        Evaluate a book and record the decision.

        Recording is best effort: a failed write is logged and the decision
        still returned.
        """
        decision = self.check(book)
        if not decision.passed:
            logger.info(
                "book_filtered",
                job_id=job_id,
                source_identifier=book.source_identifier,
                result=decision.result.value,
                reason=decision.reason,
            )
        if record and self.stats_store is not None:
            try:
                await self.stats_store.add(
                    FilterStat(
                        job_id=job_id,
                        book_identifier=book.source_identifier,
                        book_title=book.title,
                        book_author=book.author,
                        book_genres=list(book.genres),
                        filter_result=decision.result.value,
                        filter_reason=decision.reason,
                    )
                )
            except StorageError as e:
                logger.warning(
                    "filter_stat_record_failed",
                    job_id=job_id,
                    source_identifier=book.source_identifier,
                    error=str(e),
                )
        return decision


async def compute_filter_statistics(
    job_logs: JobLogStore,
    stats_store: FilterStatStore,
    limit: int = 10,
) -> FilterStatistics:
    """
    Summarize filter decisions over the most recent runs.

    Uses recorded per-book decisions when any exist for those runs; otherwise
    estimates the filtered count from the run logs and marks the result as
    approximate.

    Args:
        job_logs: Ingestion log store
        stats_store: Filter decision store
        limit: Number of recent runs to analyze

    Returns:
        FilterStatistics
    """
    logs = await job_logs.list_recent(limit)
    if not logs:
        return FilterStatistics()

    try:
        stats = await stats_store.list_for_jobs([str(log.id) for log in logs])
    except StorageError as e:
        logger.warning("filter_stats_unavailable_using_logs", error=str(e))
        stats = []

    if not stats:
        evaluated = sum(log.books_processed for log in logs)
        added = sum(log.books_added for log in logs)
        filtered = sum(
            max(0, log.books_processed - (log.books_added + log.books_skipped + log.books_failed))
            for log in logs
        )
        return FilterStatistics(
            total_evaluated=evaluated,
            passed=added,
            filtered=filtered,
            jobs_analyzed=len(logs),
            approximate=True,
            note=APPROXIMATION_NOTE,
        )

    genre_counts: Counter[str] = Counter()
    author_counts: Counter[str] = Counter()
    result = FilterStatistics(jobs_analyzed=len(logs), total_evaluated=len(stats))
    for stat in stats:
        if stat.filter_result == FilterResult.PASSED.value:
            result.passed += 1
        elif stat.filter_result == FilterResult.FILTERED_GENRE.value:
            result.filtered_by_genre += 1
            genre_counts.update(stat.book_genres or [])
        elif stat.filter_result == FilterResult.FILTERED_AUTHOR.value:
            result.filtered_by_author += 1
            if stat.book_author:
                author_counts[stat.book_author] += 1

    result.filtered = result.filtered_by_genre + result.filtered_by_author
    result.top_filtered_genres = genre_counts.most_common(TOP_N)
    result.top_filtered_authors = author_counts.most_common(TOP_N)
    return result
