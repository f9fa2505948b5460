"""Libris CLI application using Typer."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar
from uuid import UUID

import sqlalchemy
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncSession

from libris import __version__
from libris.config import settings
from libris.core.extraction.jobs import ExtractionJobService
from libris.core.ingestion.ingestion_filter import FilterConfig, compute_filter_statistics
from libris.core.ingestion.orchestrator import IngestionOptions, run_ingestion_job
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.state_manager import IngestionStateManager
from libris.db.models.ingestion_log import JobType
from libris.db.repositories import (
    ExtractionRepository,
    FilterStatRepository,
    IngestionLogRepository,
    IngestionStateRepository,
    SourceConfigurationRepository,
)
from libris.db.session import close_db, get_engine, get_session_factory, init_db
from libris.utils.exceptions import LibrisError
from libris.utils.logging import configure_logging

T = TypeVar("T")

app = typer.Typer(
    name="libris",
    help="Libris - multi-source book catalog ingestion",
    add_completion=False,
)
extraction_app = typer.Typer(help="Manage long-running extraction jobs", add_completion=False)
app.add_typer(extraction_app, name="extraction")
console = Console()


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        console.print(f"[bold cyan]Libris[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Libris - multi-source book catalog ingestion."""
    configure_logging(log_level=settings.log_level, environment=settings.environment)


def validate_environment() -> None:
    """
    Validate required environment configuration.

    Raises:
        typer.Exit: If validation fails
    """
    errors = []

    if not settings.database_url:
        errors.append("DATABASE_URL not set")

    filter_config = FilterConfig.from_settings(settings)
    if filter_config.enable_genre_filter and not filter_config.allowed_genres:
        errors.append("ENABLE_GENRE_FILTER is true but INGEST_ALLOWED_GENRES is empty")
    if filter_config.enable_author_filter and not filter_config.allowed_authors:
        errors.append("ENABLE_AUTHOR_FILTER is true but INGEST_ALLOWED_AUTHORS is empty")

    if errors:
        console.print("\n[bold red]Configuration errors:[/bold red]")
        for error in errors:
            console.print(f"  • {error}")
        console.print("\n[yellow]Hint:[/yellow] Check your .env file or environment variables")
        raise typer.Exit(code=1)


async def validate_database_connectivity() -> None:
    """
    Validate database connectivity.

    Raises:
        typer.Exit: If database connection fails
    """
    try:
        async with get_engine().begin() as conn:
            await conn.execute(sqlalchemy.text("SELECT 1"))
    except (sqlalchemy.exc.SQLAlchemyError, OSError) as e:
        console.print("\n[bold red]Database connection failed:[/bold red]")
        console.print(f"  {e}")
        console.print("\n[yellow]Hint:[/yellow] Verify DATABASE_URL and ensure the database is running")
        raise typer.Exit(code=1) from None


def run_with_session(func: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run an async function with a fresh session, reporting domain errors."""
    validate_environment()

    async def runner() -> T:
        try:
            async with get_session_factory()() as session:
                return await func(session)
        finally:
            await close_db()

    try:
        return asyncio.run(runner())
    except LibrisError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None


def _fmt(value: Any) -> str:
    if value is None:
        return "-"
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d %H:%M")
    return str(value)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


@app.command()
def ingest(
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", "-b", min=1, max=100, help="Records per page (default: per source)"),
    ] = None,
    max_books: Annotated[
        int | None,
        typer.Option("--max-books", "-n", min=1, help=f"Cap on processed records (default: {settings.ingest_max_books})"),
    ] = None,
    max_duration: Annotated[
        float | None,
        typer.Option("--max-duration", help="Wall-clock ceiling in seconds"),
    ] = None,
    start_page: Annotated[
        int | None,
        typer.Option("--start-page", min=1, help="Fetch from this page for every source"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Evaluate records without writing anything"),
    ] = False,
) -> None:
    """
    Run one ingestion job across all enabled sources.

    Examples:
        # Regular bounded run
        libris ingest --max-books 50

        # See what would be added without writing
        libris ingest --dry-run --max-books 10
    """
    validate_environment()
    console.print(
        Panel.fit(
            f"[bold cyan]Libris[/bold cyan] - Catalog Ingestion\nVersion {__version__}",
            border_style="cyan",
        )
    )

    async def run() -> Any:
        await validate_database_connectivity()
        try:
            return await run_ingestion_job(
                IngestionOptions(
                    batch_size=batch_size,
                    max_books=max_books,
                    max_duration_seconds=max_duration,
                    dry_run=dry_run,
                    page=start_page,
                    job_type=JobType.MANUAL,
                )
            )
        finally:
            await close_db()

    try:
        result = asyncio.run(run())
    except LibrisError as e:
        console.print(f"\n[bold red]Ingestion failed:[/bold red] {e}")
        raise typer.Exit(code=1) from None

    table = Table(title=f"Sources ({'dry run' if dry_run else result.status})")
    table.add_column("Source", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Pages", justify="right")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Filtered", justify="right")
    table.add_column("Next", style="dim")
    for source in result.sources:
        table.add_row(
            source.source_id,
            source.status,
            str(source.pages_fetched),
            str(source.added),
            str(source.skipped),
            str(source.failed),
            str(source.filtered),
            f"page {source.next_page} +{source.next_offset}",
        )
    console.print(table)
    console.print(
        f"\nJob [dim]{result.job_id}[/dim]: processed {result.processed}, "
        f"added {result.added}, skipped {result.skipped}, failed {result.failed}"
    )
    for error in result.errors[:10]:
        console.print(f"  [red]•[/red] {error.identifier}: {error.error}")
    if result.status == "failed":
        raise typer.Exit(code=1)


@app.command()
def status() -> None:
    """Show the resume point and last run of every source."""

    async def run(session: AsyncSession) -> list[Any]:
        return await IngestionStateManager(IngestionStateRepository(session)).get_all_states()

    states = run_with_session(run)
    table = Table(title="Ingestion State")
    table.add_column("Source", style="cyan")
    table.add_column("Page", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Total", justify="right", style="green")
    table.add_column("Last Run", style="dim")
    table.add_column("Last Status", style="bold")
    table.add_column("Paused")
    for state in states:
        table.add_row(
            state.source_id,
            str(state.last_page),
            str(state.last_offset),
            str(state.total_ingested),
            _fmt(state.last_run_at),
            state.last_run_status,
            f"yes ({state.paused_by})" if state.is_paused else "no",
        )
    console.print(table)


@app.command()
def pause(
    source_id: Annotated[str, typer.Argument(help="Source to pause")],
    paused_by: Annotated[str, typer.Option("--by", help="Who paused it")] = "admin",
) -> None:
    """Skip a source in future runs until resumed."""

    async def run(session: AsyncSession) -> Any:
        return await IngestionStateManager(IngestionStateRepository(session)).pause(source_id, paused_by)

    run_with_session(run)
    console.print(f"[yellow]Paused[/yellow] {source_id}")


@app.command()
def resume(source_id: Annotated[str, typer.Argument(help="Source to resume")]) -> None:
    """Include a paused source in future runs again."""

    async def run(session: AsyncSession) -> Any:
        return await IngestionStateManager(IngestionStateRepository(session)).resume(source_id)

    run_with_session(run)
    console.print(f"[green]Resumed[/green] {source_id}")


@app.command()
def reset(
    source_id: Annotated[str, typer.Argument(help="Source to reset")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Restart a source from page 1."""
    if not yes:
        typer.confirm(f"Reset {source_id} to page 1?", abort=True)

    async def run(session: AsyncSession) -> Any:
        return await IngestionStateManager(IngestionStateRepository(session)).reset(source_id)

    run_with_session(run)
    console.print(f"[green]Reset[/green] {source_id} to page 1")


@app.command()
def logs(limit: Annotated[int, typer.Option("--limit", "-n", min=1, max=100)] = 10) -> None:
    """Show recent ingestion runs."""

    async def run(session: AsyncSession) -> list[Any]:
        return await IngestionLogRepository(session).list_recent(limit)

    rows = run_with_session(run)
    table = Table(title=f"Recent Runs ({len(rows)})")
    table.add_column("Job ID", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status", style="bold")
    table.add_column("Started", style="dim")
    table.add_column("Processed", justify="right")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")
    for log in rows:
        table.add_row(
            str(log.id),
            log.job_type,
            log.status,
            _fmt(log.started_at),
            str(log.books_processed),
            str(log.books_added),
            str(log.books_skipped),
            str(log.books_failed),
        )
    console.print(table)


@app.command(name="filter-stats")
def filter_stats(limit: Annotated[int, typer.Option("--limit", "-n", min=1, max=100)] = 10) -> None:
    """Summarize filter decisions over recent runs."""

    async def run(session: AsyncSession) -> Any:
        return await compute_filter_statistics(
            IngestionLogRepository(session), FilterStatRepository(session), limit=limit
        )

    stats = run_with_session(run)
    console.print(f"Runs analyzed: {stats.jobs_analyzed}")
    console.print(f"Evaluated: {stats.total_evaluated}  Passed: {stats.passed}  Filtered: {stats.filtered}")
    if stats.approximate:
        console.print(f"[yellow]{stats.note}[/yellow]")
    for name, count in stats.top_filtered_genres:
        console.print(f"  genre  {name}: {count}")
    for name, count in stats.top_filtered_authors:
        console.print(f"  author {name}: {count}")


# ---------------------------------------------------------------------------
# Source configuration
# ---------------------------------------------------------------------------


@app.command()
def sources() -> None:
    """List source configurations."""

    async def run(session: AsyncSession) -> list[Any]:
        return await SourceConfigurationService(SourceConfigurationRepository(session)).get_all_configurations()

    configs = run_with_session(run)
    table = Table(title="Sources")
    table.add_column("Source", style="cyan")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Priority", justify="right")
    table.add_column("Rate (ms)", justify="right")
    table.add_column("Batch", justify="right")
    for config in configs:
        table.add_row(
            config.source_id,
            config.display_name,
            "[green]yes[/green]" if config.enabled else "[dim]no[/dim]",
            str(config.priority),
            str(config.rate_limit_ms),
            str(config.batch_size),
        )
    console.print(table)


@app.command()
def enable(source_id: Annotated[str, typer.Argument(help="Source to enable")]) -> None:
    """Enable a source."""

    async def run(session: AsyncSession) -> Any:
        return await SourceConfigurationService(SourceConfigurationRepository(session)).set_enabled(source_id, True)

    run_with_session(run)
    console.print(f"[green]Enabled[/green] {source_id}")


@app.command()
def disable(source_id: Annotated[str, typer.Argument(help="Source to disable")]) -> None:
    """Disable a source."""

    async def run(session: AsyncSession) -> Any:
        return await SourceConfigurationService(SourceConfigurationRepository(session)).set_enabled(source_id, False)

    run_with_session(run)
    console.print(f"[yellow]Disabled[/yellow] {source_id}")


@app.command()
def configure(
    source_id: Annotated[str, typer.Argument(help="Source to update")],
    priority: Annotated[int | None, typer.Option("--priority", help="Lower runs earlier")] = None,
    rate_limit_ms: Annotated[int | None, typer.Option("--rate-limit-ms", help="Delay between pages")] = None,
    batch_size: Annotated[int | None, typer.Option("--batch-size", help="Records per page")] = None,
) -> None:
    """Update priority, rate limit or batch size of a source."""
    updates = {
        key: value
        for key, value in {
            "priority": priority,
            "rate_limit_ms": rate_limit_ms,
            "batch_size": batch_size,
        }.items()
        if value is not None
    }
    if not updates:
        console.print("[yellow]Nothing to update[/yellow]")
        raise typer.Exit()

    async def run(session: AsyncSession) -> Any:
        return await SourceConfigurationService(SourceConfigurationRepository(session)).update_configuration(
            source_id, updates
        )

    run_with_session(run)
    console.print(f"[green]Updated[/green] {source_id}: {updates}")


@app.command(name="init-db")
def init_db_command() -> None:
    """Create all tables (development only; use Alembic in production)."""
    validate_environment()

    async def run() -> None:
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(run())
    console.print("[green]Database tables created[/green]")
    console.print(
        "\n[bold]Next steps:[/bold]\n"
        "  • Configure sources: libris sources\n"
        "  • Run ingestion: libris ingest --dry-run\n"
        "  • Start API: uvicorn libris.main:app --reload"
    )


# ---------------------------------------------------------------------------
# Extraction jobs
# ---------------------------------------------------------------------------


def _print_job(job: Any) -> None:
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for field_name in (
        "id",
        "source_url",
        "status",
        "books_extracted",
        "books_queued",
        "error_count",
        "started_at",
        "completed_at",
    ):
        table.add_row(field_name, _fmt(getattr(job, field_name)))
    console.print(table)


@extraction_app.command("create")
def extraction_create(
    source_url: Annotated[str, typer.Argument(help="URL to extract books from")],
    created_by: Annotated[str | None, typer.Option("--by", help="Creator")] = None,
    max_time_minutes: Annotated[int, typer.Option("--max-minutes", min=1)] = settings.extraction_max_time_minutes,
    max_books: Annotated[int, typer.Option("--max-books", min=1)] = settings.extraction_max_books,
) -> None:
    """Create a pending extraction job."""

    async def run(session: AsyncSession) -> Any:
        return await ExtractionJobService(ExtractionRepository(session)).create_job(
            source_url, created_by, max_time_minutes, max_books
        )

    _print_job(run_with_session(run))


@extraction_app.command("list")
def extraction_list(created_by: Annotated[str | None, typer.Option("--by")] = None) -> None:
    """List extraction jobs, newest first."""

    async def run(session: AsyncSession) -> list[Any]:
        return await ExtractionJobService(ExtractionRepository(session)).list_jobs(created_by)

    table = Table(title="Extraction Jobs")
    table.add_column("Job ID", style="dim", no_wrap=True)
    table.add_column("Status", style="bold")
    table.add_column("Extracted", justify="right")
    table.add_column("Queued", justify="right")
    table.add_column("URL", max_width=50)
    for job in run_with_session(run):
        table.add_row(str(job.id), job.status, str(job.books_extracted), str(job.books_queued), job.source_url)
    console.print(table)


@extraction_app.command("status")
def extraction_status(job_id: Annotated[UUID, typer.Argument(help="Job ID")]) -> None:
    """Show a job and its progress estimate."""

    async def run(session: AsyncSession) -> tuple[Any, Any]:
        service = ExtractionJobService(ExtractionRepository(session))
        return await service.get_job(job_id), await service.get_progress(job_id)

    job, progress = run_with_session(run)
    _print_job(job)
    console.print(f"Elapsed: {progress.elapsed_seconds:.0f}s")
    if progress.estimated_remaining_seconds is not None:
        console.print(f"Estimated remaining: {progress.estimated_remaining_seconds:.0f}s")


def _transition_command(action: str) -> Callable[[UUID], None]:
    def command(job_id: Annotated[UUID, typer.Argument(help="Job ID")]) -> None:
        async def run(session: AsyncSession) -> Any:
            service = ExtractionJobService(ExtractionRepository(session))
            return await getattr(service, action)(job_id)

        job = run_with_session(run)
        console.print(f"Job {job.id} is now [bold]{job.status}[/bold]")

    command.__doc__ = f"{action.capitalize()} an extraction job."
    return command


for _action in ("start", "pause", "resume", "stop"):
    extraction_app.command(_action)(_transition_command(_action))


@extraction_app.command("delete")
def extraction_delete(
    job_id: Annotated[UUID, typer.Argument(help="Job ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete a finished job with its logs and extracted books."""
    if not yes:
        typer.confirm(f"Delete extraction job {job_id}?", abort=True)

    async def run(session: AsyncSession) -> None:
        await ExtractionJobService(ExtractionRepository(session)).delete_job(job_id)

    run_with_session(run)
    console.print(f"[green]Deleted[/green] {job_id}")


if __name__ == "__main__":
    app()
