"""Ingestion run endpoints: trigger, status, per-source control and statistics."""

import structlog
from fastapi import APIRouter, Depends, Query, status

from libris.api.dependencies import (
    IngestionRunner,
    get_configuration_service,
    get_filter_stat_repository,
    get_ingestion_runner,
    get_job_log_repository,
    get_state_manager,
)
from libris.api.schemas.ingestion import (
    CountItem,
    FilterStatisticsResponse,
    IngestionContinuation,
    IngestionRunResponse,
    IngestionTriggerRequest,
    JobLogItem,
    PauseRequest,
    SourceStateItem,
)
from libris.config import settings
from libris.core.ingestion.ingestion_filter import FilterConfig, compute_filter_statistics
from libris.core.ingestion.orchestrator import IngestionOptions, IngestionResult
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.state_manager import IngestionStateManager
from libris.db.models.ingestion_log import JobType
from libris.db.repositories import FilterStatRepository, IngestionLogRepository
from libris.utils.exceptions import NotFoundError

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/ingestion", tags=["ingestion"])


def _run_response(result: IngestionResult) -> IngestionRunResponse:
    data = result.to_dict()
    data["continuation"] = IngestionContinuation(
        next_page=result.next_page, last_cursor=result.last_cursor
    )
    return IngestionRunResponse.model_validate(data)


@router.post(
    "/trigger",
    response_model=IngestionRunResponse,
    summary="Run ingestion now",
    description="Execute one bounded ingestion run across all enabled sources",
    status_code=status.HTTP_200_OK,
)
async def trigger_ingestion(
    request: IngestionTriggerRequest,
    runner: IngestionRunner = Depends(get_ingestion_runner),  # noqa: B008
    configuration_service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
    state_manager: IngestionStateManager = Depends(get_state_manager),  # noqa: B008
) -> IngestionRunResponse:
    """
    Trigger a manual ingestion run.

    Args:
        request: Run options
        runner: Executes the run (injected)
        configuration_service: Used to find sources to reset (injected)
        state_manager: Resets source cursors when requested (injected)

    Returns:
        IngestionRunResponse with counts and the continuation point
    """
    logger.info("ingestion_trigger_request", **request.model_dump())

    if request.reset:
        for config in await configuration_service.get_enabled_configurations():
            await state_manager.reset(config.source_id)

    result = await runner(
        IngestionOptions(
            batch_size=request.batch_size,
            max_books=request.max_books,
            max_duration_seconds=request.max_duration_seconds,
            dry_run=request.dry_run,
            page=request.start_page,
            job_type=JobType.MANUAL,
        )
    )
    return _run_response(result)


@router.get(
    "/status",
    response_model=list[SourceStateItem],
    summary="Per-source ingestion state",
)
async def ingestion_status(
    state_manager: IngestionStateManager = Depends(get_state_manager),  # noqa: B008
) -> list[SourceStateItem]:
    states = await state_manager.get_all_states()
    return [SourceStateItem.model_validate(s) for s in states]


@router.post(
    "/sources/{source_id}/pause",
    response_model=SourceStateItem,
    summary="Pause ingestion for a source",
)
async def pause_source(
    source_id: str,
    request: PauseRequest | None = None,
    state_manager: IngestionStateManager = Depends(get_state_manager),  # noqa: B008
    configuration_service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceStateItem:
    await _require_source(configuration_service, source_id)
    paused_by = request.paused_by if request else "admin"
    state = await state_manager.pause(source_id, paused_by=paused_by)
    return SourceStateItem.model_validate(state)


@router.post(
    "/sources/{source_id}/resume",
    response_model=SourceStateItem,
    summary="Resume ingestion for a source",
)
async def resume_source(
    source_id: str,
    state_manager: IngestionStateManager = Depends(get_state_manager),  # noqa: B008
    configuration_service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceStateItem:
    await _require_source(configuration_service, source_id)
    return SourceStateItem.model_validate(await state_manager.resume(source_id))


@router.post(
    "/sources/{source_id}/reset",
    response_model=SourceStateItem,
    summary="Restart a source from page 1",
)
async def reset_source(
    source_id: str,
    state_manager: IngestionStateManager = Depends(get_state_manager),  # noqa: B008
    configuration_service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceStateItem:
    await _require_source(configuration_service, source_id)
    return SourceStateItem.model_validate(await state_manager.reset(source_id))


@router.get(
    "/logs",
    response_model=list[JobLogItem],
    summary="Recent ingestion runs",
)
async def recent_logs(
    limit: int = Query(10, ge=1, le=100, description="Number of runs"),
    job_logs: IngestionLogRepository = Depends(get_job_log_repository),  # noqa: B008
) -> list[JobLogItem]:
    return [JobLogItem.model_validate(log) for log in await job_logs.list_recent(limit)]


@router.get(
    "/filter-stats",
    response_model=FilterStatisticsResponse,
    summary="Filter statistics",
    description="Aggregate filter outcomes over the most recent ingestion runs",
)
async def filter_statistics(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to analyze"),
    job_logs: IngestionLogRepository = Depends(get_job_log_repository),  # noqa: B008
    filter_stats: FilterStatRepository = Depends(get_filter_stat_repository),  # noqa: B008
) -> FilterStatisticsResponse:
    stats = await compute_filter_statistics(job_logs, filter_stats, limit=limit)
    return FilterStatisticsResponse(
        total_evaluated=stats.total_evaluated,
        passed=stats.passed,
        filtered=stats.filtered,
        filtered_by_genre=stats.filtered_by_genre,
        filtered_by_author=stats.filtered_by_author,
        jobs_analyzed=stats.jobs_analyzed,
        top_filtered_genres=[CountItem(name=n, count=c) for n, c in stats.top_filtered_genres],
        top_filtered_authors=[CountItem(name=n, count=c) for n, c in stats.top_filtered_authors],
        approximate=stats.approximate,
        note=stats.note,
        active_filters=FilterConfig.from_settings(settings).summary(),
    )


async def _require_source(service: SourceConfigurationService, source_id: str) -> None:
    if not await service.exists(source_id):
        raise NotFoundError(f"Unknown source: {source_id}")
