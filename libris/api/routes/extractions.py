"""Extraction job endpoints: creation, lifecycle transitions and inspection."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Response, status

from libris.api.dependencies import get_extraction_service
from libris.api.schemas.extractions import (
    ExtractedBookItem,
    ExtractionJobCreate,
    ExtractionJobItem,
    ExtractionLogItem,
    ExtractionProgressResponse,
)
from libris.core.extraction.jobs import ExtractionJobService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/extractions", tags=["extractions"])


@router.post(
    "",
    response_model=ExtractionJobItem,
    status_code=status.HTTP_201_CREATED,
    summary="Create an extraction job",
)
async def create_extraction(
    request: ExtractionJobCreate,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    job = await service.create_job(
        source_url=request.source_url,
        created_by=request.created_by,
        max_time_minutes=request.max_time_minutes,
        max_books=request.max_books,
    )
    return ExtractionJobItem.model_validate(job)


@router.get("", response_model=list[ExtractionJobItem], summary="List extraction jobs")
async def list_extractions(
    created_by: str | None = Query(None, description="Only jobs created by this user"),
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> list[ExtractionJobItem]:
    return [ExtractionJobItem.model_validate(j) for j in await service.list_jobs(created_by)]


@router.get("/{job_id}", response_model=ExtractionJobItem)
async def get_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    return ExtractionJobItem.model_validate(await service.get_job(job_id))


@router.post("/{job_id}/start", response_model=ExtractionJobItem, summary="Start a pending job")
async def start_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    return ExtractionJobItem.model_validate(await service.start(job_id))


@router.post("/{job_id}/pause", response_model=ExtractionJobItem, summary="Pause a running job")
async def pause_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    return ExtractionJobItem.model_validate(await service.pause(job_id))


@router.post("/{job_id}/resume", response_model=ExtractionJobItem, summary="Resume a paused job")
async def resume_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    return ExtractionJobItem.model_validate(await service.resume(job_id))


@router.post("/{job_id}/stop", response_model=ExtractionJobItem, summary="Stop a job")
async def stop_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionJobItem:
    return ExtractionJobItem.model_validate(await service.stop(job_id))


@router.get("/{job_id}/progress", response_model=ExtractionProgressResponse)
async def extraction_progress(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> ExtractionProgressResponse:
    progress = await service.get_progress(job_id)
    return ExtractionProgressResponse.model_validate(progress.to_dict())


@router.get("/{job_id}/logs", response_model=list[ExtractionLogItem])
async def extraction_logs(
    job_id: UUID,
    limit: int = Query(100, ge=1, le=1000),
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> list[ExtractionLogItem]:
    return [ExtractionLogItem.model_validate(log) for log in await service.get_logs(job_id, limit)]


@router.get("/{job_id}/books", response_model=list[ExtractedBookItem])
async def extracted_books(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> list[ExtractedBookItem]:
    return [ExtractedBookItem.model_validate(b) for b in await service.get_extracted_books(job_id)]


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a finished job",
    description="Only failed, stopped or completed jobs can be deleted",
)
async def delete_extraction(
    job_id: UUID,
    service: ExtractionJobService = Depends(get_extraction_service),  # noqa: B008
) -> Response:
    await service.delete_job(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
