"""Source configuration admin endpoints."""

import structlog
from fastapi import APIRouter, Depends

from libris.api.dependencies import get_configuration_service
from libris.api.schemas.sources import (
    SourceConfigurationItem,
    SourceConfigurationUpdate,
    SourcesListResponse,
)
from libris.core.ingestion.source_configuration import SourceConfigurationService

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=SourcesListResponse, summary="List source configurations")
async def list_sources(
    service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourcesListResponse:
    configs = await service.get_all_configurations()
    return SourcesListResponse(
        sources=[SourceConfigurationItem.model_validate(c) for c in configs],
        total_count=len(configs),
    )


@router.patch(
    "/{source_id}",
    response_model=SourceConfigurationItem,
    summary="Update a source configuration",
)
async def update_source(
    source_id: str,
    update: SourceConfigurationUpdate,
    service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceConfigurationItem:
    """
    Apply a partial configuration update.

    Only fields present in the request body are changed.
    """
    changes = update.model_dump(exclude_unset=True)
    logger.info("update_source_request", source_id=source_id, fields=sorted(changes))
    config = await service.update_configuration(source_id, changes)
    return SourceConfigurationItem.model_validate(config)


@router.post("/{source_id}/enable", response_model=SourceConfigurationItem)
async def enable_source(
    source_id: str,
    service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceConfigurationItem:
    return SourceConfigurationItem.model_validate(await service.set_enabled(source_id, True))


@router.post("/{source_id}/disable", response_model=SourceConfigurationItem)
async def disable_source(
    source_id: str,
    service: SourceConfigurationService = Depends(get_configuration_service),  # noqa: B008
) -> SourceConfigurationItem:
    return SourceConfigurationItem.model_validate(await service.set_enabled(source_id, False))
