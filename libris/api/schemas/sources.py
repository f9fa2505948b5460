"""Pydantic schemas for source configuration endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class SourceConfigurationItem(BaseModel):
    source_id: str
    display_name: str
    description: str | None
    website: str | None
    supported_formats: list[str] | None
    enabled: bool
    priority: int
    rate_limit_ms: int
    batch_size: int
    source_specific_config: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SourceConfigurationUpdate(BaseModel):
    """Partial update.

    Extra keys are passed through so the configuration service can drop
    immutable fields and reject unknown ones; range checks happen there too.
    """

    display_name: str | None = None
    description: str | None = None
    website: str | None = None
    supported_formats: list[str] | None = None
    enabled: bool | None = None
    priority: int | None = None
    rate_limit_ms: int | None = None
    batch_size: int | None = None
    source_specific_config: dict[str, Any] | None = None

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={"examples": [{"priority": 2, "rate_limit_ms": 2000}]},
    )


class SourcesListResponse(BaseModel):
    sources: list[SourceConfigurationItem]
    total_count: int
