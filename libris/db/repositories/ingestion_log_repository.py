"""Repository for ingestion run audit rows."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.ingestion_log import IngestionLog
from libris.db.repositories.base_repository import BaseRepository


class IngestionLogRepository(BaseRepository[IngestionLog]):
    """Repository for IngestionLog model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(IngestionLog, session)

    async def save(self, log: IngestionLog) -> IngestionLog:
        return await self.update(log)

    async def get(self, log_id: UUID) -> IngestionLog | None:
        return await self.get_by_id(log_id)

    async def list_recent(self, limit: int = 10) -> list[IngestionLog]:
        """Most recent runs first."""
        return await self._scalars(
            select(IngestionLog)
            .order_by(IngestionLog.started_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
