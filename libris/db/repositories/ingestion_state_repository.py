"""Repository for per-source ingestion resume state."""


from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.ingestion_state import IngestionState
from libris.db.repositories.base_repository import BaseRepository
from libris.utils.dates import utc_now


class IngestionStateRepository(BaseRepository[IngestionState]):
    """Repository for IngestionState model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(IngestionState, session)

    async def get(self, source_id: str) -> IngestionState | None:
        return await self.get_by_id(source_id)

    async def save(self, state: IngestionState) -> IngestionState:
        """Upsert the state row for its source."""
        state.updated_at = utc_now()
        return await self._merge(state)

    async def list_all(self) -> list[IngestionState]:
        return await self._scalars(
            select(IngestionState).order_by(IngestionState.source_id)
        )
