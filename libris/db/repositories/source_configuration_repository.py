"""Repository for source configuration and statistics rows."""


from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.source_configuration import SourceConfiguration, SourceStatistics
from libris.db.repositories.base_repository import BaseRepository
from libris.utils.dates import utc_now
from libris.utils.exceptions import StorageError


class SourceConfigurationRepository(BaseRepository[SourceConfiguration]):
    """Repository for SourceConfiguration and SourceStatistics operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(SourceConfiguration, session)

    async def get(self, source_id: str) -> SourceConfiguration | None:
        return await self.get_by_id(source_id)

    async def list_all(self) -> list[SourceConfiguration]:
        return await self._scalars(
            select(SourceConfiguration).order_by(
                SourceConfiguration.priority, SourceConfiguration.source_id
            )
        )

    async def list_enabled(self) -> list[SourceConfiguration]:
        return await self._scalars(
            select(SourceConfiguration)
            .where(SourceConfiguration.enabled == True)  # noqa: E712
            .order_by(SourceConfiguration.priority, SourceConfiguration.source_id)
        )

    async def save(self, config: SourceConfiguration) -> SourceConfiguration:
        config.updated_at = utc_now()
        return await self.update(config)

    async def delete(self, source_id: str) -> bool:
        try:
            result = await self.session.execute(
                delete(SourceConfiguration).where(
                    SourceConfiguration.source_id == source_id  # type: ignore[arg-type]
                )
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e)) from e
        await self._commit()
        return (result.rowcount or 0) > 0

    async def get_statistics(self, source_id: str) -> SourceStatistics | None:
        return await self._get(SourceStatistics, source_id)

    async def save_statistics(self, stats: SourceStatistics) -> SourceStatistics:
        """Upsert the statistics row for a source."""
        stats.updated_at = utc_now()
        return await self._merge(stats)
