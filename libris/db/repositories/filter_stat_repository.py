"""Repository for ingestion filter decisions."""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.filter_stat import FilterStat
from libris.db.repositories.base_repository import BaseRepository


class FilterStatRepository(BaseRepository[FilterStat]):
    def __init__(self, session: AsyncSession):
        super().__init__(FilterStat, session)

    async def add(self, stat: FilterStat) -> FilterStat:
        return await self.create(stat)

    async def list_for_jobs(self, job_ids: Sequence[str]) -> list[FilterStat]:
        if not job_ids:
            return []
        return await self._scalars(
            select(FilterStat).where(FilterStat.job_id.in_(list(job_ids)))  # type: ignore[attr-defined]
        )
