"""Repository for extraction jobs, their extracted books and their logs."""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.extraction import ExtractedBook, ExtractionJob, ExtractionLog
from libris.db.repositories.base_repository import BaseRepository
from libris.utils.exceptions import StorageError


class ExtractionRepository(BaseRepository[ExtractionJob]):
    """Repository for ExtractionJob and its child rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(ExtractionJob, session)

    async def create_job(self, job: ExtractionJob) -> ExtractionJob:
        return await self.create(job)

    async def get_job(self, job_id: UUID) -> ExtractionJob | None:
        return await self.get_by_id(job_id)

    async def save_job(self, job: ExtractionJob) -> ExtractionJob:
        return await self.update(job)

    async def list_jobs(self, created_by: str | None = None) -> list[ExtractionJob]:
        statement = select(ExtractionJob).order_by(
            ExtractionJob.created_at.desc()  # type: ignore[attr-defined]
        )
        if created_by is not None:
            statement = statement.where(ExtractionJob.created_by == created_by)
        return await self._scalars(statement)

    async def delete_job(self, job_id: UUID) -> None:
        """
        Delete a job and its children.

        Logs go first, then extracted books, then the job row, all in one
        transaction.
        """
        try:
            await self.session.execute(
                delete(ExtractionLog).where(ExtractionLog.job_id == job_id)  # type: ignore[arg-type]
            )
            await self.session.execute(
                delete(ExtractedBook).where(ExtractedBook.job_id == job_id)  # type: ignore[arg-type]
            )
            await self.session.execute(
                delete(ExtractionJob).where(ExtractionJob.id == job_id)  # type: ignore[arg-type]
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e)) from e
        await self._commit()

    async def add_log(self, log: ExtractionLog) -> ExtractionLog:
        return await self._add(log)

    async def list_logs(self, job_id: UUID, limit: int = 100) -> list[ExtractionLog]:
        return await self._scalars(
            select(ExtractionLog)
            .where(ExtractionLog.job_id == job_id)
            .order_by(ExtractionLog.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )

    async def add_book(self, book: ExtractedBook) -> ExtractedBook:
        return await self._add(book)

    async def list_books(self, job_id: UUID) -> list[ExtractedBook]:
        return await self._scalars(
            select(ExtractedBook)
            .where(ExtractedBook.job_id == job_id)
            .order_by(ExtractedBook.extracted_at)
        )
