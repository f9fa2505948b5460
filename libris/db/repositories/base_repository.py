"""Base repository with common database operations."""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from libris.utils.exceptions import DuplicateError, StorageError

ModelType = TypeVar("ModelType", bound=SQLModel)
RowType = TypeVar("RowType", bound=SQLModel)

UNIQUE_VIOLATION_SQLSTATE = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """Whether an integrity error came from a unique or primary key constraint.

    asyncpg exposes the SQLSTATE on the wrapped driver error; SQLite only
    reports it in the message.
    """
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig).lower()
    return "unique" in message or "duplicate key" in message


class BaseRepository(Generic[ModelType]):
    """Base repository for common CRUD operations.

    Every write is committed immediately so an ingestion run that is cut off
    keeps everything it already persisted. Returned instances are detached
    from the session, so a rollback after a failed write never expires objects
    the caller is still holding. Driver errors are translated into
    DuplicateError (unique violations) and StorageError.
    """

    def __init__(self, model: type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLModel class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def _commit(self, obj: RowType | None = None) -> RowType | None:
        try:
            await self.session.commit()
            if obj is not None:
                await self.session.refresh(obj)
                self.session.expunge(obj)
        except IntegrityError as e:
            await self.session.rollback()
            if is_unique_violation(e):
                raise DuplicateError(str(e.orig)) from e
            raise StorageError(str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e)) from e
        return obj

    async def _add(self, obj: RowType) -> RowType:
        self.session.add(obj)
        await self._commit(obj)
        return obj

    async def _merge(self, obj: RowType) -> RowType:
        try:
            merged = await self.session.merge(obj)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e)) from e
        await self._commit(merged)
        return merged

    async def _scalars(self, statement: Any) -> list[Any]:
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e
        rows = list(result.scalars().all())
        for row in rows:
            self.session.expunge(row)
        return rows

    async def _get(self, model: type[RowType], id: Any) -> RowType | None:
        try:
            obj = await self.session.get(model, id)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e
        if obj is not None:
            self.session.expunge(obj)
        return obj

    async def create(self, obj: ModelType) -> ModelType:
        """
        Create a new record.

        Args:
            obj: Model instance to create

        Returns:
            Created model instance

        Raises:
            DuplicateError: If a unique constraint is violated
            StorageError: If the database rejects the write
        """
        return await self._add(obj)

    async def get_by_id(self, id: Any) -> ModelType | None:
        """
        Get record by primary key.

        Args:
            id: Primary key value

        Returns:
            Model instance or None
        """
        return await self._get(self.model, id)

    async def get_all(self, limit: int = 100, offset: int = 0) -> list[ModelType]:
        """
        Get all records with pagination.

        Args:
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of model instances
        """
        return await self._scalars(select(self.model).limit(limit).offset(offset))

    async def update(self, obj: ModelType) -> ModelType:
        """
        Persist changes to an existing record (inserting it if missing).

        Args:
            obj: Model instance to update

        Returns:
            Updated model instance
        """
        return await self._merge(obj)
