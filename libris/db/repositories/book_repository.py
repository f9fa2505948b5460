"""Book repository for database operations."""

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from libris.db.models.book import Book
from libris.db.repositories.base_repository import BaseRepository
from libris.utils.exceptions import StorageError


class BookRepository(BaseRepository[Book]):
    """Repository for Book model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize book repository."""
        super().__init__(Book, session)

    async def insert(self, book: Book) -> Book:
        """
        Insert a book record.

        Args:
            book: Book to insert

        Returns:
            Persisted Book instance

        Raises:
            DuplicateError: If (source, source_identifier) already exists
        """
        return await self.create(book)

    async def exists(self, source: str, source_identifier: str) -> bool:
        """Check whether a book from this source with this identifier is stored."""
        statement = (
            select(func.count())
            .select_from(Book)
            .where(Book.source == source, Book.source_identifier == source_identifier)
        )
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e
        return (result.scalar() or 0) > 0

    async def get_by_source_identifier(
        self, source: str, source_identifier: str
    ) -> Book | None:
        """
        Get book by its provenance key.

        Args:
            source: Source id (e.g. "internet_archive")
            source_identifier: Identifier inside that source

        Returns:
            Book instance or None
        """
        books = await self._scalars(
            select(Book).where(
                Book.source == source, Book.source_identifier == source_identifier
            )
        )
        return books[0] if books else None

    async def count_by_source(self, source: str) -> int:
        try:
            result = await self.session.execute(
                select(func.count()).select_from(Book).where(Book.source == source)
            )
        except SQLAlchemyError as e:
            raise StorageError(str(e)) from e
        return result.scalar() or 0
