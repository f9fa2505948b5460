"""Database session management with async engine and session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from libris.config import settings
from libris.utils.exceptions import ConfigurationError

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Return the process-wide async engine, creating it on first use.

    Raises:
        ConfigurationError: If DATABASE_URL is not configured
    """
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise ConfigurationError(
                "DATABASE_URL is not configured; ingestion requires a backing store"
            )
        engine_kwargs: dict = {"echo": settings.database_echo, "pool_pre_ping": True}
        if settings.database_url.startswith("postgresql"):
            engine_kwargs.update(pool_size=10, max_overflow=20)
        _engine = create_async_engine(settings.database_url, **engine_kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound to the engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
            autocommit=False,
        )
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection function for FastAPI.

    Provides an async database session with automatic cleanup.

    Yields:
        AsyncSession: Database session

    Example:
        ```python
        @router.get("/sources")
        async def list_sources(session: AsyncSession = Depends(get_session)):
            ...
        ```
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database tables.

    Creates all tables defined in SQLModel metadata.
    Only use for development/testing. Production should use Alembic migrations.
    """
    import libris.db.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Close database engine and connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
