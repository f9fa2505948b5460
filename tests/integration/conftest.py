"""Fixtures backing repositories and the API with a throwaway SQLite database."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import libris.db.models  # noqa: F401


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    """Create every table in a fresh SQLite file."""
    path = tmp_path / "libris.db"
    engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def session_factory(database_path: Path) -> async_sessionmaker[AsyncSession]:
    # NullPool: connections never outlive the event loop that opened them
    engine = create_async_engine(f"sqlite+aiosqlite:///{database_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
