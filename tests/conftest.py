"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator

import pytest

from libris.config import Settings

from tests.fakes import (
    FakeClock,
    InMemoryBookStore,
    InMemoryExtractionStore,
    InMemoryFilterStatStore,
    InMemoryJobLogStore,
    InMemorySourceConfigurationStore,
    InMemoryStateStore,
    RecordingSleep,
)

_SETTINGS_ENV = (
    "DATABASE_URL",
    "LOG_LEVEL",
    "ENVIRONMENT",
    "API_KEY",
    "REQUIRE_API_KEY",
    "ENABLE_GENRE_FILTER",
    "INGEST_ALLOWED_GENRES",
    "ENABLE_AUTHOR_FILTER",
    "INGEST_ALLOWED_AUTHORS",
    "INGEST_MAX_BOOKS",
    "INGEST_BATCH_SIZE",
)


@pytest.fixture
def test_settings() -> Generator[Settings, None, None]:
    """
    Provide test configuration with overrides.

    Yields:
        Settings instance for testing
    """
    # Save original environment
    original_env = os.environ.copy()

    for name in _SETTINGS_ENV:
        os.environ.pop(name, None)

    # Set test environment variables
    os.environ["DATABASE_URL"] = "postgresql+asyncpg://postgres@localhost/libris_test"
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["REQUIRE_API_KEY"] = "false"

    settings = Settings(_env_file=None)

    yield settings

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def book_store() -> InMemoryBookStore:
    return InMemoryBookStore()


@pytest.fixture
def job_log_store() -> InMemoryJobLogStore:
    return InMemoryJobLogStore()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def config_store() -> InMemorySourceConfigurationStore:
    return InMemorySourceConfigurationStore()


@pytest.fixture
def filter_stat_store() -> InMemoryFilterStatStore:
    return InMemoryFilterStatStore()


@pytest.fixture
def extraction_store() -> InMemoryExtractionStore:
    return InMemoryExtractionStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
