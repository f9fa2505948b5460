"""Unit tests for the source registry."""

from typing import Any

import pytest

from libris.core.ingestion.fetchers import (
    GutenbergFetcher,
    InternetArchiveFetcher,
    OpenLibraryFetcher,
)
from libris.core.ingestion.fetchers.base import SourceMetadata
from libris.core.ingestion.source_configuration import SourceConfigurationService
from libris.core.ingestion.source_registry import (
    SourceRegistry,
    create_default_registry,
    missing_capabilities,
)
from libris.utils.exceptions import FetcherRegistrationError

from tests.fakes import FakeFetcher, InMemorySourceConfigurationStore, source_config


class IncompleteFetcher:
    """Has an identity but cannot fetch anything."""

    @property
    def source_id(self) -> str:
        return "incomplete"

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(source_id="incomplete", display_name="Incomplete")


class BrokenIdentityFetcher(FakeFetcher):
    @property
    def source_id(self) -> str:
        raise RuntimeError("identity lookup exploded")


class BlankIdentityFetcher(FakeFetcher):
    @property
    def source_id(self) -> str:
        return "  "


def make_registry(*configs) -> tuple[SourceRegistry, InMemorySourceConfigurationStore]:
    store = InMemorySourceConfigurationStore(configs)
    return SourceRegistry(SourceConfigurationService(store)), store


def test_missing_capabilities():
    assert missing_capabilities(FakeFetcher("ok")) == []
    assert missing_capabilities(IncompleteFetcher()) == [
        "fetch_books",
        "parse_book_document",
        "get_download_url",
    ]


def test_register_and_duplicate():
    registry, _ = make_registry()

    assert registry.register(FakeFetcher("a")) is True
    assert registry.register(FakeFetcher("a")) is False
    assert registry.has_fetcher("a")
    assert len(registry.get_all_fetchers()) == 1


@pytest.mark.parametrize(
    "fetcher",
    [IncompleteFetcher(), BrokenIdentityFetcher("x"), BlankIdentityFetcher("x")],
)
def test_register_rejects_invalid_fetchers(fetcher: Any):
    registry, _ = make_registry()

    with pytest.raises(FetcherRegistrationError):
        registry.register(fetcher)

    assert len(registry.registration_errors) == 1
    assert registry.get_all_fetchers() == []


def test_unregister():
    registry, _ = make_registry()
    registry.register(FakeFetcher("a"))

    assert registry.unregister("a") is True
    assert registry.unregister("a") is False


@pytest.mark.asyncio
async def test_enabled_fetchers_in_priority_order():
    """Test enabled fetchers come back ordered by (priority, source_id)."""
    registry, _ = make_registry(
        source_config("b_source", priority=10),
        source_config("a_source", priority=10),
        source_config("first", priority=1),
        source_config("off", enabled=False),
    )
    for source_id in ("b_source", "a_source", "first", "off"):
        registry.register(FakeFetcher(source_id))

    enabled = await registry.get_enabled_fetchers()

    assert [config.source_id for _, config in enabled] == ["first", "a_source", "b_source"]


@pytest.mark.asyncio
async def test_configured_but_unregistered_source_is_not_returned():
    registry, _ = make_registry(source_config("ghost"))
    registry.register(FakeFetcher("real"))

    enabled = await registry.get_enabled_fetchers()

    assert enabled == []


@pytest.mark.asyncio
async def test_load_creates_default_configurations():
    registry, store = make_registry()
    registry.register(FakeFetcher("internet_archive"))
    registry.register(FakeFetcher("open_library"))

    await registry.load_configurations()

    assert store.configs["internet_archive"].enabled is True
    assert store.configs["open_library"].enabled is False
    assert registry.get_configuration("open_library").priority == 100


@pytest.mark.asyncio
async def test_load_falls_back_to_defaults_on_storage_failure():
    registry, store = make_registry()
    store.fail = True
    registry.register(FakeFetcher("internet_archive"))

    enabled = await registry.get_enabled_fetchers()

    assert [config.source_id for _, config in enabled] == ["internet_archive"]


@pytest.mark.asyncio
async def test_close_closes_fetchers():
    registry, _ = make_registry()
    fetcher = FakeFetcher("a")
    registry.register(fetcher)

    await registry.close()

    assert fetcher.closed is True


def test_default_registry(test_settings):
    service = SourceConfigurationService(InMemorySourceConfigurationStore())
    registry = create_default_registry(service, test_settings)

    assert isinstance(registry.get_fetcher("internet_archive"), InternetArchiveFetcher)
    assert isinstance(registry.get_fetcher("open_library"), OpenLibraryFetcher)
    assert isinstance(registry.get_fetcher("project_gutenberg"), GutenbergFetcher)
    assert registry.registration_errors == []
