"""Registry composing fetcher adapters with their persisted configuration."""

import inspect
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from libris.config import Settings
from libris.core.ingestion.fetchers.base import REQUIRED_CAPABILITIES, BookFetcher
from libris.core.ingestion.source_configuration import (
    DEFAULT_PRIORITY,
    LEGACY_DEFAULT_PRIORITY,
    LEGACY_DEFAULT_SOURCE,
    SourceConfigurationService,
)
from libris.db.models.source_configuration import SourceConfiguration
from libris.utils.dates import utc_now
from libris.utils.exceptions import FetcherRegistrationError, LibrisError

logger = structlog.get_logger(__name__)


@dataclass
class RegistrationError:
    """A failed registration attempt, kept for admin diagnostics."""

    fetcher: str
    error: str
    missing: list[str] = field(default_factory=list)
    occurred_at: datetime = field(default_factory=utc_now)


def missing_capabilities(fetcher: object) -> list[str]:
    """Names from REQUIRED_CAPABILITIES the object does not provide.

    Attributes are looked up statically so property getters are not run.
    Abstract members that were never implemented count as missing.
    """
    missing = []
    for name in REQUIRED_CAPABILITIES:
        try:
            attr = inspect.getattr_static(fetcher, name)
        except AttributeError:
            missing.append(name)
            continue
        if getattr(attr, "__isabstractmethod__", False):
            missing.append(name)
            continue
        if isinstance(attr, property):
            if attr.fget is None:
                missing.append(name)
        elif name not in ("source_id", "metadata") and not callable(attr):
            missing.append(name)
    return missing


class SourceRegistry:
    """
    Holds the fetchers available to this process and answers which of them
    should run, in which order.

    Args:
        configuration_service: Configuration store front-end

    Example:
        ```python
        registry = SourceRegistry(SourceConfigurationService(store))
        registry.register(InternetArchiveFetcher())
        await registry.load_configurations()
        for fetcher, config in await registry.get_enabled_fetchers():
            ...
        ```
    """

    def __init__(self, configuration_service: SourceConfigurationService):
        self.configuration_service = configuration_service
        self._fetchers: dict[str, BookFetcher] = {}
        self._configurations: dict[str, SourceConfiguration] = {}
        self._registration_errors: list[RegistrationError] = []
        self._loaded = False

    def register(self, fetcher: BookFetcher) -> bool:
        """
        Register a fetcher adapter.

        Args:
            fetcher: Adapter instance

        Returns:
            True if registered, False if a fetcher with the same source id
            was already registered

        Raises:
            FetcherRegistrationError: If the adapter lacks required
                capabilities, or its identity or metadata lookup fails
        """
        label = type(fetcher).__name__
        missing = missing_capabilities(fetcher)
        if missing:
            message = f"Fetcher {label} is missing required capabilities: {', '.join(missing)}"
            self._record_error(label, message, missing)
            raise FetcherRegistrationError(message)

        try:
            source_id = fetcher.source_id
            _ = fetcher.metadata
        except Exception as e:
            message = f"Fetcher {label} failed to report its identity: {e}"
            self._record_error(label, message)
            raise FetcherRegistrationError(message) from e

        if not isinstance(source_id, str) or not source_id.strip():
            message = f"Fetcher {label} returned an invalid source id: {source_id!r}"
            self._record_error(label, message)
            raise FetcherRegistrationError(message)

        if source_id in self._fetchers:
            logger.warning("fetcher_already_registered", source_id=source_id, fetcher=label)
            return False

        self._fetchers[source_id] = fetcher
        logger.info("fetcher_registered", source_id=source_id, fetcher=label)
        return True

    def unregister(self, source_id: str) -> bool:
        self._configurations.pop(source_id, None)
        return self._fetchers.pop(source_id, None) is not None

    async def load_configurations(self) -> None:
        """
        Load persisted configurations and create defaults for new fetchers.

        Storage failures fall back to in-memory defaults built from each
        fetcher's metadata, so an invocation can still run.
        """
        try:
            configs = await self.configuration_service.get_all_configurations()
            self._configurations = {c.source_id: c for c in configs}
            for source_id, fetcher in self._fetchers.items():
                if source_id not in self._configurations:
                    created = await self.configuration_service.create_default_configuration(
                        fetcher.metadata
                    )
                    self._configurations[source_id] = created
        except LibrisError as e:
            logger.error("source_config_load_failed_using_defaults", error=str(e))
            for source_id, fetcher in self._fetchers.items():
                self._configurations.setdefault(source_id, self._default_configuration(fetcher))
        self._loaded = True
        logger.info(
            "source_configurations_loaded",
            registered=len(self._fetchers),
            configured=len(self._configurations),
        )

    async def get_enabled_fetchers(self) -> list[tuple[BookFetcher, SourceConfiguration]]:
        """Enabled, registered fetchers ordered by (priority, source_id)."""
        if not self._loaded:
            await self.load_configurations()
        enabled = [
            (fetcher, self._configurations[source_id])
            for source_id, fetcher in self._fetchers.items()
            if source_id in self._configurations and self._configurations[source_id].enabled
        ]
        enabled.sort(key=lambda pair: (pair[1].priority, pair[1].source_id))
        return enabled

    def get_fetcher(self, source_id: str) -> BookFetcher | None:
        return self._fetchers.get(source_id)

    def get_all_fetchers(self) -> list[BookFetcher]:
        return list(self._fetchers.values())

    def get_configuration(self, source_id: str) -> SourceConfiguration | None:
        return self._configurations.get(source_id)

    def has_fetcher(self, source_id: str) -> bool:
        return source_id in self._fetchers

    @property
    def registration_errors(self) -> list[RegistrationError]:
        return list(self._registration_errors)

    def clear(self) -> None:
        self._fetchers.clear()
        self._configurations.clear()
        self._registration_errors.clear()
        self._loaded = False

    async def close(self) -> None:
        for fetcher in self._fetchers.values():
            await fetcher.close()

    def _record_error(self, label: str, message: str, missing: list[str] | None = None) -> None:
        self._registration_errors.append(
            RegistrationError(fetcher=label, error=message, missing=missing or [])
        )
        logger.error("fetcher_registration_failed", fetcher=label, error=message)

    @staticmethod
    def _default_configuration(fetcher: BookFetcher) -> SourceConfiguration:
        metadata = fetcher.metadata
        is_legacy = metadata.source_id == LEGACY_DEFAULT_SOURCE
        return SourceConfiguration(
            source_id=metadata.source_id,
            display_name=metadata.display_name,
            description=metadata.description or None,
            website=metadata.website or None,
            supported_formats=list(metadata.supported_formats),
            enabled=is_legacy,
            priority=LEGACY_DEFAULT_PRIORITY if is_legacy else DEFAULT_PRIORITY,
            rate_limit_ms=metadata.default_rate_limit_ms,
            batch_size=metadata.default_batch_size,
            source_specific_config={},
        )


def create_default_registry(
    configuration_service: SourceConfigurationService,
    settings: Settings,
) -> SourceRegistry:
    """Registry with the built-in Internet Archive, Open Library and Gutenberg adapters."""
    from libris.core.ingestion.fetchers import (
        GutenbergFetcher,
        InternetArchiveFetcher,
        OpenLibraryFetcher,
    )

    registry = SourceRegistry(configuration_service)
    for fetcher_class in (InternetArchiveFetcher, OpenLibraryFetcher, GutenbergFetcher):
        registry.register(
            fetcher_class(
                max_retries=settings.http_max_retries,
                timeout=settings.http_timeout_seconds,
                user_agent=settings.http_user_agent,
            )
        )
    return registry
