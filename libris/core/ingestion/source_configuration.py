"""Persisted per-source configuration with an in-memory cache."""

import json
from collections.abc import Mapping
from typing import Any

import structlog

from libris.core.ingestion.fetchers.base import SourceMetadata
from libris.core.ports import SourceConfigurationStore
from libris.db.models.source_configuration import SourceConfiguration, SourceStatistics
from libris.utils.dates import utc_now
from libris.utils.exceptions import (
    DuplicateError,
    NotFoundError,
    StorageError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# The source that was ingested before the registry existed stays on by default.
LEGACY_DEFAULT_SOURCE = "internet_archive"
LEGACY_DEFAULT_PRIORITY = 1
DEFAULT_PRIORITY = 100

IMMUTABLE_FIELDS = frozenset({"source_id", "created_at"})
UPDATABLE_FIELDS = frozenset(
    {
        "display_name",
        "description",
        "website",
        "supported_formats",
        "enabled",
        "priority",
        "rate_limit_ms",
        "batch_size",
        "source_specific_config",
    }
)


def _sort_key(config: SourceConfiguration) -> tuple[int, str]:
    return (config.priority, config.source_id)


class SourceConfigurationService:
    """
    CRUD over source configurations, fronted by a cache.

    The cache lets an invocation keep scheduling sources when the store is
    briefly unavailable: enabled configurations degrade to the last snapshot
    instead of failing the run.

    Args:
        store: Source configuration persistence port
    """

    def __init__(self, store: SourceConfigurationStore):
        self.store = store
        self._cache: dict[str, SourceConfiguration] = {}
        self._cache_valid = False

    async def get_configuration(self, source_id: str) -> SourceConfiguration | None:
        if self._cache_valid and source_id in self._cache:
            return self._cache[source_id]
        try:
            config = await self.store.get(source_id)
        except StorageError as e:
            logger.warning("source_config_fetch_failed", source_id=source_id, error=str(e))
            return self._cache.get(source_id)
        if config is not None:
            self._cache[source_id] = config
        return config

    async def get_all_configurations(self) -> list[SourceConfiguration]:
        if self._cache_valid:
            return sorted(self._cache.values(), key=_sort_key)
        try:
            configs = await self.store.list_all()
        except StorageError as e:
            logger.warning("source_configs_fetch_failed", error=str(e))
            return sorted(self._cache.values(), key=_sort_key)
        self._cache = {config.source_id: config for config in configs}
        self._cache_valid = True
        return sorted(configs, key=_sort_key)

    async def get_enabled_configurations(self) -> list[SourceConfiguration]:
        """
        Enabled configurations ordered by (priority, source_id).

        Falls back to the cached snapshot when the store fails.
        """
        try:
            configs = await self.store.list_enabled()
        except StorageError as e:
            logger.warning("enabled_configs_fetch_failed_using_cache", error=str(e))
            return sorted(
                (c for c in self._cache.values() if c.enabled), key=_sort_key
            )
        for config in configs:
            self._cache[config.source_id] = config
        return sorted(configs, key=_sort_key)

    async def update_configuration(
        self, source_id: str, updates: Mapping[str, Any]
    ) -> SourceConfiguration:
        """
        Apply a partial update.

        Args:
            source_id: Source to update
            updates: Field values to change. source_id and created_at are
                ignored; other unknown fields are rejected.

        Returns:
            Updated configuration

        Raises:
            ValidationError: If a value is out of range or a field is unknown
            NotFoundError: If the source has no configuration
        """
        patch = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}
        if len(patch) != len(updates):
            logger.warning(
                "source_config_immutable_fields_ignored",
                source_id=source_id,
                fields=sorted(set(updates) & IMMUTABLE_FIELDS),
            )
        self._validate_updates(patch)

        existing = await self.store.get(source_id)
        if existing is None:
            raise NotFoundError(f"No configuration for source: {source_id}")

        for key, value in patch.items():
            setattr(existing, key, value)
        if existing.enabled:
            self._validate_required_config(existing)
        existing.updated_at = utc_now()

        saved = await self.store.save(existing)
        self._cache[source_id] = saved
        logger.info("source_config_updated", source_id=source_id, fields=sorted(patch))
        return saved

    async def set_enabled(self, source_id: str, enabled: bool) -> SourceConfiguration:
        """
        Enable or disable a source.

        Enabling re-validates the required fields first.

        Raises:
            ValidationError: If enabling a configuration that is incomplete
            NotFoundError: If the source has no configuration
        """
        existing = await self.store.get(source_id)
        if existing is None:
            raise NotFoundError(f"No configuration for source: {source_id}")
        if enabled:
            self._validate_required_config(existing)
        existing.enabled = enabled
        existing.updated_at = utc_now()
        saved = await self.store.save(existing)
        self._cache[source_id] = saved
        logger.info("source_enabled_changed", source_id=source_id, enabled=enabled)
        return saved

    async def create_default_configuration(
        self, metadata: SourceMetadata
    ) -> SourceConfiguration:
        """
        Create the default configuration for a source if it has none.

        Idempotent: an existing configuration is returned unchanged. New
        sources start disabled at priority 100, except the legacy default
        source which starts enabled at priority 1. A statistics row is created
        alongside.
        """
        existing = await self.get_configuration(metadata.source_id)
        if existing is not None:
            return existing

        is_legacy = metadata.source_id == LEGACY_DEFAULT_SOURCE
        config = SourceConfiguration(
            source_id=metadata.source_id,
            display_name=metadata.display_name or metadata.source_id,
            description=metadata.description or None,
            website=metadata.website or None,
            supported_formats=list(metadata.supported_formats),
            enabled=is_legacy,
            priority=LEGACY_DEFAULT_PRIORITY if is_legacy else DEFAULT_PRIORITY,
            rate_limit_ms=metadata.default_rate_limit_ms,
            batch_size=metadata.default_batch_size,
            source_specific_config={},
        )
        try:
            created = await self.store.create(config)
        except DuplicateError:
            # Another invocation created it first
            created = await self.store.get(metadata.source_id) or config

        self._cache[created.source_id] = created
        await self._ensure_statistics(created.source_id)
        logger.info(
            "source_config_created",
            source_id=created.source_id,
            enabled=created.enabled,
            priority=created.priority,
        )
        return created

    async def record_ingestion(self, source_id: str, books_added: int) -> None:
        """Add to a source's running total and stamp its last fetch time."""
        stats = await self.store.get_statistics(source_id) or SourceStatistics(
            source_id=source_id
        )
        stats.total_books += books_added
        stats.last_fetch_at = utc_now()
        await self.store.save_statistics(stats)

    async def get_statistics(self, source_id: str) -> SourceStatistics | None:
        return await self.store.get_statistics(source_id)

    async def exists(self, source_id: str) -> bool:
        return await self.get_configuration(source_id) is not None

    async def delete_configuration(self, source_id: str) -> bool:
        self._cache.pop(source_id, None)
        deleted = await self.store.delete(source_id)
        if deleted:
            logger.info("source_config_deleted", source_id=source_id)
        return deleted

    def invalidate_cache(self) -> None:
        self._cache_valid = False

    def clear_cache(self) -> None:
        self._cache.clear()
        self._cache_valid = False

    async def _ensure_statistics(self, source_id: str) -> None:
        try:
            if await self.store.get_statistics(source_id) is None:
                await self.store.save_statistics(SourceStatistics(source_id=source_id))
        except StorageError as e:
            logger.warning("source_statistics_create_failed", source_id=source_id, error=str(e))

    @staticmethod
    def _validate_updates(patch: Mapping[str, Any]) -> None:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        for field_name in ("priority", "rate_limit_ms"):
            if field_name in patch:
                value = patch[field_name]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValidationError(f"{field_name} must be a non-negative integer")

        if "batch_size" in patch:
            value = patch["batch_size"]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValidationError("batch_size must be a positive integer")

        if "enabled" in patch and not isinstance(patch["enabled"], bool):
            raise ValidationError("enabled must be a boolean")

        if "source_specific_config" in patch:
            value = patch["source_specific_config"]
            if value is not None:
                if not isinstance(value, dict):
                    raise ValidationError("source_specific_config must be a JSON object")
                try:
                    json.loads(json.dumps(value))
                except (TypeError, ValueError) as e:
                    raise ValidationError(
                        f"source_specific_config is not JSON serializable: {e}"
                    ) from e

    @staticmethod
    def _validate_required_config(config: SourceConfiguration) -> None:
        errors = []
        if not config.display_name or not config.display_name.strip():
            errors.append("display_name is required")
        if config.rate_limit_ms is None or config.rate_limit_ms < 0:
            errors.append("rate_limit_ms must be non-negative")
        if config.batch_size is None or config.batch_size < 1:
            errors.append("batch_size must be positive")
        if config.priority is None or config.priority < 0:
            errors.append("priority must be non-negative")
        if errors:
            raise ValidationError(
                f"Cannot enable source {config.source_id}: {'; '.join(errors)}"
            )
