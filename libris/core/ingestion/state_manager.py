"""Per-source resumption state and pause control for ingestion runs."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog

from libris.core.ports import IngestionStateStore
from libris.db.models.ingestion_state import IngestionState
from libris.utils.dates import utc_now

logger = structlog.get_logger(__name__)

STATUS_IDLE = "idle"
STATUS_RESET = "reset"


@dataclass
class SourceRunOutcome:
    """What one run did for one source, written back as the new resume point."""

    status: str
    next_page: int
    next_cursor: str | None
    next_offset: int
    added: int = 0
    skipped: int = 0
    failed: int = 0


class IngestionStateManager:
    """
    Reads and writes IngestionState rows.

    State changes only at the end of a run (mark_run_completed) or through
    the admin pause/resume/reset operations, never mid-run.

    Args:
        store: State persistence port
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: IngestionStateStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.clock = clock

    async def get_state(self, source_id: str) -> IngestionState:
        """Return the state for a source, creating an idle row on first use."""
        state = await self.store.get(source_id)
        if state is None:
            state = await self.store.save(IngestionState(source_id=source_id))
            logger.info("ingestion_state_created", source_id=source_id)
        return state

    async def peek_state(self, source_id: str) -> IngestionState:
        """Return the state for a source without creating a row (dry runs)."""
        state = await self.store.get(source_id)
        return state if state is not None else IngestionState(source_id=source_id)

    async def get_all_states(self) -> list[IngestionState]:
        return await self.store.list_all()

    async def is_paused(self, source_id: str) -> bool:
        state = await self.store.get(source_id)
        return bool(state and state.is_paused)

    async def pause(self, source_id: str, paused_by: str = "admin") -> IngestionState:
        state = await self.get_state(source_id)
        state.is_paused = True
        state.paused_at = self.clock()
        state.paused_by = paused_by
        saved = await self.store.save(state)
        logger.info("ingestion_paused", source_id=source_id, paused_by=paused_by)
        return saved

    async def resume(self, source_id: str) -> IngestionState:
        state = await self.get_state(source_id)
        state.is_paused = False
        state.paused_at = None
        state.paused_by = None
        saved = await self.store.save(state)
        logger.info("ingestion_resumed", source_id=source_id)
        return saved

    async def reset(self, source_id: str) -> IngestionState:
        """Start the source over from page 1. Totals and pause flag are kept."""
        state = await self.get_state(source_id)
        state.last_page = 1
        state.last_cursor = None
        state.last_offset = 0
        state.last_run_status = STATUS_RESET
        saved = await self.store.save(state)
        logger.info("ingestion_state_reset", source_id=source_id)
        return saved

    async def mark_run_completed(
        self, source_id: str, outcome: SourceRunOutcome
    ) -> IngestionState:
        """
        Record the end of a run for a source.

        Args:
            source_id: Source the run touched
            outcome: New resume point and counts for this run

        Returns:
            Updated state
        """
        state = await self.get_state(source_id)
        state.last_page = outcome.next_page
        state.last_cursor = outcome.next_cursor
        state.last_offset = outcome.next_offset
        state.total_ingested += outcome.added
        state.last_run_at = self.clock()
        state.last_run_status = outcome.status
        state.last_run_added = outcome.added
        state.last_run_skipped = outcome.skipped
        state.last_run_failed = outcome.failed
        saved = await self.store.save(state)
        logger.info(
            "ingestion_state_updated",
            source_id=source_id,
            next_page=outcome.next_page,
            next_offset=outcome.next_offset,
            status=outcome.status,
            added=outcome.added,
        )
        return saved
