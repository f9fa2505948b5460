"""Custom column types shared by the table models."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator

from libris.utils.dates import ensure_utc


class UTCDateTime(TypeDecorator[datetime]):
    """
    ``TIMESTAMP WITH TIME ZONE`` that always round-trips aware UTC datetimes.

    Naive values are taken to be UTC on the way in. Backends that drop the
    offset (SQLite) get it re-attached on the way out, so callers can compare
    and subtract loaded timestamps against ``utc_now()`` on any engine.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)
