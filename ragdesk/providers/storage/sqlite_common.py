"""Shared helpers for the aiosqlite-backed stores.

Every store opens a short-lived connection per operation.  :func:`connect`
applies the per-connection pragmas; the timestamp helpers fix one sortable
text format so that ``created_at >= ?`` comparisons are plain string comparisons.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


@asynccontextmanager
async def connect(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Open *db_path* with row access by name and foreign keys enforced."""
    async with aiosqlite.connect(str(db_path)) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON;")
        yield db


def format_timestamp(value: datetime | None) -> str | None:
    """Render *value* as a UTC text timestamp.  Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str | None) -> datetime | None:
    """Inverse of :func:`format_timestamp`."""
    if value is None:
        return None
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
