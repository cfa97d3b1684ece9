"""Database schema initialization."""

from __future__ import annotations

import aiosqlite

from ragindex.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


async def initialize(conn: aiosqlite.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    await run_migrations(conn)
