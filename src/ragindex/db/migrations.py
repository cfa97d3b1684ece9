"""Forward-only migration runner for the ragindex schema."""

from __future__ import annotations

import aiosqlite

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    seq             INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    source_type     TEXT NOT NULL,
    source_id       TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL CHECK (chunk_index >= 0),
    content         TEXT NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',
    created_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_source ON documents(source_type, source_id);
CREATE INDEX IF NOT EXISTS idx_documents_created_at ON documents(created_at);

CREATE TABLE IF NOT EXISTS embeddings (
    document_id     TEXT PRIMARY KEY REFERENCES documents(id) ON DELETE CASCADE,
    vector          BLOB NOT NULL,
    model           TEXT NOT NULL DEFAULT '',
    created_at      INTEGER NOT NULL
);

-- rowid = documents.seq; rows are written by the repository in the same
-- transaction as the document row.
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(text, tokenize='porter ascii');
"""

# v2: created_at columns move from epoch milliseconds to epoch microseconds.
_V2_SQL = """
UPDATE documents SET created_at = created_at * 1000;
UPDATE embeddings SET created_at = created_at * 1000;
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


async def run_migrations(conn: aiosqlite.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    await conn.execute(_CREATE_SCHEMA_VERSION)
    await conn.commit()

    async with conn.execute("SELECT MAX(version) FROM schema_version") as cur:
        row = await cur.fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            await conn.executescript(sql)
            await conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            await conn.commit()
