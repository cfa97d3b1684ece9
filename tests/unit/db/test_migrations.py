"""Tests for the forward-only migration runner and schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from ragindex.db.connection import Database
from ragindex.db.migrations import MIGRATIONS, run_migrations
from ragindex.db.schema import CURRENT_VERSION, initialize


async def _scalar(conn, sql: str, params=()):
    async with conn.execute(sql, params) as cur:
        row = await cur.fetchone()
    return row[0] if row else None


async def _table_exists(conn, name: str) -> bool:
    return (
        await _scalar(conn, "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,))
        is not None
    )


async def _columns(conn, table: str) -> set[str]:
    rows = await conn.execute_fetchall(f"PRAGMA table_info({table})")
    return {row["name"] for row in rows}


# --- Bootstrap ---

async def test_run_migrations_creates_schema_version(tmp_path):
    async with Database(tmp_path / "test.db") as conn:
        await run_migrations(conn)
        assert await _table_exists(conn, "schema_version")


async def test_run_migrations_records_version(tmp_path):
    async with Database(tmp_path / "test.db") as conn:
        await run_migrations(conn)
        assert await _scalar(conn, "SELECT MAX(version) FROM schema_version") == CURRENT_VERSION


# --- Idempotency ---

async def test_run_migrations_idempotent(tmp_path):
    async with Database(tmp_path / "test.db") as conn:
        await run_migrations(conn)
        await initialize(conn)
        assert await _scalar(conn, "SELECT COUNT(*) FROM schema_version") == len(MIGRATIONS)


async def test_reopen_keeps_data(tmp_path):
    path = tmp_path / "test.db"
    async with Database(path) as conn:
        await initialize(conn)
        await conn.execute(
            "INSERT INTO documents (id, source_type, source_id, chunk_index, content, created_at) "
            "VALUES ('d1', 'conversation', 'c1', 0, 'hello', 0)"
        )
    async with Database(path) as conn:
        await initialize(conn)
        assert await _scalar(conn, "SELECT COUNT(*) FROM documents") == 1


# --- Tables ---

async def test_documents_columns(tmp_db):
    assert await _columns(tmp_db, "documents") == {
        "seq",
        "id",
        "source_type",
        "source_id",
        "chunk_index",
        "content",
        "metadata",
        "created_at",
    }


async def test_embeddings_columns(tmp_db):
    assert await _columns(tmp_db, "embeddings") == {"document_id", "vector", "model", "created_at"}


async def test_documents_fts_exists(tmp_db):
    assert await _table_exists(tmp_db, "documents_fts")


async def test_source_index_exists(tmp_db):
    name = await _scalar(
        tmp_db,
        "SELECT name FROM sqlite_master WHERE type='index' AND name='idx_documents_source'",
    )
    assert name == "idx_documents_source"


async def test_negative_chunk_index_rejected(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        await tmp_db.execute(
            "INSERT INTO documents (id, source_type, source_id, chunk_index, content, created_at) "
            "VALUES ('d1', 'conversation', 'c1', -1, 'hello', 0)"
        )


async def test_embedding_requires_document(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        await tmp_db.execute(
            "INSERT INTO embeddings (document_id, vector, created_at) VALUES ('missing', x'00', 0)"
        )


async def test_v2_converts_millisecond_timestamps(tmp_path):
    async with Database(tmp_path / "test.db") as conn:
        await conn.execute(
            "CREATE TABLE schema_version (version INTEGER NOT NULL, "
            "applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
        )
        await conn.executescript(MIGRATIONS[0][1])
        await conn.execute("INSERT INTO schema_version (version) VALUES (1)")
        await conn.execute(
            "INSERT INTO documents (id, source_type, source_id, chunk_index, content, created_at) "
            "VALUES ('d1', 'conversation', 'c1', 0, 'hello', 1714564800123)"
        )
        await conn.execute(
            "INSERT INTO embeddings (document_id, vector, created_at) "
            "VALUES ('d1', x'00', 1714564800123)"
        )
        await conn.commit()

        await run_migrations(conn)

        assert await _scalar(conn, "SELECT created_at FROM documents") == 1_714_564_800_123_000
        assert await _scalar(conn, "SELECT created_at FROM embeddings") == 1_714_564_800_123_000
