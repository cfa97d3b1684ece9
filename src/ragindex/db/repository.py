"""Repository for all ragindex database operations.

Single async interface for documents, embeddings, the FTS5 lexical index and
maintenance counts. Every mutation runs in one explicit transaction that also
maintains the FTS5 rows and embeddings, so a document, its embedding and its
lexical entry are created and destroyed together.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import aiosqlite
import numpy as np

from ragindex.db.models import (
    Document,
    Embedding,
    SourceType,
    from_epoch_us,
    to_epoch_us,
    utcnow,
)
from ragindex.db.vectors import check_dimension, deserialize, serialize
from ragindex.errors import QueryError, StorageError

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under SQLITE_MAX_VARIABLE_NUMBER on old builds.
_IN_BATCH = 500

_DOCUMENT_COLUMNS = "d.seq, d.id, d.source_type, d.source_id, d.chunk_index, d.content, d.metadata, d.created_at"

# Messages SQLite raises when FTS5 rejects a MATCH expression.
_FTS_QUERY_ERRORS = (
    "fts5:",
    "syntax error",
    "unterminated string",
    "no such column",
    "unknown special query",
)


class Repository:
    """Data access layer for documents, embeddings and the lexical index.

    Wraps an open aiosqlite connection. The connection is owned by the caller
    and must be closed after use. All statements on the connection are
    serialised through one ``asyncio.Lock`` so that a reader can never observe
    a transaction that another task has only half written.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open aiosqlite connection with sqlite-vec loaded and the
                schema initialised (see ragindex.db.schema.initialize).
        """
        self._conn = conn
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Transaction + query plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements atomically; roll back on any error.

        sqlite3 errors are raised as StorageError. Other exceptions (for
        example EmbeddingDimensionError) propagate unchanged after rollback.
        """
        async with self._lock:
            try:
                await self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"Could not start transaction: {exc}") from exc
            try:
                yield self._conn
                await self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                await self._rollback()
                raise StorageError(f"Transaction failed and was rolled back: {exc}") from exc
            except BaseException:
                await self._rollback()
                raise

    async def _rollback(self) -> None:
        try:
            await self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.warning("ROLLBACK failed; transaction was already closed", exc_info=True)

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        async with self._lock:
            try:
                return list(await self._conn.execute_fetchall(sql, params))
            except sqlite3.Error as exc:
                raise StorageError(f"Query failed: {exc}") from exc

    async def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        rows = await self._fetchall(sql, params)
        return rows[0] if rows else None

    async def _scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = await self._fetchone(sql, params)
        return row[0] if row is not None else None

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    async def insert_document_with_embedding(
        self, document: Document, embedding: Embedding
    ) -> None:
        """Insert a document and its embedding as one atomic unit.

        Raises:
            ValueError: If *embedding* does not belong to *document*.
            EmbeddingDimensionError: If the vector dimension differs from the index.
            StorageError: If the transaction cannot complete (nothing is committed).
        """
        await self.insert_documents_with_embeddings([(document, embedding)])

    async def insert_documents_with_embeddings(
        self, pairs: Sequence[tuple[Document, Embedding]]
    ) -> None:
        """Insert many document/embedding pairs in a single transaction."""
        for document, embedding in pairs:
            if embedding.document_id != document.id:
                raise ValueError(
                    f"Embedding for '{embedding.document_id}' paired with document '{document.id}'"
                )
        if not pairs:
            return
        async with self._transaction() as conn:
            await _delete_documents(conn, "id IN ({})", [d.id for d, _ in pairs])
            for document, _ in pairs:
                await _insert_document(conn, document)
            await _insert_embeddings(conn, [e for _, e in pairs])
        logger.debug("Inserted %d document/embedding pairs", len(pairs))

    async def replace_source(
        self,
        source_type: SourceType | str,
        source_id: str,
        pairs: Sequence[tuple[Document, Embedding]],
    ) -> int:
        """Swap a source's documents for *pairs* in one transaction.

        Returns the number of previous documents removed.
        """
        source_type = SourceType(source_type)
        for document, embedding in pairs:
            if embedding.document_id != document.id:
                raise ValueError(
                    f"Embedding for '{embedding.document_id}' paired with document '{document.id}'"
                )
            if document.source_type is not source_type or document.source_id != source_id:
                raise ValueError(
                    f"Document '{document.id}' does not belong to {source_type.value}/{source_id}"
                )
        async with self._transaction() as conn:
            removed = await _delete_where(
                conn, "source_type = ? AND source_id = ?", (source_type.value, source_id)
            )
            # Chunk ids are deterministic, so the incoming ids may also exist
            # under the old rows; they are gone after the delete above.
            for document, _ in pairs:
                await _insert_document(conn, document)
            if pairs:
                await _insert_embeddings(conn, [e for _, e in pairs])
        logger.debug(
            "Replaced %s/%s: %d removed, %d inserted",
            source_type.value, source_id, removed, len(pairs),
        )
        return removed

    async def insert_documents_batch(self, documents: Sequence[Document]) -> None:
        """Insert documents with replace semantics.

        A document whose id already exists replaces the prior row; the prior
        row's embedding and lexical entry are removed with it. The new rows
        have no embedding until insert_embeddings_batch() supplies one.
        """
        if not documents:
            return
        async with self._transaction() as conn:
            await _delete_documents(conn, "id IN ({})", [d.id for d in documents])
            for document in documents:
                await _insert_document(conn, document)
        logger.debug("Inserted %d documents", len(documents))

    async def insert_embeddings_batch(self, embeddings: Sequence[Embedding]) -> None:
        """Insert or replace embeddings for existing documents.

        Raises:
            EmbeddingDimensionError: If any vector differs from the index dimension.
            StorageError: If a referenced document does not exist.
        """
        if not embeddings:
            return
        async with self._transaction() as conn:
            await _insert_embeddings(conn, embeddings)
        logger.debug("Inserted %d embeddings", len(embeddings))

    # ------------------------------------------------------------------
    # Document lookups
    # ------------------------------------------------------------------

    async def get_document_by_id(self, document_id: str) -> Document | None:
        row = await self._fetchone(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents d WHERE d.id = ?", (document_id,)
        )
        return _row_to_document(row) if row else None

    async def document_exists(self, document_id: str) -> bool:
        return bool(
            await self._scalar(
                "SELECT EXISTS(SELECT 1 FROM documents WHERE id = ?)", (document_id,)
            )
        )

    async def is_source_indexed(self, source_type: SourceType | str, source_id: str) -> bool:
        """Return True if at least one document exists for the source.

        Pure existence check served by the (source_type, source_id) index.
        """
        return bool(
            await self._scalar(
                "SELECT EXISTS(SELECT 1 FROM documents WHERE source_type = ? AND source_id = ?)",
                (SourceType(source_type).value, source_id),
            )
        )

    async def get_documents_by_source(
        self, source_type: SourceType | str, source_id: str
    ) -> list[Document]:
        """Return the source's documents ordered by chunk_index ascending."""
        rows = await self._fetchall(
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM documents d
            WHERE d.source_type = ? AND d.source_id = ?
            ORDER BY d.chunk_index ASC, d.seq ASC
            """,
            (SourceType(source_type).value, source_id),
        )
        return [_row_to_document(r) for r in rows]

    async def get_oldest_documents(self, limit: int) -> list[Document]:
        """Return up to *limit* documents, oldest first."""
        if limit <= 0:
            return []
        rows = await self._fetchall(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents d ORDER BY d.created_at ASC, d.seq ASC LIMIT ?",
            (limit,),
        )
        return [_row_to_document(r) for r in rows]

    # ------------------------------------------------------------------
    # Embedding loads
    # ------------------------------------------------------------------

    async def load_all_embeddings(self) -> list[tuple[Document, np.ndarray]]:
        """Load every document together with its vector.

        There is no pagination: the whole index is materialised in memory.
        """
        rows = await self._fetchall(
            f"""
            SELECT {_DOCUMENT_COLUMNS}, e.vector FROM documents d
            JOIN embeddings e ON e.document_id = d.id
            ORDER BY d.seq
            """
        )
        return [(_row_to_document(r), deserialize(r["vector"])) for r in rows]

    async def load_embeddings_by_type(
        self, source_type: SourceType | str
    ) -> list[tuple[Document, np.ndarray]]:
        rows = await self._fetchall(
            f"""
            SELECT {_DOCUMENT_COLUMNS}, e.vector FROM documents d
            JOIN embeddings e ON e.document_id = d.id
            WHERE d.source_type = ?
            ORDER BY d.seq
            """,
            (SourceType(source_type).value,),
        )
        return [(_row_to_document(r), deserialize(r["vector"])) for r in rows]

    async def load_embeddings_for_source(
        self, source_type: SourceType | str, source_id: str
    ) -> list[tuple[Document, np.ndarray]]:
        rows = await self._fetchall(
            f"""
            SELECT {_DOCUMENT_COLUMNS}, e.vector FROM documents d
            JOIN embeddings e ON e.document_id = d.id
            WHERE d.source_type = ? AND d.source_id = ?
            ORDER BY d.chunk_index ASC, d.seq ASC
            """,
            (SourceType(source_type).value, source_id),
        )
        return [(_row_to_document(r), deserialize(r["vector"])) for r in rows]

    async def load_embedding(self, document_id: str) -> np.ndarray | None:
        row = await self._fetchone(
            "SELECT vector FROM embeddings WHERE document_id = ?", (document_id,)
        )
        return deserialize(row["vector"]) if row else None

    async def embedding_dimension(self) -> int | None:
        """Return the dimension of stored vectors, or None if the index is empty."""
        return await self._scalar("SELECT vec_length(vector) FROM embeddings LIMIT 1")

    async def get_embedding_models(self) -> list[str]:
        rows = await self._fetchall("SELECT DISTINCT model FROM embeddings ORDER BY model")
        return [r["model"] for r in rows]

    # ------------------------------------------------------------------
    # FTS5 lexical search
    # ------------------------------------------------------------------

    async def lexical_search(
        self,
        query: str,
        limit: int,
        source_type: SourceType | str | None = None,
    ) -> list[tuple[Document, float]]:
        """Full-text search. Returns (document, score) sorted best-first.

        *query* is passed to FTS5 ``MATCH`` verbatim. The score is ``-bm25()``
        so that higher means more relevant.

        Raises:
            QueryError: If FTS5 rejects the query expression.
            StorageError: For any other database failure.
        """
        if limit <= 0:
            return []
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}, -bm25(documents_fts) AS score
            FROM documents_fts
            JOIN documents d ON d.seq = documents_fts.rowid
            WHERE documents_fts MATCH ?
        """
        params: list[Any] = [query]
        if source_type is not None:
            sql += " AND d.source_type = ?"
            params.append(SourceType(source_type).value)
        sql += " ORDER BY bm25(documents_fts), d.created_at DESC, d.id LIMIT ?"
        params.append(limit)

        async with self._lock:
            try:
                rows = await self._conn.execute_fetchall(sql, params)
            except sqlite3.Error as exc:
                if is_fts_query_error(exc):
                    raise QueryError(query, str(exc)) from exc
                raise StorageError(f"Lexical search failed: {exc}") from exc
        return [(_row_to_document(r), float(r["score"])) for r in rows]

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> bool:
        """Delete one document with its embedding and lexical entry."""
        async with self._transaction() as conn:
            removed = await _delete_documents(conn, "id IN ({})", [document_id])
        return removed > 0

    async def delete_documents_by_source(
        self, source_type: SourceType | str, source_id: str
    ) -> int:
        """Delete every document of a source. Returns the number removed."""
        async with self._transaction() as conn:
            removed = await _delete_where(
                conn,
                "source_type = ? AND source_id = ?",
                (SourceType(source_type).value, source_id),
            )
        logger.debug("Deleted %d documents for %s/%s", removed, source_type, source_id)
        return removed

    async def delete_documents_older_than(self, cutoff: datetime) -> int:
        """Delete documents with ``created_at < cutoff``. Returns the number removed."""
        async with self._transaction() as conn:
            removed = await _delete_where(conn, "created_at < ?", (to_epoch_us(cutoff),))
        return removed

    async def clear_all(self) -> int:
        """Delete every document, embedding and lexical entry."""
        async with self._transaction() as conn:
            async with conn.execute("SELECT COUNT(*) FROM documents") as cur:
                removed = (await cur.fetchone())[0]
            await conn.execute("DELETE FROM embeddings")
            await conn.execute("DELETE FROM documents_fts")
            await conn.execute("DELETE FROM documents")
        return removed

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    async def get_document_count(self) -> int:
        return await self._scalar("SELECT COUNT(*) FROM documents")

    async def get_embedding_count(self) -> int:
        return await self._scalar("SELECT COUNT(*) FROM embeddings")

    async def get_document_count_by_type(self, source_type: SourceType | str) -> int:
        return await self._scalar(
            "SELECT COUNT(*) FROM documents WHERE source_type = ?",
            (SourceType(source_type).value,),
        )

    async def get_document_counts_by_type(self) -> dict[SourceType, int]:
        rows = await self._fetchall(
            "SELECT source_type, COUNT(*) AS n FROM documents GROUP BY source_type"
        )
        counts: dict[SourceType, int] = {}
        for r in rows:
            key = SourceType.from_stored(r["source_type"])
            counts[key] = counts.get(key, 0) + r["n"]
        return counts

    async def get_indexed_source_ids(self, source_type: SourceType | str) -> list[str]:
        rows = await self._fetchall(
            "SELECT DISTINCT source_id FROM documents WHERE source_type = ? ORDER BY source_id",
            (SourceType(source_type).value,),
        )
        return [r["source_id"] for r in rows]


# ------------------------------------------------------------------
# Statement helpers (run inside an open transaction)
# ------------------------------------------------------------------


async def _insert_document(conn: aiosqlite.Connection, document: Document) -> None:
    cur = await conn.execute(
        """
        INSERT INTO documents (id, source_type, source_id, chunk_index, content, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            document.id,
            document.source_type.value,
            document.source_id,
            document.chunk_index,
            document.content,
            json.dumps(document.metadata, sort_keys=True),
            to_epoch_us(document.created_at),
        ),
    )
    # Keep FTS5 in sync with explicit rowid mapping
    await conn.execute(
        "INSERT INTO documents_fts(rowid, text) VALUES (?, ?)",
        (cur.lastrowid, document.content),
    )


async def _insert_embeddings(
    conn: aiosqlite.Connection, embeddings: Sequence[Embedding]
) -> None:
    async with conn.execute("SELECT vec_length(vector) FROM embeddings LIMIT 1") as cur:
        row = await cur.fetchone()
    expected = row[0] if row else embeddings[0].dimension
    for embedding in embeddings:
        check_dimension(expected, embedding.vector)

    created = to_epoch_us(utcnow())
    for embedding in embeddings:
        await conn.execute(
            """
            INSERT INTO embeddings (document_id, vector, model, created_at)
            VALUES (?, vec_f32(?), ?, ?)
            ON CONFLICT(document_id) DO UPDATE SET
                vector = excluded.vector,
                model = excluded.model,
                created_at = excluded.created_at
            """,
            (embedding.document_id, serialize(embedding.vector), embedding.model, created),
        )


async def _delete_where(conn: aiosqlite.Connection, where: str, params: Sequence[Any]) -> int:
    rows = await conn.execute_fetchall(f"SELECT id FROM documents WHERE {where}", params)
    ids = [r[0] for r in rows]
    if not ids:
        return 0
    return await _delete_documents(conn, "id IN ({})", ids)


async def _delete_documents(
    conn: aiosqlite.Connection, where_template: str, ids: Iterable[str]
) -> int:
    """Delete embedding, FTS row and document for each id (in that order)."""
    removed = 0
    for batch in _batched(list(ids), _IN_BATCH):
        placeholders = ",".join("?" * len(batch))
        where = where_template.format(placeholders)
        await conn.execute(
            f"DELETE FROM embeddings WHERE document_id IN ({placeholders})", batch
        )
        await conn.execute(
            f"DELETE FROM documents_fts WHERE rowid IN (SELECT seq FROM documents WHERE {where})",
            batch,
        )
        cur = await conn.execute(f"DELETE FROM documents WHERE {where}", batch)
        removed += cur.rowcount
    return removed


def is_fts_query_error(exc: sqlite3.Error) -> bool:
    """True when *exc* is FTS5 rejecting the MATCH expression, not a storage fault."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in _FTS_QUERY_ERRORS)


def _batched(items: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        source_type=SourceType.from_stored(row["source_type"]),
        source_id=row["source_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=from_epoch_us(row["created_at"]),
    )

