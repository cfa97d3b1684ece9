"""ragindex rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from ragindex.cli.errors import err_no_db
    console.print(err_no_db(".ragindex.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from ragindex.errors import (
    EmbeddingDimensionError,
    EmbeddingServiceError,
    QueryError,
    RagIndexError,
    StorageError,
)


def err_no_db(db_path: str = ".ragindex.db") -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No index found at '{db_path}'.\n"
        "  Run:  ragindex index --type <type> --id <id> <file>"
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_unknown_source_type(value: str, known: list[str]) -> str:
    return (
        f"[red]Error:[/] Unknown source type '{value}'.\n"
        f"  Use one of: {', '.join(known)}"
    )


def err_embedding_service(detail: str) -> str:
    """Embedding call failed; nothing was written, so retrying is safe."""
    return (
        f"[red]Error:[/] Embedding service failed: {detail}\n"
        "  Nothing was written. Check the API key and network, then re-run the command."
    )


def err_dimension_mismatch(expected: int, actual: int) -> str:
    return (
        f"[red]Error:[/] Embedding dimension mismatch.\n"
        f"  Index stores:   {expected}-d vectors\n"
        f"  Model returned: {actual}-d vectors\n"
        "  Switch back to the model the index was built with, or run:  ragindex clear"
    )


def err_query(query: str, reason: str) -> str:
    return (
        f"[red]Error:[/] The search query {query!r} was rejected: {reason}\n"
        "  Remove quotes and operators from the query and try again."
    )


def err_storage(detail: str) -> str:
    return (
        f"[red]Error:[/] Database operation failed: {detail}\n"
        "  No partial changes were committed. Check disk space and file permissions."
    )


def err_no_retention() -> str:
    return (
        "[red]Error:[/] No retention period given.\n"
        "  Pass --older-than-days N, or set maintenance.retention_days in ragindex.yaml."
    )


def err_source_not_found(source_type: str, source_id: str) -> str:
    """Source not in the index."""
    return (
        f"[yellow]Source not found:[/] '{source_type}/{source_id}' is not indexed.\n"
        "  Run:  ragindex status  to see indexed sources."
    )


def describe_error(exc: RagIndexError) -> str:
    """Map a library error to its user-facing message."""
    if isinstance(exc, EmbeddingDimensionError):
        return err_dimension_mismatch(exc.expected, exc.actual)
    if isinstance(exc, EmbeddingServiceError):
        return err_embedding_service(str(exc))
    if isinstance(exc, QueryError):
        return err_query(exc.query, exc.reason)
    if isinstance(exc, StorageError):
        return err_storage(str(exc))
    return f"[red]Error:[/] {exc}"
