"""Shared plumbing for CLI commands: config, logging and database access."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from ragindex.cli.errors import err_config, err_unknown_source_type
from ragindex.config import ConfigError, RagIndexConfig, load_config
from ragindex.db.connection import Database
from ragindex.db.models import SourceType
from ragindex.db.repository import Repository
from ragindex.db.schema import initialize

console = Console()


def parse_source_type(value: str) -> SourceType:
    try:
        return SourceType(value.lower())
    except ValueError as exc:
        console.print(err_unknown_source_type(value, [t.value for t in SourceType]))
        raise typer.Exit(1) from exc


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG when *verbose*, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # LiteLLM and the HTTP stack are chatty at DEBUG
    for name in ("LiteLLM", "httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_config_or_exit() -> RagIndexConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def resolve_db(db: Path | None, cfg: RagIndexConfig) -> Path:
    """--db flag wins over RAGINDEX_DB / config."""
    return db if db is not None else Path(cfg.database.path)


@asynccontextmanager
async def open_repository(db_path: Path) -> AsyncIterator[Repository]:
    """Open *db_path*, apply migrations and yield a Repository."""
    async with Database(db_path) as conn:
        await initialize(conn)
        yield Repository(conn)
