"""ragindex evict / clear — age-based eviction and full reset.

Usage:
  ragindex evict --older-than-days 90
  ragindex evict                      # uses maintenance.retention_days
  ragindex clear --yes
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated

import typer

from ragindex.cli.errors import describe_error, err_no_db, err_no_retention
from ragindex.cli.runtime import (
    configure_logging,
    console,
    load_config_or_exit,
    open_repository,
    resolve_db,
)
from ragindex.db.models import utcnow
from ragindex.errors import RagIndexError
from ragindex.maintenance import Maintenance


def evict_cmd(
    older_than_days: Annotated[
        int | None,
        typer.Option(
            "--older-than-days",
            min=1,
            help="Delete documents created more than N days ago (default: retention_days).",
        ),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Evict documents older than the retention period."""
    configure_logging(verbose)
    cfg = load_config_or_exit()
    days = older_than_days if older_than_days is not None else cfg.maintenance.retention_days
    if days is None:
        console.print(err_no_retention())
        raise typer.Exit(1)

    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    cutoff = utcnow() - timedelta(days=days)
    try:
        removed = asyncio.run(_evict(db_path, cutoff))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    if removed:
        console.print(
            f"[green]✓[/] Evicted {removed} documents created before {cutoff:%Y-%m-%d %H:%M} UTC"
        )
    else:
        console.print(f"[dim]Nothing older than {days} days.[/]")


def clear_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Delete every document, embedding and full-text entry."""
    configure_logging(verbose)
    cfg = load_config_or_exit()
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    if not yes and not typer.confirm(f"Delete the entire index at '{db_path}'?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    try:
        removed = asyncio.run(_clear(db_path))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc
    console.print(f"[green]✓[/] Index cleared: {removed} documents deleted")


async def _evict(db_path: Path, cutoff: datetime) -> int:
    async with open_repository(db_path) as repo:
        return await Maintenance(repo).evict_older_than(cutoff)


async def _clear(db_path: Path) -> int:
    async with open_repository(db_path) as repo:
        return await Maintenance(repo).clear_all()
