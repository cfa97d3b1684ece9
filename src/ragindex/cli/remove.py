"""ragindex remove — delete one source from the index.

Removes every chunk of the source together with its embedding and full-text
entry. The source can be indexed again afterwards.

Usage:
  ragindex remove --type conversation --id c1
  ragindex remove --type conversation --id c1 --yes
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from ragindex.cli.errors import describe_error, err_no_db, err_source_not_found
from ragindex.cli.runtime import (
    configure_logging,
    console,
    load_config_or_exit,
    open_repository,
    parse_source_type,
    resolve_db,
)
from ragindex.db.models import SourceType
from ragindex.errors import RagIndexError


def remove_cmd(
    source_type: Annotated[str, typer.Option("--type", "-t", help="Source type.")],
    source_id: Annotated[str, typer.Option("--id", help="Source id to remove.")],
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
    """Remove a source and all its documents from the index."""
    configure_logging(verbose)
    kind = parse_source_type(source_type)
    cfg = load_config_or_exit()
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    try:
        count = asyncio.run(_count(db_path, kind, source_id))
        if count == 0:
            console.print(err_source_not_found(kind.value, source_id))
            raise typer.Exit(0)

        console.print(f"\nRemove source: [bold]{kind.value}/{source_id}[/]  ({count} documents)")
        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        removed = asyncio.run(_remove(db_path, kind, source_id))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    console.print(f"\n[green]✓[/] Removed {kind.value}/{source_id}: {removed} documents deleted")


async def _count(db_path: Path, source_type: SourceType, source_id: str) -> int:
    async with open_repository(db_path) as repo:
        return len(await repo.get_documents_by_source(source_type, source_id))


async def _remove(db_path: Path, source_type: SourceType, source_id: str) -> int:
    async with open_repository(db_path) as repo:
        return await repo.delete_documents_by_source(source_type, source_id)
