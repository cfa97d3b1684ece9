"""ragindex status — index overview: counts per source type, vectors, models."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from ragindex.cli.errors import describe_error
from ragindex.cli.runtime import (
    configure_logging,
    console,
    load_config_or_exit,
    open_repository,
    resolve_db,
)
from ragindex.db.models import Document, SourceType
from ragindex.errors import RagIndexError
from ragindex.maintenance import IndexStats, Maintenance


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
    oldest: Annotated[
        int,
        typer.Option("--oldest", help="Also list the N oldest documents."),
    ] = 0,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Show index status: documents, embeddings and sources per type."""
    configure_logging(verbose)
    cfg = load_config_or_exit()
    db_path = resolve_db(db, cfg)

    db_info = str(db_path)
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_path} ({size_mb:.1f} MB)"
    retention = (
        f"{cfg.maintenance.retention_days} days"
        if cfg.maintenance.retention_days is not None
        else "[dim]disabled[/]"
    )
    console.print(
        Panel(
            f"Database:   {db_info}\n"
            f"Model:      {cfg.embedding.model}\n"
            f"Retention:  {retention}",
            title="[bold]ragindex[/]",
            expand=False,
        )
    )

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No index found.[/]\n  Run:  ragindex index --type <type> <file>",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    try:
        stats, sources, docs = asyncio.run(_collect(db_path, oldest))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    _show_index_panel(stats, sources)
    if docs:
        _show_oldest(docs)


async def _collect(
    db_path: Path, oldest: int
) -> tuple[IndexStats, dict[SourceType, int], list[Document]]:
    async with open_repository(db_path) as repo:
        maintenance = Maintenance(repo)
        stats = await maintenance.statistics()
        sources = {
            t: len(await maintenance.get_indexed_source_ids(t)) for t in stats.by_type
        }
        docs = await maintenance.get_oldest_documents(oldest) if oldest > 0 else []
    return stats, sources, docs


def _show_index_panel(stats: IndexStats, sources: dict[SourceType, int]) -> None:
    lines = [
        f"Documents: [bold]{stats.documents:,}[/]  |  "
        f"Embeddings: [bold]{stats.embeddings:,}[/]  |  "
        f"Dimension: [bold]{stats.dimension if stats.dimension is not None else '-'}[/]"
    ]
    if stats.models:
        lines.append(f"Models: [dim]{', '.join(m or '(unnamed)' for m in stats.models)}[/]")
    if stats.orphaned_documents:
        lines.append(f"[yellow]⚠ {stats.orphaned_documents} documents without embeddings[/]")

    if not stats.by_type:
        lines.append("[dim]No documents indexed yet.[/]")
        console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
        return

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Type", style="bold")
    table.add_column("Sources", justify="right")
    table.add_column("Documents", justify="right")
    for source_type in sorted(stats.by_type, key=lambda t: t.value):
        table.add_row(
            source_type.value,
            f"{sources.get(source_type, 0):,}",
            f"{stats.by_type[source_type]:,}",
        )

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
    console.print(table)


def _show_oldest(docs: list[Document]) -> None:
    table = Table(title="Oldest documents", show_header=True, box=None, padding=(0, 2))
    table.add_column("Created", style="dim")
    table.add_column("Source")
    table.add_column("Chunk", justify="right")
    for doc in docs:
        table.add_row(
            doc.created_at.strftime("%Y-%m-%d %H:%M"),
            f"{doc.source_type.value}/{doc.source_id}",
            str(doc.chunk_index),
        )
    console.print(table)
