"""ragindex index — chunk, embed and store text files as index sources.

Each file becomes one source of the given ``--type``. The source id is the
``--id`` value (single file only) or the file path as given. Sources that are
already indexed are skipped unless ``--force`` is passed.

Usage:
  ragindex index --type documentation README.md docs/guide.md
  ragindex index --type conversation --id c1 transcript.txt --force
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from ragindex.cli.errors import describe_error
from ragindex.cli.runtime import (
    configure_logging,
    console,
    load_config_or_exit,
    open_repository,
    parse_source_type,
    resolve_db,
)
from ragindex.config import RagIndexConfig
from ragindex.db.models import SourceType
from ragindex.errors import RagIndexError
from ragindex.ingest.embedder import LiteLLMEmbedder, validate_api_key
from ragindex.ingest.pipeline import IndexBatchReport, IndexingPipeline, SourceText


def index_cmd(
    files: Annotated[
        list[Path],
        typer.Argument(help="Text files to index.", exists=True, dir_okay=False, readable=True),
    ],
    source_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Source type (conversation, message, documentation, ...)."),
    ] = SourceType.DOCUMENTATION.value,
    source_id: Annotated[
        str | None,
        typer.Option("--id", help="Source id (single file only; defaults to the file path)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Replace sources that are already indexed."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database (created if missing)."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Index text files into the hybrid search index."""
    configure_logging(verbose)
    kind = parse_source_type(source_type)
    if source_id is not None and len(files) > 1:
        console.print("[red]Error:[/] --id can only be used with a single file.")
        raise typer.Exit(1)

    cfg = load_config_or_exit()
    try:
        validate_api_key(cfg.embedding.model)
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    items = [
        SourceText(
            source_type=kind,
            source_id=source_id or str(path),
            text=path.read_text(encoding="utf-8", errors="replace"),
            metadata={"path": str(path)},
        )
        for path in files
    ]

    try:
        report = asyncio.run(_index(items, resolve_db(db, cfg), cfg, force))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    for result in report.results:
        label = f"{result.source_type.value}/{result.source_id}"
        if result.indexed:
            console.print(f"  [green]✓[/] {label}: {result.chunks} chunks")
        else:
            console.print(f"  [dim]↷ {label}: skipped ({result.skipped})[/]")
    for (failed_type, failed_id), reason in sorted(report.failures.items(), key=lambda kv: kv[0][1]):
        console.print(f"  [red]✗[/] {failed_type.value}/{failed_id}: {reason}")

    console.print(
        f"\nIndexed [bold]{report.indexed}[/], skipped [bold]{report.skipped}[/], "
        f"failed [bold]{len(report.failures)}[/]"
    )
    if report.failures:
        raise typer.Exit(1)


async def _index(
    items: list[SourceText], db_path: Path, cfg: RagIndexConfig, force: bool
) -> IndexBatchReport:
    async with open_repository(db_path) as repo:
        pipeline = IndexingPipeline(
            repo,
            LiteLLMEmbedder(cfg.embedding_config()),
            chunker=cfg.plain_chunker(),
            conversation_chunker=cfg.conversation_chunker(),
            max_message_tokens=cfg.embedding.max_tokens,
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Indexing {len(items)} source(s)…", total=None)
            if not force:
                return await pipeline.index_many(items)
            report = IndexBatchReport()
            for item in items:
                report.results.append(
                    await pipeline.reindex_source(
                        item.source_type, item.source_id, item.text, item.metadata
                    )
                )
            return report
