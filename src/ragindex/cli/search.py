"""ragindex search — query the index from the command line.

Modes:
  hybrid    weighted lexical + vector score (default)
  semantic  vector similarity only
  lexical   full-text relevance only (no embedding call)
"""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from ragindex.cli.errors import describe_error, err_no_db
from ragindex.cli.runtime import (
    configure_logging,
    console,
    load_config_or_exit,
    open_repository,
    parse_source_type,
    resolve_db,
)
from ragindex.config import RagIndexConfig
from ragindex.db.models import ScoredDocument, SourceType
from ragindex.errors import RagIndexError
from ragindex.ingest.embedder import LiteLLMEmbedder, validate_api_key
from ragindex.rag.context import build_context
from ragindex.rag.retriever import HybridRetriever


class SearchMode(str, Enum):
    HYBRID = "hybrid"
    SEMANTIC = "semantic"
    LEXICAL = "lexical"


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query.")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Number of results (default from config)."),
    ] = None,
    source_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Only return documents of this source type."),
    ] = None,
    mode: Annotated[
        SearchMode,
        typer.Option("--mode", "-m", help="Ranking mode."),
    ] = SearchMode.HYBRID,
    context: Annotated[
        bool,
        typer.Option("--context", help="Print the assembled prompt context instead of a table."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the index database."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Search the index and print ranked documents."""
    configure_logging(verbose)
    kind = parse_source_type(source_type) if source_type else None
    cfg = load_config_or_exit()
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    try:
        if mode is not SearchMode.LEXICAL:
            validate_api_key(cfg.embedding.model)
        results = asyncio.run(_search(query, top_k, kind, mode, db_path, cfg))
    except RagIndexError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1) from exc

    if not results:
        console.print("[yellow]No matching documents.[/]")
        return

    if context:
        assembled = build_context(results, cfg.retrieval.token_budget)
        console.print(assembled.text, markup=False, highlight=False)
        console.print(
            f"[dim]{len(assembled.documents)} documents, ~{assembled.total_tokens} tokens[/]"
        )
        return

    _print_results(results)


async def _search(
    query: str,
    top_k: int | None,
    source_type: SourceType | None,
    mode: SearchMode,
    db_path: Path,
    cfg: RagIndexConfig,
) -> list[ScoredDocument]:
    async with open_repository(db_path) as repo:
        retriever = HybridRetriever(
            repo, LiteLLMEmbedder(cfg.embedding_config()), cfg.retriever_config()
        )
        if mode is SearchMode.SEMANTIC:
            return await retriever.semantic_search(query, top_k, source_type)
        if mode is SearchMode.LEXICAL:
            return await retriever.lexical_only(query, top_k, source_type)
        return await retriever.retrieve(query, top_k, source_type)


def _print_results(results: list[ScoredDocument]) -> None:
    table = Table(show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Vec", justify="right", style="dim")
    table.add_column("Lex", justify="right", style="dim")
    table.add_column("Source")
    table.add_column("Text", overflow="fold")

    for i, r in enumerate(results, start=1):
        doc = r.document
        snippet = doc.content if len(doc.content) <= 120 else doc.content[:117] + "..."
        table.add_row(
            str(i),
            f"{r.score:.3f}",
            f"{r.vector_score:.3f}",
            f"{r.lexical_score:.3f}",
            f"{doc.source_type.value}/{doc.source_id}#{doc.chunk_index}",
            snippet,
        )
    console.print(table)
