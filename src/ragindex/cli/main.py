"""ragindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from ragindex.cli.evict import clear_cmd, evict_cmd
from ragindex.cli.index import index_cmd
from ragindex.cli.remove import remove_cmd
from ragindex.cli.search import search_cmd
from ragindex.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("ragindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ragindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="ragindex",
    help=(
        "ragindex — local hybrid (full-text + vector) search index.\n\n"
        "  ragindex index   Chunk, embed and store text sources.\n"
        "  ragindex search  Rank stored chunks against a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """ragindex — local hybrid search index."""


app.command("index")(index_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("evict")(evict_cmd)
app.command("clear")(clear_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed ragindex version."""
    typer.echo(f"ragindex {_installed_version()}")


if __name__ == "__main__":
    app()
