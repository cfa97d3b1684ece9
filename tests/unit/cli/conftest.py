"""Fixtures for CLI tests: isolated config, fake embedder, seeded index."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

from ragindex.cli.runtime import open_repository
from ragindex.db.models import Document, Embedding


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every command from tmp_path with no global config or env overrides."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("ragindex.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.delenv("RAGINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("RAGINDEX_DB", raising=False)


@pytest.fixture
def fake_embedding(monkeypatch: pytest.MonkeyPatch, make_embedder):
    """Replace the LiteLLM embedder and API key check in the CLI modules.

    Returns a setter so a test can swap in a failing embedder.
    """
    state = {"embedder": make_embedder()}

    def _factory(config=None):
        return state["embedder"]

    for module in ("ragindex.cli.index", "ragindex.cli.search"):
        monkeypatch.setattr(f"{module}.LiteLLMEmbedder", _factory)
        monkeypatch.setattr(f"{module}.validate_api_key", lambda model: None)

    def _use(embedder):
        state["embedder"] = embedder

    return _use


@pytest.fixture
def seed_db(tmp_path: Path):
    """Insert (doc_id, source_type, source_id, created_at) rows into a DB file."""

    def _seed(rows: list[tuple[str, str, str, datetime]], db_path: Path | None = None) -> Path:
        path = db_path or tmp_path / "index.db"

        async def _run() -> None:
            async with open_repository(path) as repo:
                for i, (doc_id, source_type, source_id, created_at) in enumerate(rows):
                    doc = Document(
                        id=doc_id,
                        source_type=source_type,
                        source_id=source_id,
                        chunk_index=i,
                        content=f"seeded content {doc_id}",
                        created_at=created_at,
                    )
                    vec = np.ones(4, dtype=np.float32)
                    await repo.insert_document_with_embedding(doc, Embedding(doc_id, vec, "seed"))

        asyncio.run(_run())
        return path

    return _seed


@pytest.fixture
def count_documents():
    """Return a function that counts documents in a DB file."""

    def _count(db_path: Path) -> int:
        async def _run() -> int:
            async with open_repository(db_path) as repo:
                return await repo.get_document_count()

        return asyncio.run(_run())

    return _count
