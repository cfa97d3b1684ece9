"""Tests for ragindex search."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from ragindex.cli.main import app
from ragindex.errors import EmbeddingServiceError

runner = CliRunner()


@pytest.fixture
def indexed_db(tmp_path: Path, fake_embedding) -> Path:
    db = tmp_path / "index.db"
    (tmp_path / "rust.txt").write_text(
        "Rust is a systems language. It guarantees memory safety.", encoding="utf-8"
    )
    (tmp_path / "py.txt").write_text("Python has a garbage collector.", encoding="utf-8")
    for source_id, name in (("c1", "rust.txt"), ("c2", "py.txt")):
        result = runner.invoke(
            app, ["index", "--type", "conversation", "--id", source_id, name, "--db", str(db)]
        )
        assert result.exit_code == 0, result.output
    return db


def test_search_no_db_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["search", "anything", "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No index found" in result.output


def test_search_table(indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "memory safety", "--db", str(indexed_db)])
    assert result.exit_code == 0, result.output
    assert "Score" in result.output
    assert "No matching documents" not in result.output


def test_search_context_output(indexed_db: Path) -> None:
    result = runner.invoke(
        app, ["search", "memory safety", "--mode", "lexical", "--context", "--db", str(indexed_db)]
    )
    assert result.exit_code == 0, result.output
    assert "# Relevant context from indexed sources:" in result.output
    assert "Source: conversation/c1 (chunk 0)" in result.output
    assert "conversation/c2" not in result.output


def test_search_lexical_skips_api_key(indexed_db: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_key(model):
        raise EmbeddingServiceError("no key")

    monkeypatch.setattr("ragindex.cli.search.validate_api_key", _no_key)
    lexical = runner.invoke(
        app, ["search", "garbage", "--mode", "lexical", "--context", "--db", str(indexed_db)]
    )
    hybrid = runner.invoke(app, ["search", "garbage", "--db", str(indexed_db)])

    assert lexical.exit_code == 0, lexical.output
    assert "conversation/c2" in lexical.output
    assert hybrid.exit_code == 1
    assert "Embedding service failed" in hybrid.output


def test_search_no_matches(indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "zebra", "--mode", "lexical", "--db", str(indexed_db)])
    assert result.exit_code == 0
    assert "No matching documents." in result.output


def test_search_type_filter(indexed_db: Path) -> None:
    result = runner.invoke(
        app, ["search", "memory", "--type", "message", "--db", str(indexed_db)]
    )
    assert result.exit_code == 0
    assert "No matching documents." in result.output


def test_search_dimension_mismatch(indexed_db: Path, fake_embedding, make_embedder) -> None:
    fake_embedding(make_embedder(dims=8))
    result = runner.invoke(app, ["search", "memory", "--db", str(indexed_db)])
    assert result.exit_code == 1
    assert "dimension mismatch" in result.output
