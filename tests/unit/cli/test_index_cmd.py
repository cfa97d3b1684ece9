"""Tests for ragindex index."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from ragindex.cli.main import app

runner = CliRunner()

_RUST = "Rust is a systems language. It guarantees memory safety."


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_index_single_file(tmp_path: Path, fake_embedding, count_documents) -> None:
    db = tmp_path / "index.db"
    doc = _write(tmp_path, "rust.txt", _RUST)

    result = runner.invoke(app, ["index", "--type", "conversation", "--id", "c1", str(doc), "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "conversation/c1: 1 chunks" in result.output
    assert count_documents(db) == 1


def test_index_twice_skips(tmp_path: Path, fake_embedding) -> None:
    db = tmp_path / "index.db"
    doc = _write(tmp_path, "rust.txt", _RUST)
    args = ["index", "--id", "r", str(doc), "--db", str(db)]

    runner.invoke(app, args)
    result = runner.invoke(app, args)

    assert result.exit_code == 0
    assert "skipped (already indexed)" in result.output


def test_index_force_replaces(tmp_path: Path, fake_embedding, count_documents) -> None:
    db = tmp_path / "index.db"
    doc = _write(tmp_path, "rust.txt", _RUST)
    runner.invoke(app, ["index", "--id", "r", str(doc), "--db", str(db)])

    doc.write_text("Completely rewritten text.", encoding="utf-8")
    result = runner.invoke(app, ["index", "--id", "r", str(doc), "--db", str(db), "--force"])

    assert result.exit_code == 0, result.output
    assert "documentation/r: 1 chunks" in result.output
    assert count_documents(db) == 1


def test_index_multiple_files(tmp_path: Path, fake_embedding, count_documents) -> None:
    db = tmp_path / "index.db"
    a = _write(tmp_path, "a.txt", "First document text.")
    b = _write(tmp_path, "b.txt", "Second document text.")

    result = runner.invoke(app, ["index", "a.txt", "b.txt", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "Indexed 2" in result.output
    assert count_documents(db) == 2
    assert a.exists() and b.exists()


def test_index_failure_exits_1(tmp_path: Path, fake_embedding, make_embedder, count_documents) -> None:
    fake_embedding(make_embedder(fail_on=("boom",)))
    db = tmp_path / "index.db"
    doc = _write(tmp_path, "bad.txt", "This text goes boom.")

    result = runner.invoke(app, ["index", "--id", "bad", str(doc), "--db", str(db)])

    assert result.exit_code == 1
    assert "failed 1" in result.output
    assert count_documents(db) == 0


def test_index_id_requires_single_file(tmp_path: Path, fake_embedding) -> None:
    _write(tmp_path, "a.txt", "First document text.")
    _write(tmp_path, "b.txt", "Second document text.")
    result = runner.invoke(app, ["index", "--id", "x", "a.txt", "b.txt"])
    assert result.exit_code == 1
    assert "--id" in result.output


def test_index_unknown_type(tmp_path: Path, fake_embedding) -> None:
    _write(tmp_path, "a.txt", "First document text.")
    result = runner.invoke(app, ["index", "--type", "podcast", "a.txt"])
    assert result.exit_code == 1
    assert "Unknown source type" in result.output


def test_index_missing_file(tmp_path: Path, fake_embedding) -> None:
    result = runner.invoke(app, ["index", "missing.txt"])
    assert result.exit_code != 0
