"""Tests for ragindex evict and ragindex clear."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from typer.testing import CliRunner

from ragindex.cli.main import app
from ragindex.db.models import utcnow

runner = CliRunner()


def _seed_ages(seed_db) -> Path:
    now = utcnow()
    return seed_db(
        [
            ("fresh", "message", "m1", now - timedelta(days=1)),
            ("stale", "message", "m2", now - timedelta(days=60)),
            ("ancient", "favorite", "f1", now - timedelta(days=400)),
        ]
    )


def test_evict_without_retention_exits_1(seed_db) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["evict", "--db", str(db)])
    assert result.exit_code == 1
    assert "No retention period" in result.output


def test_evict_older_than_days(seed_db, count_documents) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["evict", "--older-than-days", "30", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Evicted 2 documents" in result.output
    assert count_documents(db) == 1


def test_evict_deletes_and_reports_the_same_cutoff(monkeypatch, seed_db, count_documents) -> None:
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("ragindex.cli.evict.utcnow", lambda: now)
    db = seed_db(
        [
            ("old", "message", "m1", now - timedelta(days=31)),
            ("young", "message", "m2", now - timedelta(days=29)),
        ]
    )

    result = runner.invoke(app, ["evict", "--older-than-days", "30", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert "Evicted 1 documents created before 2024-05-02 12:00 UTC" in result.output
    assert count_documents(db) == 1


def test_evict_uses_configured_retention(tmp_path: Path, seed_db, count_documents) -> None:
    (tmp_path / "ragindex.yaml").write_text("maintenance:\n  retention_days: 365\n", encoding="utf-8")
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["evict", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert count_documents(db) == 2


def test_evict_nothing(seed_db) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["evict", "--older-than-days", "1000", "--db", str(db)])
    assert result.exit_code == 0
    assert "Nothing older than 1000 days." in result.output


def test_evict_rejects_zero_days(seed_db) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["evict", "--older-than-days", "0", "--db", str(db)])
    assert result.exit_code != 0


def test_evict_no_db(tmp_path: Path) -> None:
    result = runner.invoke(app, ["evict", "--older-than-days", "5", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
    assert "No index found" in result.output


def test_clear_with_yes(seed_db, count_documents) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["clear", "--yes", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Index cleared: 3 documents deleted" in result.output
    assert count_documents(db) == 0


def test_clear_declined(seed_db, count_documents) -> None:
    db = _seed_ages(seed_db)
    result = runner.invoke(app, ["clear", "--db", str(db)], input="n\n")
    assert result.exit_code == 0
    assert count_documents(db) == 3
