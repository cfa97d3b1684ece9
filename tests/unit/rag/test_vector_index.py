"""Tests for BruteForceVectorIndex."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from ragindex.db.models import Document, Embedding
from ragindex.errors import EmbeddingDimensionError
from ragindex.rag.vector_index import BruteForceVectorIndex

_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def _add(repo, doc_id, vector, source_type="documentation", created_at=_T0):
    doc = Document(
        id=doc_id,
        source_type=source_type,
        source_id=doc_id,
        chunk_index=0,
        content=f"content of {doc_id}",
        created_at=created_at,
    )
    await repo.insert_document_with_embedding(doc, Embedding(doc_id, np.array(vector, dtype=np.float32)))


async def test_empty_index_returns_nothing(repo):
    index = BruteForceVectorIndex(repo)
    assert await index.search(np.ones(3, dtype=np.float32), 5) == []


async def test_ranks_by_cosine(repo):
    await _add(repo, "near", [1.0, 0.1, 0.0])
    await _add(repo, "far", [0.0, 1.0, 0.0])
    await _add(repo, "exact", [1.0, 0.0, 0.0])

    hits = await BruteForceVectorIndex(repo).search(np.array([1.0, 0.0, 0.0]), 3)

    assert [doc.id for doc, _ in hits] == ["exact", "near", "far"]
    assert hits[0][1] == pytest.approx(1.0)
    assert hits[2][1] == pytest.approx(0.0)


async def test_limit_applied(repo):
    for i in range(5):
        await _add(repo, f"d{i}", [1.0, float(i), 0.0])
    hits = await BruteForceVectorIndex(repo).search(np.array([1.0, 0.0, 0.0]), 2)
    assert len(hits) == 2


async def test_ties_broken_by_newest_then_id(repo):
    await _add(repo, "b-old", [1.0, 0.0], created_at=_T0)
    await _add(repo, "c-new", [1.0, 0.0], created_at=_T0 + timedelta(days=1))
    await _add(repo, "a-old", [1.0, 0.0], created_at=_T0)

    hits = await BruteForceVectorIndex(repo).search(np.array([2.0, 0.0]), 3)

    assert [doc.id for doc, _ in hits] == ["c-new", "a-old", "b-old"]


async def test_source_type_filter(repo):
    await _add(repo, "doc", [1.0, 0.0], source_type="documentation")
    await _add(repo, "msg", [1.0, 0.0], source_type="message")
    hits = await BruteForceVectorIndex(repo).search(np.array([1.0, 0.0]), 5, "message")
    assert [doc.id for doc, _ in hits] == ["msg"]


async def test_dimension_mismatch_raises(repo):
    await _add(repo, "d", [1.0, 0.0, 0.0])
    with pytest.raises(EmbeddingDimensionError):
        await BruteForceVectorIndex(repo).search(np.ones(4, dtype=np.float32), 5)


async def test_zero_limit(repo):
    await _add(repo, "d", [1.0, 0.0, 0.0])
    assert await BruteForceVectorIndex(repo).search(np.ones(3, dtype=np.float32), 0) == []


async def test_score_listed_documents(repo):
    await _add(repo, "same", [1.0, 0.0, 0.0])
    await _add(repo, "ortho", [0.0, 1.0, 0.0])

    scores = await BruteForceVectorIndex(repo).score(
        np.array([1.0, 0.0, 0.0]), ["same", "ortho", "missing"]
    )

    assert scores["same"] == pytest.approx(1.0)
    assert scores["ortho"] == pytest.approx(0.0)
    assert scores["missing"] == 0.0
