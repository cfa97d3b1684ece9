"""Tests for domain models and timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from ragindex.db.models import (
    Document,
    Embedding,
    SourceType,
    from_epoch_us,
    to_epoch_us,
)


def test_source_type_parses_strictly():
    assert SourceType("conversation") is SourceType.CONVERSATION
    with pytest.raises(ValueError):
        SourceType("conversaton")


def test_source_type_from_stored_falls_back_to_other():
    assert SourceType.from_stored("message") is SourceType.MESSAGE
    assert SourceType.from_stored("podcast") is SourceType.OTHER


def test_document_coerces_source_type():
    doc = Document(id="d1", source_type="favorite", source_id="f1", chunk_index=0, content="x")
    assert doc.source_type is SourceType.FAVORITE


def test_document_rejects_negative_chunk_index():
    with pytest.raises(ValueError):
        Document(id="d1", source_type="message", source_id="m1", chunk_index=-1, content="x")


def test_document_new_assigns_unique_ids():
    a = Document.new("message", "m1", 0, "hello")
    b = Document.new("message", "m1", 0, "hello")
    assert a.id != b.id
    assert a.created_at.tzinfo is not None


def test_embedding_coerces_to_float32():
    emb = Embedding(document_id="d1", vector=[1, 2, 3])
    assert emb.vector.dtype == np.float32
    assert emb.dimension == 3


@pytest.mark.parametrize("vector", [[], [[1.0, 2.0]]])
def test_embedding_rejects_bad_shapes(vector):
    with pytest.raises(ValueError):
        Embedding(document_id="d1", vector=vector)


def test_epoch_us_roundtrip_keeps_microsecond_precision():
    ts = datetime(2024, 5, 1, 12, 30, 15, 123457, tzinfo=timezone.utc)
    assert from_epoch_us(to_epoch_us(ts)) == ts


def test_epoch_us_distinguishes_sub_millisecond_instants():
    base = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    earlier = to_epoch_us(base + timedelta(microseconds=100))
    later = to_epoch_us(base + timedelta(microseconds=900))
    assert later - earlier == 800
    assert to_epoch_us(base) == 1_714_564_800_000_000


def test_naive_datetime_treated_as_utc():
    naive = datetime(2024, 1, 1, 0, 0, 0)
    aware = naive.replace(tzinfo=timezone.utc)
    assert to_epoch_us(naive) == to_epoch_us(aware)
