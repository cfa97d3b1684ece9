"""Shared pytest fixtures."""

from __future__ import annotations

import re
import zlib

import numpy as np
import pytest

from ragindex.db.connection import Database
from ragindex.db.repository import Repository
from ragindex.db.schema import initialize
from ragindex.errors import EmbeddingServiceError
from ragindex.ingest.embedder import Embedder

FAKE_DIMS = 16


class FakeEmbedder(Embedder):
    """Deterministic bag-of-words embedder: each word adds 1 to a hashed slot.

    Texts sharing words get similar vectors. Texts containing any string in
    *fail_on* raise EmbeddingServiceError.
    """

    model = "fake/bag-of-words"

    def __init__(self, dims: int = FAKE_DIMS, fail_on: tuple[str, ...] = ()) -> None:
        self.dims = dims
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingServiceError(f"refusing to embed {text[:20]!r}")
        vec = np.zeros(self.dims, dtype=np.float32)
        for word in re.findall(r"\w+", text.lower()):
            vec[zlib.crc32(word.encode()) % self.dims] += 1.0
        return vec


@pytest.fixture
async def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    async with Database(tmp_path / ".ragindex.db") as conn:
        await initialize(conn)
        yield conn


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def make_embedder():
    """The FakeEmbedder class, for tests that need custom dims or failures."""
    return FakeEmbedder
