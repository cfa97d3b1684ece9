"""Vector candidate search.

``VectorIndex`` is the seam between the retriever and how vectors are
scanned. ``BruteForceVectorIndex`` loads every stored embedding (optionally
filtered by source type) and scores all of them exactly; an approximate index
can implement the same interface without touching the retriever.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import numpy as np

from ragindex.db.models import Document, SourceType, to_epoch_us
from ragindex.db.repository import Repository
from ragindex.db.vectors import check_dimension, cosine_similarities, cosine_similarity

logger = logging.getLogger(__name__)


class VectorIndex(ABC):
    """Nearest-neighbour search over stored document embeddings."""

    @abstractmethod
    async def search(
        self,
        query: np.ndarray,
        limit: int,
        source_type: SourceType | str | None = None,
    ) -> list[tuple[Document, float]]:
        """Return up to *limit* (document, cosine) pairs, most similar first.

        Raises:
            EmbeddingDimensionError: If *query* differs from the stored dimension.
        """

    @abstractmethod
    async def score(self, query: np.ndarray, document_ids: list[str]) -> dict[str, float]:
        """Return the cosine of *query* against each listed document.

        Documents without a stored embedding score 0.0.
        """


class BruteForceVectorIndex(VectorIndex):
    """Exact scan over ``Repository.load_all_embeddings()``.

    Every call materialises the candidate vectors in memory, so cost grows
    linearly with the index size.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def search(
        self,
        query: np.ndarray,
        limit: int,
        source_type: SourceType | str | None = None,
    ) -> list[tuple[Document, float]]:
        query = np.asarray(query, dtype=np.float32)
        check_dimension(await self._repo.embedding_dimension(), query)
        if limit <= 0:
            return []

        if source_type is None:
            rows = await self._repo.load_all_embeddings()
        else:
            rows = await self._repo.load_embeddings_by_type(source_type)
        if not rows:
            return []

        documents = [doc for doc, _ in rows]
        scores = cosine_similarities(query, np.vstack([vec for _, vec in rows]))
        ranked = sorted(
            zip(documents, scores.tolist()),
            key=lambda pair: (-pair[1], -to_epoch_us(pair[0].created_at), pair[0].id),
        )
        logger.debug("Scored %d vectors, keeping %d", len(ranked), min(limit, len(ranked)))
        return ranked[:limit]

    async def score(self, query: np.ndarray, document_ids: list[str]) -> dict[str, float]:
        query = np.asarray(query, dtype=np.float32)
        scores: dict[str, float] = {}
        for document_id in document_ids:
            vector = await self._repo.load_embedding(document_id)
            scores[document_id] = 0.0 if vector is None else cosine_similarity(query, vector)
        return scores
