"""Hybrid retriever: FTS5 lexical scores + cosine vector scores, weighted sum.

For a query ``q``:
  - the query embedding is scored against every candidate vector (cosine)
  - ``q`` is turned into an OR query of its tokens and run through FTS5;
    lexical scores are divided by the top lexical score of the batch
  - final = vector_weight * cosine + lexical_weight * lexical
    (full-text hits outside the vector candidate cut are scored against
    their stored vectors; vector hits missing from the full-text batch get
    lexical 0)

Results are ordered by final score, then newest ``created_at``, then ``id``,
so identical store state and weights always give identical rankings.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from ragindex.db.models import Document, ScoredDocument, SourceType, to_epoch_us
from ragindex.db.repository import Repository
from ragindex.db.vectors import cosine_similarity, mean_vector
from ragindex.ingest.embedder import Embedder
from ragindex.rag.query import build_match_query
from ragindex.rag.vector_index import BruteForceVectorIndex, VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        top_k: Default number of documents returned.
        overfetch_factor: Each channel fetches ``top_k * overfetch_factor``
            candidates before merging.
        vector_weight: Weight of the cosine score in the final score.
        lexical_weight: Weight of the normalised lexical score.
    """

    top_k: int = 10
    overfetch_factor: int = 5
    vector_weight: float = 0.5
    lexical_weight: float = 0.5

    def __post_init__(self) -> None:
        if self.overfetch_factor < 1:
            raise ValueError("overfetch_factor must be >= 1")
        if self.vector_weight < 0 or self.lexical_weight < 0:
            raise ValueError("retrieval weights must be non-negative")
        if self.vector_weight == 0 and self.lexical_weight == 0:
            raise ValueError("at least one retrieval weight must be positive")


@dataclass
class SimilarSource:
    source_id: str
    score: float


class HybridRetriever:
    """Rank stored documents against a text query.

    Never writes to the store. Concurrent calls are safe.

    Args:
        repo: Open Repository.
        embedder: Must be the embedder the index was built with.
        config: Weights and limits (defaults to RetrieverConfig()).
        vector_index: Vector candidate search (defaults to a brute-force scan).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        config: RetrieverConfig | None = None,
        vector_index: VectorIndex | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self.config = config or RetrieverConfig()
        self._vector_index = vector_index or BruteForceVectorIndex(repo)

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        source_type: SourceType | str | None = None,
    ) -> list[ScoredDocument]:
        """Run hybrid retrieval and return documents best-first.

        Raises:
            EmbeddingServiceError: If the query cannot be embedded.
            EmbeddingDimensionError: If the query vector does not match the index.
        """
        top_k = self.config.top_k if top_k is None else top_k
        if top_k <= 0:
            return []
        source_type = SourceType(source_type) if source_type is not None else None
        limit = top_k * self.config.overfetch_factor

        query_vector = await self._embedder.embed(query)
        vector_hits = await self._vector_index.search(query_vector, limit, source_type)
        lexical_hits = await self._lexical(query, limit, source_type)
        vector_hits = await self._score_lexical_only(query_vector, vector_hits, lexical_hits)

        results = merge_scores(
            vector_hits,
            lexical_hits,
            self.config.vector_weight,
            self.config.lexical_weight,
        )
        logger.debug(
            "Query %r: %d vector + %d lexical candidates, %d merged",
            query[:50],
            len(vector_hits),
            len(lexical_hits),
            len(results),
        )
        return results[:top_k]

    async def semantic_search(
        self,
        query: str,
        top_k: int | None = None,
        source_type: SourceType | str | None = None,
    ) -> list[ScoredDocument]:
        """Vector channel only; ``score`` is the cosine similarity."""
        top_k = self.config.top_k if top_k is None else top_k
        if top_k <= 0:
            return []
        query_vector = await self._embedder.embed(query)
        hits = await self._vector_index.search(query_vector, top_k, source_type)
        return [ScoredDocument(doc, sim, vector_score=sim) for doc, sim in hits]

    async def lexical_only(
        self,
        query: str,
        top_k: int | None = None,
        source_type: SourceType | str | None = None,
    ) -> list[ScoredDocument]:
        """Full-text channel only; ``score`` is the normalised lexical score."""
        top_k = self.config.top_k if top_k is None else top_k
        if top_k <= 0:
            return []
        hits = await self._lexical(query, top_k, source_type)
        return merge_scores([], hits, vector_weight=0.0, lexical_weight=1.0)[:top_k]

    async def find_similar_sources(
        self,
        source_type: SourceType | str,
        source_id: str,
        top_k: int = 5,
    ) -> list[SimilarSource]:
        """Find other sources of the same type whose mean vector is closest.

        Each source is represented by the mean of its chunk vectors. Returns
        ``[]`` when the source is not indexed.
        """
        source_type = SourceType(source_type)
        own = await self._repo.load_embeddings_for_source(source_type, source_id)
        if not own or top_k <= 0:
            return []
        target = mean_vector([vec for _, vec in own])

        grouped: dict[str, list[np.ndarray]] = defaultdict(list)
        for doc, vec in await self._repo.load_embeddings_by_type(source_type):
            if doc.source_id != source_id:
                grouped[doc.source_id].append(vec)

        similar = [
            SimilarSource(sid, cosine_similarity(target, mean_vector(vectors)))
            for sid, vectors in grouped.items()
        ]
        similar.sort(key=lambda s: (-s.score, s.source_id))
        return similar[:top_k]

    async def _score_lexical_only(
        self,
        query_vector: np.ndarray,
        vector_hits: list[tuple[Document, float]],
        lexical_hits: list[tuple[Document, float]],
    ) -> list[tuple[Document, float]]:
        seen = {doc.id for doc, _ in vector_hits}
        missing = [doc for doc, _ in lexical_hits if doc.id not in seen]
        if not missing:
            return vector_hits
        scores = await self._vector_index.score(query_vector, [doc.id for doc in missing])
        return vector_hits + [(doc, scores.get(doc.id, 0.0)) for doc in missing]

    async def _lexical(
        self, query: str, limit: int, source_type: SourceType | str | None
    ) -> list[tuple[Document, float]]:
        match = build_match_query(query)
        if not match:
            return []
        return await self._repo.lexical_search(match, limit, source_type)


def merge_scores(
    vector_hits: Iterable[tuple[Document, float]],
    lexical_hits: Iterable[tuple[Document, float]],
    vector_weight: float,
    lexical_weight: float,
) -> list[ScoredDocument]:
    """Combine both channels into one ranked list (see module docstring)."""
    lexical_hits = list(lexical_hits)
    top_lexical = max((score for _, score in lexical_hits), default=0.0)

    merged: dict[str, ScoredDocument] = {}
    for doc, similarity in vector_hits:
        merged[doc.id] = ScoredDocument(doc, 0.0, vector_score=float(similarity))
    for doc, raw in lexical_hits:
        entry = merged.setdefault(doc.id, ScoredDocument(doc, 0.0))
        entry.lexical_score = raw / top_lexical if top_lexical > 0 else 0.0

    for entry in merged.values():
        entry.score = vector_weight * entry.vector_score + lexical_weight * entry.lexical_score
    return rank(merged.values())


def rank(results: Iterable[ScoredDocument]) -> list[ScoredDocument]:
    """Sort by score desc, then created_at desc, then id asc."""
    return sorted(
        results,
        key=lambda r: (-r.score, -to_epoch_us(r.document.created_at), r.document.id),
    )
