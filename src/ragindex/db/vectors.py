"""Float32 vector encoding and similarity helpers.

Vectors are stored as raw float32 BLOBs in the sqlite-vec format
(``sqlite_vec.serialize_float32``) and validated on insert with ``vec_f32()``.
Scoring is exact: every candidate vector is compared with the query.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import sqlite_vec

from ragindex.errors import EmbeddingDimensionError


def serialize(vector: np.ndarray | Sequence[float]) -> bytes:
    """Encode *vector* as a little-endian float32 BLOB."""
    return sqlite_vec.serialize_float32(np.asarray(vector, dtype=np.float32).tolist())


def deserialize(blob: bytes) -> np.ndarray:
    """Decode a float32 BLOB written by :func:`serialize`."""
    return np.frombuffer(blob, dtype=np.float32).copy()


def check_dimension(expected: int | None, vector: np.ndarray) -> None:
    """Raise EmbeddingDimensionError if *vector* is not *expected*-dimensional.

    ``expected=None`` means the index is empty and any dimension is accepted.
    """
    actual = int(vector.shape[-1])
    if expected is not None and actual != expected:
        raise EmbeddingDimensionError(expected=expected, actual=actual)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of *a* and *b*; 0.0 when either has zero magnitude."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    if a.shape != b.shape or a.size == 0:
        return 0.0
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row of *matrix*.

    Rows with zero magnitude (and a zero query) score 0.0.
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)
    q_norm = float(np.linalg.norm(query))
    if q_norm == 0.0:
        return np.zeros(matrix.shape[0], dtype=np.float32)
    row_norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ query
    scores = np.zeros(matrix.shape[0], dtype=np.float32)
    nonzero = row_norms > 0.0
    scores[nonzero] = dots[nonzero] / (row_norms[nonzero] * q_norm)
    return scores


def mean_vector(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Element-wise mean of equally sized vectors (empty input → empty vector)."""
    if not vectors:
        return np.zeros(0, dtype=np.float32)
    return np.mean(np.stack(vectors), axis=0).astype(np.float32)
