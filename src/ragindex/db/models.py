"""Domain models for the ragindex database layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

import numpy as np


class SourceType(str, Enum):
    """Kinds of external content that can be indexed.

    Caller input is parsed strictly so a typo cannot start a separate index.
    Values read back from storage that are not listed here map to ``OTHER``
    (see from_stored) so rows written by a newer release stay loadable.
    """

    CONVERSATION = "conversation"
    MESSAGE = "message"
    FAVORITE = "favorite"
    CODE = "code"
    DOCUMENTATION = "documentation"
    OTHER = "other"

    @classmethod
    def from_stored(cls, value: str) -> SourceType:
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def to_epoch_us(value: datetime) -> int:
    """Convert *value* to integer epoch microseconds (naive values are taken as UTC).

    Exact for every datetime; no float timestamp is involved.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MICROSECOND


def from_epoch_us(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


@dataclass
class Document:
    id: str
    source_type: SourceType
    source_id: str
    chunk_index: int
    content: str
    created_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.source_type = SourceType(self.source_type)
        if self.chunk_index < 0:
            raise ValueError(f"chunk_index must be >= 0, got {self.chunk_index}")

    @classmethod
    def new(
        cls,
        source_type: SourceType | str,
        source_id: str,
        chunk_index: int,
        content: str,
        metadata: dict[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> Document:
        """Build a document with a fresh UUID4 id."""
        return cls(
            id=str(uuid.uuid4()),
            source_type=SourceType(source_type),
            source_id=source_id,
            chunk_index=chunk_index,
            content=content,
            created_at=created_at or utcnow(),
            metadata=dict(metadata or {}),
        )


@dataclass
class Embedding:
    document_id: str
    vector: np.ndarray
    model: str = ""

    def __post_init__(self) -> None:
        self.vector = np.asarray(self.vector, dtype=np.float32)
        if self.vector.ndim != 1 or self.vector.size == 0:
            raise ValueError("vector must be a non-empty one-dimensional sequence")

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class ScoredDocument:
    """A retrieved document with its final hybrid score and per-channel scores.

    Attributes:
        document: The stored Document.
        score: Weighted combination of the two channel scores (higher = better).
        vector_score: Cosine similarity to the query (0.0 if not scored).
        lexical_score: Full-text relevance normalised to [0, 1] (0.0 if no hit).
    """

    document: Document
    score: float
    vector_score: float = 0.0
    lexical_score: float = 0.0
