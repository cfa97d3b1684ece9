"""Base chunker interface for all ragindex source kinds."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime

from ragindex.db.models import Document, SourceType, utcnow

# Namespace for deterministic document ids: the same (type, source, index)
# always maps to the same id.
_DOCUMENT_NAMESPACE = uuid.UUID("6f0e3c57-2f5b-4a8e-9a43-0f3d7d1b8c21")


def document_id_for(source_type: SourceType | str, source_id: str, chunk_index: int) -> str:
    """Return the stable document id for one chunk of a source."""
    key = f"{SourceType(source_type).value}:{source_id}:{chunk_index}"
    return str(uuid.uuid5(_DOCUMENT_NAMESPACE, key))


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``split()`` and may use ``_split_fixed_window()``
    for oversized segments. ``chunk()`` turns the segments into Documents with
    sequential ``chunk_index`` and deterministic ids, so identical input
    always yields identical chunks.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 512, overlap: float = 0.10) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be in [0.0, 1.0)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def split(self, content: str) -> list[str]:
        """Split *content* into ordered, non-empty text segments."""

    def chunk(
        self,
        source_type: SourceType | str,
        source_id: str,
        content: str,
        metadata: dict[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> list[Document]:
        """Split *content* into Documents for the source.

        Args:
            source_type: Kind of the originating record.
            source_id: Identifier of the originating record.
            content: Full text of the source.
            metadata: Copied onto every produced Document.
            created_at: Timestamp for every chunk (defaults to now).

        Returns:
            Ordered list of Documents with sequential ``chunk_index``.
        """
        if not content.strip():
            return []
        return self._make_documents(
            source_type, source_id, self.split(content), metadata, created_at
        )

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    @property
    def char_budget(self) -> int:
        return self.chunk_size * 4

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split *text* into fixed-window segments with overlap.

        Window size = ``self.chunk_size * 4`` characters.
        Overlap     = ``self.overlap`` fraction of window size.
        Segments are stripped; empty segments are omitted.
        """
        if not text.strip():
            return []

        char_size = self.char_budget
        overlap_chars = int(char_size * self.overlap)
        step = max(1, char_size - overlap_chars)

        segments: list[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            end = min(pos + char_size, length)
            segment = text[pos:end].strip()
            if segment:
                segments.append(segment)
            if end >= length:
                break
            pos += step

        return segments

    def _pack(self, units: list[str], separator: str = " ") -> list[str]:
        """Greedily pack *units* into segments of at most ``char_budget`` characters.

        A unit larger than the budget is split with ``_split_fixed_window()``.
        """
        budget = self.char_budget
        segments: list[str] = []
        current = ""
        for unit in units:
            if len(unit) > budget:
                if current:
                    segments.append(current)
                    current = ""
                segments.extend(self._split_fixed_window(unit))
                continue
            if current and len(current) + len(separator) + len(unit) > budget:
                segments.append(current)
                current = ""
            current = f"{current}{separator}{unit}" if current else unit
        if current:
            segments.append(current)
        return segments

    def _make_documents(
        self,
        source_type: SourceType | str,
        source_id: str,
        texts: list[str],
        metadata: dict[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> list[Document]:
        """Convert a list of text strings into sequentially indexed Documents."""
        stamp = created_at or utcnow()
        return [
            Document(
                id=document_id_for(source_type, source_id, i),
                source_type=SourceType(source_type),
                source_id=source_id,
                chunk_index=i,
                content=t,
                created_at=stamp,
                metadata=dict(metadata or {}),
            )
            for i, t in enumerate(texts)
        ]
