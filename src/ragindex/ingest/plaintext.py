"""Plain text chunker — sentence packing with fixed-window fallback."""

from __future__ import annotations

import re

from ragindex.ingest.base import BaseChunker

# Sentence ends followed by whitespace, or paragraph breaks.
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+|\n\s*\n")


class PlainTextChunker(BaseChunker):
    """Split plain text on sentence boundaries and pack up to ``chunk_size`` tokens.

    Sentences longer than the budget fall back to
    ``BaseChunker._split_fixed_window()``.
    """

    def split(self, content: str) -> list[str]:
        sentences = [s.strip() for s in _SENTENCE_RE.split(content)]
        return self._pack([s for s in sentences if s])
