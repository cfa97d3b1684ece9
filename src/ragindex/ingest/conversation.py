"""Conversation chunker — packs whole turns so a message is never cut mid-way."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ragindex.db.models import Document, SourceType
from ragindex.ingest.base import BaseChunker

# ~1500 tokens per chunk.
DEFAULT_CONVERSATION_CHUNK_CHARS = 6000


@dataclass
class ConversationMessage:
    """One turn of a conversation."""

    content: str
    is_user: bool = True

    def render(self) -> str:
        speaker = "User" if self.is_user else "Assistant"
        return f"{speaker}: {self.content.strip()}"


class ConversationChunker(BaseChunker):
    """Group consecutive turns into chunks of at most ``chunk_size`` tokens.

    Turns are rendered as ``User: …`` / ``Assistant: …`` and separated by a
    blank line. A single turn longer than the budget is split into fixed
    windows. Each chunk's metadata records how many turns it holds.
    """

    def __init__(
        self, chunk_size: int = DEFAULT_CONVERSATION_CHUNK_CHARS // 4, overlap: float = 0.0
    ) -> None:
        super().__init__(chunk_size=chunk_size, overlap=overlap)

    def split(self, content: str) -> list[str]:
        turns = [t.strip() for t in content.split("\n\n")]
        return self._pack([t for t in turns if t], separator="\n\n")

    def chunk_messages(
        self,
        source_id: str,
        messages: list[ConversationMessage],
        created_at: datetime | None = None,
    ) -> list[Document]:
        """Chunk a conversation's messages into Documents of type ``conversation``."""
        budget = self.char_budget
        segments: list[str] = []
        counts: list[int] = []
        current, turns = "", 0

        for message in messages:
            if not message.content.strip():
                continue
            turn = message.render()
            if len(turn) > budget:
                if current:
                    segments.append(current)
                    counts.append(turns)
                    current, turns = "", 0
                pieces = self._split_fixed_window(turn)
                segments.extend(pieces)
                counts.extend([1] * len(pieces))
                continue
            if current and len(current) + 2 + len(turn) > budget:
                segments.append(current)
                counts.append(turns)
                current, turns = "", 0
            current = f"{current}\n\n{turn}" if current else turn
            turns += 1

        if current:
            segments.append(current)
            counts.append(turns)

        documents = self._make_documents(
            SourceType.CONVERSATION,
            source_id,
            segments,
            {"conversation_id": source_id},
            created_at,
        )
        for doc, count in zip(documents, counts):
            doc.metadata["message_count"] = str(count)
        return documents
