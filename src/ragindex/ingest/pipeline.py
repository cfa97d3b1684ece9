"""Indexing pipeline — chunk, embed, and atomically persist a source.

For each ``(source_type, source_id)``:
  1. Take the per-source lock (different sources run concurrently).
  2. Skip if the source is already indexed (idempotent).
  3. Chunk the text deterministically.
  4. Embed every chunk; any failure aborts before anything is written.
  5. Persist all document/embedding pairs in one transaction.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from ragindex.db.models import Document, Embedding, SourceType
from ragindex.db.repository import Repository
from ragindex.errors import EmbeddingServiceError
from ragindex.ingest.base import BaseChunker, document_id_for
from ragindex.ingest.conversation import ConversationChunker, ConversationMessage
from ragindex.ingest.embedder import Embedder, is_embeddable, truncate_to_token_limit
from ragindex.ingest.locks import KeyedLock
from ragindex.ingest.plaintext import PlainTextChunker

logger = logging.getLogger(__name__)

SKIP_ALREADY_INDEXED = "already indexed"
SKIP_NOT_EMBEDDABLE = "not embeddable"
SKIP_MULTIMODAL = "multimodal message"


@dataclass
class IndexResult:
    """Outcome of indexing one source.

    Attributes:
        source_type: Kind of the source.
        source_id: Identifier of the source.
        chunks: Number of document/embedding pairs written (0 when skipped).
        skipped: Reason the source was not written, or None.
    """

    source_type: SourceType
    source_id: str
    chunks: int = 0
    skipped: str | None = None

    @property
    def indexed(self) -> bool:
        return self.chunks > 0


@dataclass
class SourceText:
    """A ``(source_type, source_id, text)`` triple handed to ``index_many``."""

    source_type: SourceType
    source_id: str
    text: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class IndexBatchReport:
    results: list[IndexResult] = field(default_factory=list)
    failures: dict[tuple[SourceType, str], str] = field(default_factory=dict)

    @property
    def indexed(self) -> int:
        return sum(1 for r in self.results if r.indexed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)


class IndexingPipeline:
    """Turn source text into indexed document/embedding pairs.

    Args:
        repo:   Open Repository.
        embedder: Embedding service client.
        chunker: Chunker for ``index_source`` (default PlainTextChunker()).
        conversation_chunker: Chunker for ``index_conversation``.
        max_concurrency: Sources embedded in parallel by ``index_many``.
        max_message_tokens: Single messages are truncated to this many tokens.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: Embedder,
        chunker: BaseChunker | None = None,
        conversation_chunker: ConversationChunker | None = None,
        max_concurrency: int = 4,
        max_message_tokens: int = 8_000,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._repo = repo
        self._embedder = embedder
        self._chunker = chunker or PlainTextChunker()
        self._conversation_chunker = conversation_chunker or ConversationChunker()
        self._max_concurrency = max_concurrency
        self._max_message_tokens = max_message_tokens
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def index_source(
        self,
        source_type: SourceType | str,
        source_id: str,
        text: str,
        metadata: dict[str, str] | None = None,
    ) -> IndexResult:
        """Index *text* for the source unless it is already indexed.

        Raises:
            EmbeddingServiceError: If any chunk fails to embed (nothing is written).
            EmbeddingDimensionError: If the vectors do not match the index dimension.
            StorageError: If the write transaction fails (nothing is written).
        """
        return await self._index(
            SourceType(source_type),
            source_id,
            lambda: self._chunker.chunk(source_type, source_id, text, metadata)
            if is_embeddable(text)
            else [],
        )

    async def reindex_source(
        self,
        source_type: SourceType | str,
        source_id: str,
        text: str,
        metadata: dict[str, str] | None = None,
    ) -> IndexResult:
        """Replace the source's documents with a fresh indexing of *text*.

        The old documents are removed in the same transaction that writes the
        new ones, so a failed embedding call leaves the previous index intact.
        """
        return await self._index(
            SourceType(source_type),
            source_id,
            lambda: self._chunker.chunk(source_type, source_id, text, metadata)
            if is_embeddable(text)
            else [],
            force=True,
        )

    async def index_conversation(
        self, conversation_id: str, messages: list[ConversationMessage]
    ) -> IndexResult:
        """Index a conversation, packing whole turns into chunks."""
        return await self._index(
            SourceType.CONVERSATION,
            conversation_id,
            lambda: self._conversation_chunker.chunk_messages(conversation_id, messages),
        )

    async def index_message(
        self,
        message_id: str,
        text: str,
        metadata: dict[str, str] | None = None,
        had_images: bool = False,
    ) -> IndexResult:
        """Index one message as a single chunk.

        Messages sent with images are skipped; their text alone is not a
        faithful record of the turn.
        """
        if had_images:
            logger.debug("Skipping multimodal message %s", message_id)
            return IndexResult(SourceType.MESSAGE, message_id, skipped=SKIP_MULTIMODAL)

        def build() -> list[Document]:
            if not is_embeddable(text):
                return []
            return [
                Document(
                    id=document_id_for(SourceType.MESSAGE, message_id, 0),
                    source_type=SourceType.MESSAGE,
                    source_id=message_id,
                    chunk_index=0,
                    content=truncate_to_token_limit(text.strip(), self._max_message_tokens),
                    metadata=dict(metadata or {}),
                )
            ]

        return await self._index(SourceType.MESSAGE, message_id, build)

    async def index_many(self, items: Iterable[SourceText]) -> IndexBatchReport:
        """Index many sources concurrently; one failure does not stop the batch."""
        report = IndexBatchReport()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(item: SourceText) -> IndexResult | None:
            async with semaphore:
                try:
                    return await self.index_source(
                        item.source_type, item.source_id, item.text, item.metadata
                    )
                except Exception as exc:
                    logger.exception(
                        "Failed to index %s/%s", SourceType(item.source_type).value, item.source_id
                    )
                    report.failures[(SourceType(item.source_type), item.source_id)] = str(exc)
                    return None

        items = list(items)
        outcomes = await asyncio.gather(*(run(item) for item in items))
        report.results = [r for r in outcomes if r is not None]
        logger.info(
            "Batch indexing complete: %d indexed, %d skipped, %d failed (of %d)",
            report.indexed,
            report.skipped,
            len(report.failures),
            len(items),
        )
        return report

    # ------------------------------------------------------------------
    # Shared path
    # ------------------------------------------------------------------

    async def _index(
        self,
        source_type: SourceType,
        source_id: str,
        build: Callable[[], list[Document]],
        force: bool = False,
    ) -> IndexResult:
        async with self._locks.hold((source_type, source_id)):
            if not force and await self._repo.is_source_indexed(source_type, source_id):
                logger.debug("Source %s/%s already indexed", source_type.value, source_id)
                return IndexResult(source_type, source_id, skipped=SKIP_ALREADY_INDEXED)

            documents = build()
            if not documents:
                logger.warning(
                    "Source %s/%s produced no embeddable chunks", source_type.value, source_id
                )
                return IndexResult(source_type, source_id, skipped=SKIP_NOT_EMBEDDABLE)

            pairs = await self._embed(documents)
            if force:
                await self._repo.replace_source(source_type, source_id, pairs)
            else:
                await self._repo.insert_documents_with_embeddings(pairs)

        logger.info(
            "Indexed %s/%s: %d chunks", source_type.value, source_id, len(pairs)
        )
        return IndexResult(source_type, source_id, chunks=len(pairs))

    async def _embed(self, documents: list[Document]) -> list[tuple[Document, Embedding]]:
        try:
            vectors = await self._embedder.embed_many([d.content for d in documents])
        except EmbeddingServiceError:
            raise
        except Exception as exc:
            raise EmbeddingServiceError(f"Embedding failed: {exc}") from exc
        if len(vectors) != len(documents):
            raise EmbeddingServiceError(
                f"Embedder returned {len(vectors)} vectors for {len(documents)} chunks"
            )
        return [
            (doc, Embedding(document_id=doc.id, vector=vec, model=self._embedder.model))
            for doc, vec in zip(documents, vectors)
        ]
