"""Index maintenance: counts, age-based eviction and full reset.

Nothing here treats "nothing found" as an error: evicting with no matching
rows returns 0 and counts on an empty index are 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ragindex.db.models import Document, SourceType, utcnow
from ragindex.db.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class IndexStats:
    documents: int = 0
    embeddings: int = 0
    by_type: dict[SourceType, int] = field(default_factory=dict)
    dimension: int | None = None
    models: list[str] = field(default_factory=list)

    @property
    def orphaned_documents(self) -> int:
        """Documents without an embedding (always 0 for a consistent index)."""
        return self.documents - self.embeddings


class Maintenance:
    """Diagnostics and eviction over one index.

    Args:
        repo: Open Repository.
        retention_days: Age limit used by ``evict_expired``; None disables it.
    """

    def __init__(self, repo: Repository, retention_days: int | None = None) -> None:
        self._repo = repo
        self.retention_days = retention_days

    async def get_document_count(self) -> int:
        return await self._repo.get_document_count()

    async def get_embedding_count(self) -> int:
        return await self._repo.get_embedding_count()

    async def get_document_count_by_type(self, source_type: SourceType | str) -> int:
        return await self._repo.get_document_count_by_type(source_type)

    async def get_indexed_source_ids(self, source_type: SourceType | str) -> list[str]:
        return await self._repo.get_indexed_source_ids(source_type)

    async def get_oldest_documents(self, limit: int = 10) -> list[Document]:
        return await self._repo.get_oldest_documents(limit)

    async def statistics(self) -> IndexStats:
        return IndexStats(
            documents=await self._repo.get_document_count(),
            embeddings=await self._repo.get_embedding_count(),
            by_type=await self._repo.get_document_counts_by_type(),
            dimension=await self._repo.embedding_dimension(),
            models=await self._repo.get_embedding_models(),
        )

    async def evict_older_than(self, cutoff: datetime) -> int:
        """Delete every document created strictly before *cutoff*.

        Embeddings and lexical entries go with their documents. Returns the
        number of documents removed.
        """
        removed = await self._repo.delete_documents_older_than(cutoff)
        if removed:
            logger.info("Evicted %d documents older than %s", removed, cutoff.isoformat())
        else:
            logger.debug("No documents older than %s", cutoff.isoformat())
        return removed

    async def evict_expired(self, now: datetime | None = None) -> int:
        """Evict documents older than ``retention_days`` before *now*."""
        if self.retention_days is None:
            logger.debug("Retention not configured; nothing to evict")
            return 0
        cutoff = (now or utcnow()) - timedelta(days=self.retention_days)
        return await self.evict_older_than(cutoff)

    async def clear_all(self) -> int:
        """Remove every document, embedding and lexical entry."""
        removed = await self._repo.clear_all()
        logger.info("Cleared index: %d documents removed", removed)
        return removed
