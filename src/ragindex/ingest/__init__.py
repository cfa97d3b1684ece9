"""ragindex ingest pipeline — chunkers, embedder, indexing pipeline."""

from ragindex.ingest.base import BaseChunker, document_id_for
from ragindex.ingest.conversation import ConversationChunker, ConversationMessage
from ragindex.ingest.embedder import Embedder, EmbeddingConfig, LiteLLMEmbedder
from ragindex.ingest.pipeline import IndexBatchReport, IndexingPipeline, IndexResult, SourceText
from ragindex.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "ConversationChunker",
    "ConversationMessage",
    "Embedder",
    "EmbeddingConfig",
    "IndexBatchReport",
    "IndexResult",
    "IndexingPipeline",
    "LiteLLMEmbedder",
    "PlainTextChunker",
    "SourceText",
    "document_id_for",
]
