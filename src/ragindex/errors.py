"""Error kinds raised by the document store, indexing pipeline and retriever.

Every error carries a message that names the cause and, where one exists,
the action that fixes it. "Already indexed", "nothing to evict" and empty
search results are normal results and never raise.
"""

from __future__ import annotations


class RagIndexError(Exception):
    """Base class for all ragindex errors."""


class StorageError(RagIndexError):
    """A transaction could not complete; nothing from it was committed."""


class QueryError(RagIndexError):
    """The full-text index rejected a query expression."""

    def __init__(self, query: str, reason: str) -> None:
        self.query = query
        self.reason = reason
        super().__init__(f"Malformed lexical query {query!r}: {reason}")


class EmbeddingServiceError(RagIndexError):
    """The embedding service failed, timed out, or returned an unusable response."""


class EmbeddingDimensionError(RagIndexError):
    """A vector's dimension does not match the dimension stored in the index.

    This signals a configuration or model-version mismatch, not a transient
    failure; retrying will not help.
    """

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: index stores {expected}-d vectors, "
            f"got a {actual}-d vector. Re-index with the original embedding model "
            "or clear the index before switching models."
        )
