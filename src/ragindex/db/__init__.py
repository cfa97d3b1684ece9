"""ragindex database layer."""

from ragindex.db.connection import Database
from ragindex.db.migrations import MIGRATIONS, run_migrations
from ragindex.db.models import Document, Embedding, ScoredDocument, SourceType
from ragindex.db.repository import Repository
from ragindex.db.schema import initialize

__all__ = [
    "Database",
    "Document",
    "Embedding",
    "MIGRATIONS",
    "Repository",
    "ScoredDocument",
    "SourceType",
    "initialize",
    "run_migrations",
]
