"""docchat database layer."""

from docchat.db.connection import Database
from docchat.db.migrations import MIGRATIONS, run_migrations
from docchat.db.schema import initialize
from docchat.db.store import SearchFilter, SearchHit, VectorStore

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "SearchFilter",
    "SearchHit",
    "VectorStore",
]
