"""Async vector store over the docchat SQLite database.

Every operation opens its own connection inside a worker thread, so
ingestion of one document never blocks searches on another (the database
runs in WAL mode). Each call is bounded by ``timeout`` seconds; SQL failures
and timeouts surface as VectorStoreError.

Search requires a SearchFilter naming one owner and at least one document.
An incomplete filter returns no results; it never widens to an unfiltered
query.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from docchat.db.connection import Database
from docchat.db.models import Chunk, Document, DocumentStatus
from docchat.db.repository import Repository
from docchat.db.schema import initialize
from docchat.errors import ScopeViolation, VectorStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SearchFilter:
    """Declarative isolation boundary for a similarity search."""

    owner_user_id: str
    document_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, owner_user_id: str, document_ids: Iterable[str]) -> SearchFilter:
        return cls(owner_user_id=owner_user_id, document_ids=frozenset(document_ids))

    @property
    def is_complete(self) -> bool:
        return bool(self.owner_user_id) and bool(self.document_ids)

    def require(self) -> None:
        """Raise ScopeViolation unless both owner and a non-empty document set are present."""
        if not self.owner_user_id:
            raise ScopeViolation("Search attempted without an owner user id.")
        if not self.document_ids:
            raise ScopeViolation("Search attempted without any selected document ids.")


@dataclass
class SearchHit:
    chunk: Chunk
    similarity_score: float


class VectorStore:
    """Scoped chunk storage and cosine similarity search.

    Args:
        db_path: SQLite database file (created and migrated on first use).
        dimensions: Embedding dimensionality; every stored and query vector
            must have exactly this length.
        timeout: Seconds allowed per store operation.
    """

    def __init__(self, db_path: Path | str, dimensions: int, timeout: float = 10.0) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self._db = Database(db_path, timeout=timeout)
        self.dimensions = dimensions
        self.timeout = timeout
        self._initialized = False
        self._init_lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self._db.db_path

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def upsert(self, chunks: Sequence[Chunk]) -> None:
        """Persist chunks keyed by ``(document_id, sequence_index)``; re-ingestion overwrites."""
        if not chunks:
            return
        await self._run(lambda repo: repo.upsert_chunks(chunks, self.dimensions))
        logger.debug("Upserted %d chunks", len(chunks))

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Upsert *chunks* for *document_id* and drop any stale tail from a longer previous run.

        Both happen in one transaction; on failure the previous chunks stay as they were.

        Returns the number of stale chunks removed.
        """
        if any(c.document_id != document_id for c in chunks):
            raise ScopeViolation(f"replace_document received chunks of another document than '{document_id}'.")

        removed = await self._run(
            lambda repo: repo.replace_chunks(document_id, chunks, self.dimensions)
        )
        if removed:
            logger.debug("Removed %d stale chunks of document %s", removed, document_id)
        return removed

    async def search(
        self, query_vector: Sequence[float], k: int, filter: SearchFilter
    ) -> list[SearchHit]:
        """Return up to *k* best-matching chunks inside *filter*, best first."""
        if not filter.is_complete:
            logger.warning("Search with incomplete scope filter rejected (owner=%r)", filter.owner_user_id)
            return []
        rows = await self._run(
            lambda repo: repo.search(
                query_vector,
                self.dimensions,
                filter.owner_user_id,
                filter.document_ids,
                k,
            )
        )
        return [SearchHit(chunk=chunk, similarity_score=score) for chunk, score in rows]

    async def count_chunks(self, document_id: str) -> int:
        return await self._run(lambda repo: repo.count_chunks(document_id))

    async def list_chunks(self, document_id: str) -> list[Chunk]:
        return await self._run(lambda repo: repo.list_chunks(document_id))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def register_document(self, owner_user_id: str, source_path: str) -> Document:
        return await self._run(lambda repo: repo.register_document(owner_user_id, source_path))

    async def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        content_hash: str | None = None,
    ) -> None:
        await self._run(
            lambda repo: repo.set_status(
                document_id, status, error=error, content_hash=content_hash
            )
        )

    async def get_document(self, document_id: str) -> Document | None:
        return await self._run(lambda repo: repo.get_document(document_id))

    async def list_documents(self, owner_user_id: str) -> list[Document]:
        return await self._run(lambda repo: repo.list_documents(owner_user_id))

    async def delete_document(self, owner_user_id: str, document_id: str) -> int:
        """Delete one of *owner_user_id*'s documents. Returns chunks removed.

        Raises:
            ScopeViolation: If the document belongs to someone else.
            VectorStoreError: If the document does not exist.
        """

        def _delete(repo: Repository) -> int:
            document = repo.get_document(document_id)
            if document is None:
                raise VectorStoreError(f"Unknown document '{document_id}'.")
            if document.owner_user_id != owner_user_id:
                raise ScopeViolation(f"Document '{document_id}' is not owned by '{owner_user_id}'.")
            return repo.delete_document(document_id)

        return await self._run(_delete)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(self, operation: Callable[[Repository], T]) -> T:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute, operation), timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            raise VectorStoreError(
                f"Vector store operation timed out after {self.timeout:.1f}s."
            ) from exc

    def _execute(self, operation: Callable[[Repository], T]) -> T:
        try:
            conn = self._db.connect()
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Cannot open vector store '{self.db_path}': {exc}") from exc
        try:
            with self._init_lock:
                if not self._initialized:
                    initialize(conn)
                    self._initialized = True
            return operation(Repository(conn))
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Vector store operation failed: {exc}") from exc
        finally:
            conn.close()
