"""Repository pattern for all docchat database operations.

Single interface for documents, chunks and scoped vector search. The
connection is owned by the caller; methods are synchronous and are run off
the event loop by docchat.db.store.VectorStore.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable, Sequence

from docchat.db.models import Chunk, Document, DocumentStatus
from docchat.db.vectors import distance_to_similarity, serialize_vector
from docchat.errors import ScopeViolation, VectorStoreError

_DOCUMENT_COLUMNS = "id, owner_user_id, source_path, status, content_hash, error, created_at"


class Repository:
    """Data access layer for documents and their embedded chunks."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see docchat.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def register_document(self, owner_user_id: str, source_path: str) -> Document:
        """Create the document in ``processing`` state, or reset an existing one.

        A document is identified by ``(owner_user_id, source_path)``; uploading
        the same path again reuses its id so re-ingestion overwrites chunks.
        """
        existing = self.get_document_by_path(owner_user_id, source_path)
        if existing is not None:
            self.set_status(existing.id, DocumentStatus.PROCESSING)
            existing.status = DocumentStatus.PROCESSING
            existing.error = None
            return existing

        document_id = str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO documents (id, owner_user_id, source_path, status)
            VALUES (?, ?, ?, ?)
            """,
            (document_id, owner_user_id, source_path, DocumentStatus.PROCESSING.value),
        )
        self._conn.commit()
        document = self.get_document(document_id)
        if document is None:
            raise VectorStoreError(f"Document '{document_id}' vanished right after insert.")
        return document

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",
            (document_id,),
        ).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_path(self, owner_user_id: str, source_path: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_user_id = ? AND source_path = ?",
            (owner_user_id, source_path),
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, owner_user_id: str) -> list[Document]:
        """Return the documents owned by *owner_user_id*, oldest first."""
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_user_id = ? "
            "ORDER BY created_at, source_path",
            (owner_user_id,),
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
        content_hash: str | None = None,
    ) -> None:
        """Move a document to *status*. ``error`` is cleared unless given."""
        if content_hash is None:
            self._conn.execute(
                "UPDATE documents SET status = ?, error = ? WHERE id = ?",
                (status.value, error, document_id),
            )
        else:
            self._conn.execute(
                "UPDATE documents SET status = ?, error = ?, content_hash = ? WHERE id = ?",
                (status.value, error, content_hash, document_id),
            )
        self._conn.commit()

    def delete_document(self, document_id: str) -> int:
        """Delete a document and its chunks. Returns the number of chunks removed."""
        removed = self.count_chunks(document_id)
        self._conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self._conn.commit()
        return removed

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunks(self, chunks: Sequence[Chunk], dimensions: int) -> None:
        """Insert or overwrite chunks keyed by ``(document_id, sequence_index)``.

        All rows are written in one transaction. The chunk owner must equal the
        parent document owner.

        Raises:
            ScopeViolation: If a chunk's owner differs from its document's owner.
            VectorStoreError: If the parent document is unknown, a chunk has no
                embedding, or an embedding has the wrong dimensionality.
        """
        if not chunks:
            return
        try:
            self._write_chunks(chunks, dimensions)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def replace_chunks(self, document_id: str, chunks: Sequence[Chunk], dimensions: int) -> int:
        """Upsert *chunks* and delete the document's chunks past the last one, in one transaction.

        Returns the number of stale chunks removed. On any failure nothing is kept.
        """
        try:
            self._write_chunks(chunks, dimensions)
            removed = self._delete_tail(document_id, len(chunks))
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        return removed

    def _write_chunks(self, chunks: Sequence[Chunk], dimensions: int) -> None:
        if not chunks:
            return
        self._check_owners(chunks)
        rows = [
            (
                c.document_id,
                c.owner_user_id,
                c.sequence_index,
                c.text,
                c.source,
                serialize_vector(_require_embedding(c), dimensions),
            )
            for c in chunks
        ]
        self._conn.executemany(
            """
            INSERT INTO chunks (document_id, owner_user_id, sequence_index, text, source, embedding)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(document_id, sequence_index) DO UPDATE SET
                owner_user_id = excluded.owner_user_id,
                text = excluded.text,
                source = excluded.source,
                embedding = excluded.embedding,
                created_at = datetime('now')
            """,
            rows,
        )

    def delete_chunks_from(self, document_id: str, start_index: int) -> int:
        """Delete chunks of *document_id* with ``sequence_index >= start_index``."""
        removed = self._delete_tail(document_id, start_index)
        self._conn.commit()
        return removed

    def _delete_tail(self, document_id: str, start_index: int) -> int:
        return self._conn.execute(
            "DELETE FROM chunks WHERE document_id = ? AND sequence_index >= ?",
            (document_id, start_index),
        ).rowcount

    def count_chunks(self, document_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def list_chunks(self, document_id: str) -> list[Chunk]:
        """Return a document's chunks in sequence order (without embeddings)."""
        rows = self._conn.execute(
            """
            SELECT document_id, owner_user_id, sequence_index, text, source, created_at
            FROM chunks WHERE document_id = ? ORDER BY sequence_index
            """,
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    # ------------------------------------------------------------------
    # Scoped similarity search
    # ------------------------------------------------------------------

    def search(
        self,
        embedding: Sequence[float],
        dimensions: int,
        owner_user_id: str,
        document_ids: Iterable[str],
        limit: int,
    ) -> list[tuple[Chunk, float]]:
        """Exact cosine k-NN restricted to one owner and a set of documents.

        Returns (chunk, similarity) sorted by similarity descending, ties by
        sequence_index then document_id. An empty owner or document set
        returns [] without querying.
        """
        ids = sorted(set(document_ids))
        if not owner_user_id or not ids or limit < 1:
            return []

        placeholders = ",".join("?" * len(ids))
        rows = self._conn.execute(
            f"""
            SELECT document_id, owner_user_id, sequence_index, text, source, created_at,
                   vec_distance_cosine(embedding, ?) AS distance
            FROM chunks
            WHERE owner_user_id = ? AND document_id IN ({placeholders})
            ORDER BY distance ASC, sequence_index ASC, document_id ASC
            LIMIT ?
            """,
            (serialize_vector(embedding, dimensions), owner_user_id, *ids, limit),
        ).fetchall()

        return [(_row_to_chunk(r), distance_to_similarity(r["distance"])) for r in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_owners(self, chunks: Sequence[Chunk]) -> None:
        owners: dict[str, str] = {}
        for chunk in chunks:
            if chunk.document_id not in owners:
                row = self._conn.execute(
                    "SELECT owner_user_id FROM documents WHERE id = ?", (chunk.document_id,)
                ).fetchone()
                if row is None:
                    raise VectorStoreError(f"Unknown document '{chunk.document_id}'.")
                owners[chunk.document_id] = row["owner_user_id"]
            if chunk.owner_user_id != owners[chunk.document_id]:
                raise ScopeViolation(
                    f"Chunk {chunk.sequence_index} of document '{chunk.document_id}' "
                    "does not carry its document's owner."
                )


def _require_embedding(chunk: Chunk) -> list[float]:
    if chunk.embedding is None:
        raise VectorStoreError(
            f"Chunk {chunk.sequence_index} of document '{chunk.document_id}' has no embedding."
        )
    return chunk.embedding


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        owner_user_id=row["owner_user_id"],
        source_path=row["source_path"],
        status=DocumentStatus(row["status"]),
        content_hash=row["content_hash"],
        error=row["error"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        document_id=row["document_id"],
        owner_user_id=row["owner_user_id"],
        sequence_index=row["sequence_index"],
        text=row["text"],
        source=row["source"],
        created_at=row["created_at"],
    )
