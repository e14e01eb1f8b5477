"""Document ingestion: extract → chunk → embed → upsert, one document at a time.

Per document:
  1. Register (or reuse) the document by owner + source path, status ``processing``.
  2. Extract text unless it was supplied by the caller.
  3. Chunk with the configured size and overlap.
  4. Skip embedding when the content hash matches the last successful run and
     chunks are still stored.
  5. Embed every chunk, replace the document's chunks in one transaction,
     then mark it ``ready``.

A failing step marks the document ``error`` with the message and the result
reports it; nothing is retried and nothing is raised for provider failures.
Documents are independent, so ``ingest_many`` runs several pipelines
concurrently.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from docchat.db.models import Chunk, DocumentStatus
from docchat.db.store import VectorStore
from docchat.errors import EmbeddingProviderError, ExtractionError, VectorStoreError
from docchat.ingest.chunker import RecursiveChunker
from docchat.ingest.extract import extract_text
from docchat.rag.embedder import Embedder

logger = logging.getLogger(__name__)

OUTCOME_READY = "ready"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_ERROR = "error"


@dataclass
class IngestResult:
    """Outcome of one document's ingestion."""

    document_id: str
    source_path: str
    outcome: str
    chunk_count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != OUTCOME_ERROR


class Ingestor:
    """Run the ingestion pipeline for a user's documents.

    Args:
        store: Vector store receiving documents and chunks.
        embedder: Embeds chunk texts in batches.
        chunker: Splits extracted text.
        concurrency: Maximum documents processed at once by ``ingest_many``.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        chunker: RecursiveChunker | None = None,
        concurrency: int = 4,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.store = store
        self.embedder = embedder
        self.chunker = chunker or RecursiveChunker()
        self.concurrency = concurrency

    async def ingest(
        self,
        owner_user_id: str,
        source_path: str,
        text: str | None = None,
    ) -> IngestResult:
        """Ingest one document for *owner_user_id*.

        ``text`` bypasses extraction; ``source_path`` still identifies the
        document so that ingesting the same path again overwrites it.
        """
        try:
            document = await self.store.register_document(owner_user_id, source_path)
        except VectorStoreError as exc:
            logger.warning("Cannot register %s: %s", source_path, exc)
            return IngestResult("", source_path, OUTCOME_ERROR, error=str(exc))
        logger.info("Ingesting %s for user %s (document %s)", source_path, owner_user_id, document.id)

        try:
            if text is None:
                text = await asyncio.to_thread(extract_text, Path(source_path))
        except ExtractionError as exc:
            return await self._fail(document.id, source_path, str(exc))

        pieces = self.chunker.split(text)
        if not pieces:
            return await self._fail(document.id, source_path, "no text extracted")

        content_hash = self._content_hash(text)
        try:
            if document.content_hash == content_hash:
                stored = await self.store.count_chunks(document.id)
                if stored > 0:
                    await self.store.set_status(document.id, DocumentStatus.READY)
                    logger.info("%s unchanged; %d chunks already stored", source_path, stored)
                    return IngestResult(document.id, source_path, OUTCOME_UNCHANGED, stored)

            vectors = await self.embedder.embed(pieces)
            chunks = [
                Chunk(
                    document_id=document.id,
                    owner_user_id=owner_user_id,
                    sequence_index=index,
                    text=piece,
                    source=source_path,
                    embedding=vector,
                )
                for index, (piece, vector) in enumerate(zip(pieces, vectors))
            ]
            await self.store.replace_document(document.id, chunks)
            await self.store.set_status(
                document.id, DocumentStatus.READY, content_hash=content_hash
            )
        except (EmbeddingProviderError, VectorStoreError) as exc:
            return await self._fail(document.id, source_path, str(exc))

        logger.info("%s ready with %d chunks", source_path, len(chunks))
        return IngestResult(document.id, source_path, OUTCOME_READY, len(chunks))

    async def ingest_many(
        self, owner_user_id: str, source_paths: Sequence[str]
    ) -> list[IngestResult]:
        """Ingest several documents concurrently; results follow *source_paths* order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(path: str) -> IngestResult:
            async with semaphore:
                return await self.ingest(owner_user_id, path)

        outcomes = await asyncio.gather(
            *(_bounded(p) for p in source_paths), return_exceptions=True
        )
        results: list[IngestResult] = []
        for path, outcome in zip(source_paths, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Ingestion of %s aborted: %s", path, outcome)
                results.append(IngestResult("", path, OUTCOME_ERROR, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    def _content_hash(self, text: str) -> str:
        # Chunking and model settings are part of the key: changing them re-embeds.
        key = (
            f"{self.chunker.chunk_size}:{self.chunker.chunk_overlap}:"
            f"{self.embedder.model}:{self.embedder.dimensions}\n{text}"
        )
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    async def _fail(self, document_id: str, source_path: str, message: str) -> IngestResult:
        logger.warning("Ingestion of %s failed: %s", source_path, message)
        await self.store.set_status(document_id, DocumentStatus.ERROR, error=message)
        return IngestResult(document_id, source_path, OUTCOME_ERROR, error=message)
