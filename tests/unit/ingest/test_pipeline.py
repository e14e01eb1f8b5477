"""Tests for the ingestion pipeline."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from docchat.db.models import DocumentStatus
from docchat.errors import VectorStoreError
from docchat.ingest.chunker import RecursiveChunker
from docchat.ingest.pipeline import (
    OUTCOME_ERROR,
    OUTCOME_READY,
    OUTCOME_UNCHANGED,
    Ingestor,
)

TEXT = (
    "The project deadline is June 30.\n\n"
    "The budget is 40k and covers two sprints.\n\n"
    "The team has four engineers and one designer."
)


@pytest.fixture
def ingestor(store, fake_embedder):
    return Ingestor(store, fake_embedder, RecursiveChunker(chunk_size=50, chunk_overlap=10))


def test_ingest_text_ready(ingestor, store):
    result = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    assert result.outcome == OUTCOME_READY
    assert result.ok
    assert result.chunk_count > 1

    document = asyncio.run(store.get_document(result.document_id))
    assert document.status is DocumentStatus.READY
    assert document.owner_user_id == "alice"
    assert document.content_hash

    chunks = asyncio.run(store.list_chunks(result.document_id))
    assert [c.sequence_index for c in chunks] == list(range(result.chunk_count))
    assert all(c.owner_user_id == "alice" and c.source == "plan.txt" for c in chunks)


def test_ingest_reads_file(ingestor, tmp_path):
    path = tmp_path / "plan.txt"
    path.write_text(TEXT, encoding="utf-8")
    result = asyncio.run(ingestor.ingest("alice", str(path)))
    assert result.outcome == OUTCOME_READY


def test_ingest_same_content_is_unchanged(ingestor, fake_embedder):
    first = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))
    calls_after_first = len(fake_embedder.calls)
    second = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    assert second.outcome == OUTCOME_UNCHANGED
    assert second.document_id == first.document_id
    assert second.chunk_count == first.chunk_count
    assert len(fake_embedder.calls) == calls_after_first


def test_reingest_changed_content_overwrites(ingestor, store):
    first = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))
    second = asyncio.run(ingestor.ingest("alice", "plan.txt", text="The deadline moved."))

    assert second.outcome == OUTCOME_READY
    assert second.document_id == first.document_id
    chunks = asyncio.run(store.list_chunks(first.document_id))
    assert [c.text for c in chunks] == ["The deadline moved."]


def test_same_path_other_user_is_separate_document(ingestor):
    a = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))
    b = asyncio.run(ingestor.ingest("bob", "plan.txt", text=TEXT))
    assert a.document_id != b.document_id
    assert b.outcome == OUTCOME_READY


def test_ingest_empty_text_marks_error(ingestor, store):
    result = asyncio.run(ingestor.ingest("alice", "empty.txt", text="   \n"))

    assert result.outcome == OUTCOME_ERROR
    assert result.error == "no text extracted"
    document = asyncio.run(store.get_document(result.document_id))
    assert document.status is DocumentStatus.ERROR
    assert document.error == "no text extracted"


def test_ingest_extraction_failure_marks_error(ingestor, store, tmp_path):
    result = asyncio.run(ingestor.ingest("alice", str(tmp_path / "missing.txt")))

    assert result.outcome == OUTCOME_ERROR
    assert "not found" in result.error
    document = asyncio.run(store.get_document(result.document_id))
    assert document.status is DocumentStatus.ERROR


def test_ingest_embedding_failure_marks_error_without_chunks(store, failing_embedder):
    ingestor = Ingestor(store, failing_embedder)
    result = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    assert result.outcome == OUTCOME_ERROR
    assert "embedding provider unavailable" in result.error
    assert asyncio.run(store.count_chunks(result.document_id)) == 0
    document = asyncio.run(store.get_document(result.document_id))
    assert document.status is DocumentStatus.ERROR


def test_ingest_store_failure_marks_error(ingestor, store):
    with patch.object(
        store, "replace_document", AsyncMock(side_effect=VectorStoreError("disk full"))
    ):
        result = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    assert result.outcome == OUTCOME_ERROR
    assert result.error == "disk full"


def test_unchanged_check_store_failure_marks_error(ingestor, store):
    first = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    with patch.object(
        store, "count_chunks", AsyncMock(side_effect=VectorStoreError("database is locked"))
    ):
        result = asyncio.run(ingestor.ingest("alice", "plan.txt", text=TEXT))

    assert result.outcome == OUTCOME_ERROR
    assert result.document_id == first.document_id
    assert result.error == "database is locked"
    document = asyncio.run(store.get_document(first.document_id))
    assert document.status is DocumentStatus.ERROR


def test_failed_then_fixed_reingest_becomes_ready(store, fake_embedder, failing_embedder):
    failed = asyncio.run(Ingestor(store, failing_embedder).ingest("alice", "p.txt", text=TEXT))
    fixed = asyncio.run(Ingestor(store, fake_embedder).ingest("alice", "p.txt", text=TEXT))
    assert failed.document_id == fixed.document_id
    assert fixed.outcome == OUTCOME_READY


def test_changed_chunk_settings_reembed(store, fake_embedder):
    asyncio.run(Ingestor(store, fake_embedder, RecursiveChunker(50, 10)).ingest("alice", "p.txt", text=TEXT))
    again = asyncio.run(
        Ingestor(store, fake_embedder, RecursiveChunker(500, 10)).ingest("alice", "p.txt", text=TEXT)
    )
    assert again.outcome == OUTCOME_READY
    assert again.chunk_count == 1


# ------------------------------------------------------------------
# ingest_many
# ------------------------------------------------------------------

def test_ingest_many_independent_results(ingestor, tmp_path):
    good = tmp_path / "good.txt"
    good.write_text(TEXT, encoding="utf-8")
    empty = tmp_path / "empty.txt"
    empty.write_text("", encoding="utf-8")

    results = asyncio.run(
        ingestor.ingest_many("alice", [str(good), str(empty), str(tmp_path / "missing.md")])
    )

    assert [r.outcome for r in results] == [OUTCOME_READY, OUTCOME_ERROR, OUTCOME_ERROR]
    assert [r.source_path for r in results] == [
        str(good),
        str(empty),
        str(tmp_path / "missing.md"),
    ]


def test_ingest_many_bounded_concurrency(store, fake_embedder):
    ingestor = Ingestor(store, fake_embedder, concurrency=2)
    active = 0
    peak = 0
    original = ingestor.ingest

    async def _tracked(owner, path, text=None):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        try:
            return await original(owner, path, text=f"{TEXT} {path}")
        finally:
            active -= 1

    with patch.object(ingestor, "ingest", side_effect=_tracked):
        results = asyncio.run(ingestor.ingest_many("alice", [f"d{i}.txt" for i in range(5)]))

    assert len(results) == 5
    assert all(r.outcome == OUTCOME_READY for r in results)
    assert peak <= 2


def test_ingest_many_unexpected_error_reported(ingestor):
    with patch.object(ingestor, "ingest", AsyncMock(side_effect=RuntimeError("kaboom"))):
        results = asyncio.run(ingestor.ingest_many("alice", ["a.txt"]))
    assert results[0].outcome == OUTCOME_ERROR
    assert results[0].error == "kaboom"


def test_invalid_concurrency(store, fake_embedder):
    with pytest.raises(ValueError):
        Ingestor(store, fake_embedder, concurrency=0)
