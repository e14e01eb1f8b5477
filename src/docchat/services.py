"""Wiring: build the store, provider clients and pipeline stages from config.

Every component receives its collaborators explicitly; nothing here is a
module-level singleton, so tests and the CLI can build independent sets.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from docchat.chat.session import ChatSession
from docchat.config import DocChatConfig
from docchat.db.store import VectorStore
from docchat.ingest.chunker import RecursiveChunker
from docchat.ingest.pipeline import Ingestor
from docchat.rag.embedder import Embedder
from docchat.rag.generator import AnswerGenerator
from docchat.rag.llm_client import LLMClient, validate_api_key
from docchat.rag.rephraser import QueryRephraser
from docchat.rag.retriever import Retriever


@dataclass
class Services:
    store: VectorStore
    embedder: Embedder
    ingestor: Ingestor
    retriever: Retriever
    generator: AnswerGenerator

    async def open_session(self, user_id: str, document_ids: Iterable[str]) -> ChatSession:
        """Open a chat session over *document_ids* for *user_id*."""
        return await ChatSession.open(user_id, document_ids, self.retriever, self.generator)


def build_services(cfg: DocChatConfig, db_path: Path | str | None = None) -> Services:
    """Create every component described by *cfg*.

    ``db_path`` overrides ``store.path`` (the CLI's ``--db`` flag).
    """
    store = VectorStore(
        db_path if db_path is not None else cfg.store.path,
        dimensions=cfg.embedding.dimensions,
        timeout=cfg.store.timeout,
    )
    embedder = Embedder(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        batch_size=cfg.embedding.batch_size,
        timeout=cfg.embedding.timeout,
    )
    chunker = RecursiveChunker(cfg.chunking.chunk_size, cfg.chunking.chunk_overlap)
    rephrase_llm = LLMClient(
        model=cfg.rephrase.model,
        max_tokens=cfg.rephrase.max_tokens,
        timeout=cfg.rephrase.timeout,
    )
    generation_llm = LLMClient(
        model=cfg.generation.model,
        max_tokens=cfg.generation.max_tokens,
        timeout=cfg.generation.timeout,
    )
    return Services(
        store=store,
        embedder=embedder,
        ingestor=Ingestor(store, embedder, chunker, concurrency=cfg.ingest.concurrency),
        retriever=Retriever(
            QueryRephraser(rephrase_llm), embedder, store, top_k=cfg.retrieval.top_k
        ),
        generator=AnswerGenerator(
            generation_llm, context_token_budget=cfg.generation.context_token_budget
        ),
    )


def required_models(cfg: DocChatConfig, *, chat: bool = True) -> list[str]:
    """Model strings whose provider keys must be present for an operation."""
    models = [cfg.embedding.model]
    if chat:
        models += [cfg.rephrase.model, cfg.generation.model]
    return list(dict.fromkeys(models))


def check_api_keys(cfg: DocChatConfig, *, chat: bool = True) -> None:
    """Raise EnvironmentError if a provider key needed by *cfg* is missing."""
    for model in required_models(cfg, chat=chat):
        validate_api_key(model)
