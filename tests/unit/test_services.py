"""Tests for building the component graph from config."""

from __future__ import annotations

import asyncio

import pytest

from docchat.config import DocChatConfig, EmbeddingCfg, GenerationCfg, RetrievalCfg
from docchat.services import build_services, check_api_keys, required_models


def test_build_services_wires_config(tmp_path):
    cfg = DocChatConfig(
        embedding=EmbeddingCfg(model="openai/text-embedding-3-large", dimensions=8, batch_size=4),
        generation=GenerationCfg(context_token_budget=1234),
        retrieval=RetrievalCfg(top_k=7),
    )
    services = build_services(cfg, tmp_path / "x.db")

    assert services.store.db_path == tmp_path / "x.db"
    assert services.store.dimensions == 8
    assert services.embedder.model == "openai/text-embedding-3-large"
    assert services.embedder.batch_size == 4
    assert services.retriever.top_k == 7
    assert services.retriever.store is services.store
    assert services.retriever.embedder is services.embedder
    assert services.ingestor.embedder is services.embedder
    assert services.ingestor.chunker.chunk_size == cfg.chunking.chunk_size
    assert services.generator.context_token_budget == 1234


def test_build_services_default_db_path_from_config():
    services = build_services(DocChatConfig())
    assert services.store.db_path.name == ".docchat.db"


def test_open_session_through_services(tmp_path):
    services = build_services(DocChatConfig(), tmp_path / "x.db")
    session = asyncio.run(services.open_session("U1", []))
    assert session.user_id == "U1"
    assert session.selected_document_ids == frozenset()


def test_required_models_deduplicated():
    cfg = DocChatConfig()
    assert required_models(cfg) == ["openai/text-embedding-3-small", "openai/gpt-4o-mini"]
    assert required_models(cfg, chat=False) == ["openai/text-embedding-3-small"]


def test_check_api_keys_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        check_api_keys(DocChatConfig())


def test_check_api_keys_present(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    check_api_keys(DocChatConfig())
