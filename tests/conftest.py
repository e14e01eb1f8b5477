"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docchat.db.connection import Database
from docchat.db.schema import initialize
from docchat.db.store import VectorStore
from docchat.errors import EmbeddingProviderError, LLMProviderError

# Axes of the 3-dimensional test embedding space.
KEYWORDS = ("deadline", "budget", "team")


def keyword_vector(text: str) -> list[float]:
    """Deterministic embedding: keyword counts plus a small bias (never the zero vector)."""
    lowered = text.lower()
    return [lowered.count(word) + 0.01 for word in KEYWORDS]


class FakeEmbedder:
    """Stands in for docchat.rag.embedder.Embedder; records every call."""

    model = "fake/embedding"
    dimensions = 3

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingProviderError("embedding provider unavailable")
        return [keyword_vector(t) for t in texts]

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]


class FakeLLM:
    """Stands in for docchat.rag.llm_client.LLMClient.

    Replies are consumed in order; an Exception instance in the queue is raised.
    When the queue is empty ``default`` is returned.
    """

    model = "fake/llm"
    max_tokens = 256

    def __init__(self, *replies: str | Exception, default: str = "fake answer") -> None:
        self.replies: list[str | Exception] = list(replies)
        self.default = default
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".docchat.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_path) -> VectorStore:
    """3-dimensional vector store in tmp_path."""
    return VectorStore(tmp_path / "store.db", dimensions=3)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def failing_embedder() -> FakeEmbedder:
    return FakeEmbedder(fail=True)


@pytest.fixture
def make_llm():
    """Factory fixture: ``make_llm("reply", LLMProviderError("x"))``."""
    return FakeLLM


@pytest.fixture
def llm_error() -> LLMProviderError:
    return LLMProviderError("LLM 'fake/llm' call failed: boom")


# ------------------------------------------------------------------
# CLI
# ------------------------------------------------------------------

_PROJECT_YAML = """\
embedding:
  model: openai/text-embedding-3-small
  dimensions: 3
chunking:
  chunk_size: 50
  chunk_overlap: 0
"""


def _embedding_response(**kwargs):
    response = MagicMock()
    response.data = [
        {"index": i, "embedding": keyword_vector(text)} for i, text in enumerate(kwargs["input"])
    ]
    return response


def _completion_response(content: str) -> MagicMock:
    response = MagicMock()
    response.choices[0].message.content = content
    return response


@pytest.fixture
def cli_project(tmp_path, monkeypatch):
    """Working directory with a 3-dimensional docchat.yaml and patched providers.

    Yields the project directory; ``cli_project.completion`` is the AsyncMock
    standing in for ``litellm.acompletion`` (defaults to "stub answer").
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("docchat.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for name in ("DOCCHAT_GENERATION_MODEL", "DOCCHAT_EMBEDDING_MODEL", "DOCCHAT_REPHRASE_MODEL"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "docchat.yaml").write_text(_PROJECT_YAML, encoding="utf-8")

    logger = logging.getLogger("docchat")
    saved = list(logger.handlers), logger.level, logger.propagate

    completion = AsyncMock(return_value=_completion_response("stub answer"))
    with patch(
        "docchat.rag.embedder.litellm.aembedding", AsyncMock(side_effect=_embedding_response)
    ), patch("docchat.rag.llm_client.litellm.acompletion", completion), patch(
        "docchat.rag.llm_client.litellm.token_counter",
        side_effect=lambda model, text: max(1, len(text) // 4),
    ), patch(
        "docchat.rag.llm_client.litellm.get_model_info",
        return_value={"max_input_tokens": 128_000},
    ):
        yield CliProject(tmp_path, completion)

    handlers, level, propagate = saved
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class CliProject:
    def __init__(self, path, completion) -> None:
        self.path = path
        self.completion = completion
        self.db = path / ".docchat.db"


@pytest.fixture
def ingest_doc(cli_project):
    """Factory: ``ingest_doc("alice", "plan.txt", text)`` ingests through the CLI and returns the id."""
    from typer.testing import CliRunner

    from docchat.cli.main import app

    runner = CliRunner()

    def _ingest(user: str, name: str, text: str) -> str:
        path = cli_project.path / name
        path.write_text(text, encoding="utf-8")
        result = runner.invoke(app, ["ingest", "--user", user, "--source", str(path)])
        assert result.exit_code == 0, result.output
        store = VectorStore(cli_project.db, dimensions=3)
        documents = asyncio.run(store.list_documents(user))
        return next(d.id for d in documents if d.source_path == str(path.resolve()))

    return _ingest
