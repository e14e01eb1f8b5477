"""Exception hierarchy shared by ingestion, retrieval and the chat orchestrator.

Provider and storage failures subclass ``ProviderError``; they abort a single
ingestion run or chat turn. ``ScopeViolation`` is a contract error and must
never be caught and turned into a wider search.
"""

from __future__ import annotations


class DocChatError(Exception):
    """Base class for all docchat errors."""


class ProviderError(DocChatError):
    """An external collaborator (extractor, provider, store) failed or timed out."""


class ExtractionError(ProviderError):
    """The source file is missing, unreadable or of an unsupported type."""


class EmbeddingProviderError(ProviderError):
    """The embedding provider failed, timed out, or returned malformed vectors."""


class LLMProviderError(ProviderError):
    """The language-model provider failed or timed out."""


class VectorStoreError(ProviderError):
    """A vector store write or query failed."""


class ScopeViolation(DocChatError):
    """A search or write was attempted without a valid owner + document scope."""


class DocumentNotReadyError(DocChatError):
    """A document was selected for chat before its ingestion completed."""

    def __init__(self, document_id: str, status: str) -> None:
        super().__init__(f"Document '{document_id}' is not ready (status: {status}).")
        self.document_id = document_id
        self.status = status


class SessionBusyError(DocChatError):
    """A question was submitted while the previous turn is still running."""


class TurnFailed(DocChatError):
    """A chat turn aborted; the user's question stays in history."""
