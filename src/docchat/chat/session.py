"""Chat session orchestrator: one user, one document selection, sequential turns.

Per turn:
  IDLE → AWAITING_REPHRASE → AWAITING_RETRIEVAL → AWAITING_GENERATION → IDLE

The user's message is recorded as soon as it is submitted. The assistant's
message is appended only when the whole turn succeeds; a provider failure
moves the session through FAILED back to IDLE and raises TurnFailed, and a
cancellation returns to IDLE without appending anything. A question submitted
while a turn is running is rejected with SessionBusyError.

Every turn re-reads the selected documents first; one that was removed or
is being re-ingested since selection fails the turn with ScopeViolation or
DocumentNotReadyError, and the question stays in history.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum

from docchat.chat.messages import ChatMessage
from docchat.db.models import DocumentStatus
from docchat.db.store import SearchFilter
from docchat.errors import (
    DocumentNotReadyError,
    ProviderError,
    ScopeViolation,
    SessionBusyError,
    TurnFailed,
)
from docchat.rag.generator import AnswerGenerator
from docchat.rag.retriever import STAGE_REPHRASE, STAGE_SEARCH, Retriever

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_REPHRASE = "awaiting_rephrase"
    AWAITING_RETRIEVAL = "awaiting_retrieval"
    AWAITING_GENERATION = "awaiting_generation"
    FAILED = "failed"


_STAGE_STATES = {
    STAGE_REPHRASE: SessionState.AWAITING_REPHRASE,
    STAGE_SEARCH: SessionState.AWAITING_RETRIEVAL,
}


class ChatSession:
    """Conversation state for one user over one set of selected documents.

    ``history`` holds the messages exchanged since the current selection was
    made and is what rephrasing sees. ``transcript`` holds every message of the
    session for display and survives selection changes.

    Use :meth:`open` to create a session with a validated selection.
    """

    def __init__(
        self,
        user_id: str,
        retriever: Retriever,
        generator: AnswerGenerator,
        selected_document_ids: Iterable[str] = (),
    ) -> None:
        if not user_id:
            raise ScopeViolation("A chat session needs a user id.")
        self.user_id = user_id
        self.selected_document_ids: frozenset[str] = frozenset(selected_document_ids)
        self.history: list[ChatMessage] = []
        self.transcript: list[ChatMessage] = []
        self._retriever = retriever
        self._generator = generator
        self._state = SessionState.IDLE
        self._lock = asyncio.Lock()
        # Length of history before the in-flight user message.
        self._turn_offset: int | None = None

    @classmethod
    async def open(
        cls,
        user_id: str,
        document_ids: Iterable[str],
        retriever: Retriever,
        generator: AnswerGenerator,
    ) -> ChatSession:
        """Create a session after checking that every document is the user's and ready."""
        session = cls(user_id, retriever, generator)
        await session.select_documents(document_ids)
        return session

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def scope(self) -> SearchFilter:
        return SearchFilter.of(self.user_id, self.selected_document_ids)

    @property
    def context_history(self) -> list[ChatMessage]:
        """History as it stood before the question currently being answered."""
        if self._turn_offset is None:
            return list(self.history)
        return self.history[: self._turn_offset]

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    async def select_documents(self, document_ids: Iterable[str]) -> None:
        """Switch to a new document selection and restart the retrieval context.

        Raises:
            SessionBusyError: If a turn is in flight.
            ScopeViolation: If a document does not exist or belongs to another user.
            DocumentNotReadyError: If a document is still processing or failed.
        """
        if self.busy:
            raise SessionBusyError("Cannot change documents while a question is being answered.")

        ids = frozenset(document_ids)
        await self._check_available(ids)

        if ids != self.selected_document_ids:
            logger.info("User %s selected %d documents; history reset", self.user_id, len(ids))
            self.history = []
        self.selected_document_ids = ids

    async def _check_available(self, ids: frozenset[str]) -> None:
        store = self._retriever.store
        for document_id in sorted(ids):
            document = await store.get_document(document_id)
            if document is None or document.owner_user_id != self.user_id:
                raise ScopeViolation(
                    f"Document '{document_id}' is not available to user '{self.user_id}'."
                )
            if document.status is not DocumentStatus.READY:
                raise DocumentNotReadyError(document_id, document.status.value)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def ask(self, question: str) -> ChatMessage:
        """Run one turn and return the assistant message.

        Raises:
            ValueError: If *question* is blank.
            SessionBusyError: If another turn is still running.
            ScopeViolation: If a selected document was removed since selection.
            DocumentNotReadyError: If a selected document is no longer ready.
            TurnFailed: If a provider or store call failed; the question stays
                in history and no assistant message is added.
        """
        if not question.strip():
            raise ValueError("question must not be empty")
        if self.busy:
            raise SessionBusyError("A question is already being answered in this session.")

        async with self._lock:
            self._turn_offset = len(self.history)
            self._record(ChatMessage.user(question))
            try:
                answer = await self._run_turn(question)
            except (ProviderError, asyncio.TimeoutError) as exc:
                self._state = SessionState.FAILED
                logger.warning("Turn failed for user %s: %s", self.user_id, exc)
                raise TurnFailed("Couldn't answer, try again.") from exc
            except asyncio.CancelledError:
                logger.info("Turn cancelled for user %s", self.user_id)
                raise
            finally:
                self._turn_offset = None
                self._state = SessionState.IDLE

            self._record(answer)
            return answer

    async def _run_turn(self, question: str) -> ChatMessage:
        # Documents can be removed or re-ingested between turns.
        await self._check_available(self.selected_document_ids)
        prior = self.context_history
        passages = await self._retriever.retrieve(self, question, on_stage=self._enter_stage)

        self._state = SessionState.AWAITING_GENERATION
        generated = await self._generator.generate(passages, question, prior)
        return ChatMessage.assistant(generated.answer_text, generated.sources)

    def _enter_stage(self, stage: str) -> None:
        self._state = _STAGE_STATES[stage]

    def _record(self, message: ChatMessage) -> None:
        self.history.append(message)
        self.transcript.append(message)
