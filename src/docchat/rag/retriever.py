"""Scoped retriever: rephrase → embed query → filtered similarity search.

The search filter is built from the session alone (its user id and its
selected documents). A session with no selected documents retrieves nothing
and makes no provider or store call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docchat.db.store import SearchFilter, SearchHit, VectorStore
from docchat.rag.embedder import Embedder
from docchat.rag.rephraser import QueryRephraser

if TYPE_CHECKING:
    from docchat.chat.session import ChatSession

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3

# Stages reported to the `on_stage` callback of Retriever.retrieve.
STAGE_REPHRASE = "rephrase"
STAGE_SEARCH = "search"


@dataclass
class ScoredPassage:
    """A retrieved chunk as shown to the model and cited to the user.

    Attributes:
        chunk_text: The chunk's text.
        similarity_score: Cosine similarity to the search query (higher = closer).
        document_id: Parent document.
        sequence_index: Position of the chunk inside its document.
        source: Source path of the parent document.
    """

    chunk_text: str
    similarity_score: float
    document_id: str = ""
    sequence_index: int = 0
    source: str = ""

    @classmethod
    def from_hit(cls, hit: SearchHit) -> ScoredPassage:
        return cls(
            chunk_text=hit.chunk.text,
            similarity_score=hit.similarity_score,
            document_id=hit.chunk.document_id,
            sequence_index=hit.chunk.sequence_index,
            source=hit.chunk.source,
        )


class Retriever:
    """Run one retrieval for a chat turn.

    Args:
        rephraser: Rewrites the question using the session history.
        embedder: Embeds the search query.
        store: Vector store searched with the session's scope.
        top_k: Maximum passages returned.
    """

    def __init__(
        self,
        rephraser: QueryRephraser,
        embedder: Embedder,
        store: VectorStore,
        top_k: int = DEFAULT_TOP_K,
    ) -> None:
        self.rephraser = rephraser
        self.embedder = embedder
        self.store = store
        self.top_k = top_k

    async def retrieve(
        self,
        session: ChatSession,
        question: str,
        on_stage: Callable[[str], None] | None = None,
    ) -> list[ScoredPassage]:
        """Return up to ``top_k`` passages from the session's documents, best first.

        *on_stage* is called with :data:`STAGE_REPHRASE` and then
        :data:`STAGE_SEARCH` as each step starts. It is not called when the
        session has no documents selected.
        """
        scope = SearchFilter.of(session.user_id, session.selected_document_ids)
        if not scope.document_ids:
            logger.debug("No documents selected for user %s; nothing to retrieve", session.user_id)
            return []
        scope.require()

        if on_stage is not None:
            on_stage(STAGE_REPHRASE)
        query = await self.rephraser.rephrase(session.context_history, question)
        if on_stage is not None:
            on_stage(STAGE_SEARCH)
        return await self.search(query, scope)

    async def search(self, query: str, scope: SearchFilter) -> list[ScoredPassage]:
        """Embed *query* and search inside *scope*."""
        scope.require()
        query_vector = await self.embedder.embed_query(query)
        hits = await self.store.search(query_vector, self.top_k, scope)
        logger.debug("Query %r matched %d passages", query, len(hits))
        return [ScoredPassage.from_hit(hit) for hit in hits]
