"""History-aware query rephrasing.

Turns a follow-up question ("and what about the second one?") into a
standalone search query using the conversation so far. A first question has
nothing to resolve and is returned unchanged without calling the model.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docchat.rag.llm_client import LLMClient

if TYPE_CHECKING:
    from docchat.chat.messages import ChatMessage

logger = logging.getLogger(__name__)

REPHRASE_SYSTEM = (
    "You rewrite questions for a document search engine. Given a conversation "
    "and the user's latest question, produce a standalone search query that "
    "captures the intent of the latest question in light of the conversation. "
    "Resolve pronouns and references. Do not answer the question. "
    "Output the query only, on a single line."
)

_REPHRASE_INSTRUCTION = (
    "Based on the conversation above, write the standalone search query for my "
    "latest question."
)


class QueryRephraser:
    """Stateless per call: every call receives the full prior history."""

    def __init__(self, llm: LLMClient) -> None:
        self._llm = llm

    async def rephrase(self, history: Sequence[ChatMessage], question: str) -> str:
        """Return a standalone search query for *question*.

        Raises:
            LLMProviderError: If the model call fails; no query is produced.
        """
        if not history:
            return question

        messages: list[dict[str, str]] = [{"role": "system", "content": REPHRASE_SYSTEM}]
        messages.extend(m.to_llm_message() for m in history)
        messages.append({"role": "user", "content": question})
        messages.append({"role": "user", "content": _REPHRASE_INSTRUCTION})

        raw = await self._llm.complete(messages)
        query = _first_line(raw) or question
        logger.debug("Rephrased %r as %r", question, query)
        return query


def _first_line(raw: str) -> str:
    """Return the first non-empty line of *raw*, without wrapping quotes."""
    for line in raw.splitlines():
        line = line.strip()
        if line:
            if len(line) >= 2 and line[0] == line[-1] and line[0] in "\"'`":
                line = line[1:-1].strip()
            return line
    return ""
