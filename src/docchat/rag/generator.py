"""Grounded answer generation.

Pipeline:
  1. Apply the token budget: drop passages from the lowest-similarity end
     until the labelled context fits.
  2. Build one context block from the kept passages, in retriever order.
  3. Ask the model to answer only from that context, and to say so when the
     context does not contain the answer.
  4. Return the answer with the passages that were actually sent.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from docchat.rag.llm_client import LLMClient, count_tokens, get_context_window
from docchat.rag.retriever import ScoredPassage

if TYPE_CHECKING:
    from docchat.chat.messages import ChatMessage

logger = logging.getLogger(__name__)

GROUNDED_SYSTEM = (
    "You answer questions about the user's selected documents. Use ONLY the "
    "numbered passages in the context below. Cite the passages you rely on as "
    "[1], [2], ... If the context does not contain the answer, say that the "
    "selected documents do not cover it instead of guessing.\n\n"
    "Context:\n{context}"
)

_NO_CONTEXT = "(no passages were found in the selected documents)"

# Reserved for role markup and message framing.
_PROMPT_OVERHEAD_TOKENS = 64


@dataclass
class GeneratedAnswer:
    answer_text: str
    sources: list[ScoredPassage] = field(default_factory=list)


class AnswerGenerator:
    """Assemble a bounded context from passages and ask the model for an answer.

    Args:
        llm: Chat-completion handle used for the answer.
        context_token_budget: Upper bound for the context block, in tokens.
            Further capped by the model's context window minus the output
            reservation and the rest of the prompt.
    """

    def __init__(self, llm: LLMClient, context_token_budget: int = 6_000) -> None:
        self._llm = llm
        self.context_token_budget = context_token_budget

    async def generate(
        self,
        passages: Sequence[ScoredPassage],
        question: str,
        history: Sequence[ChatMessage] = (),
    ) -> GeneratedAnswer:
        """Answer *question* from *passages*.

        Raises:
            LLMProviderError: If the model call fails.
        """
        history_messages = [m.to_llm_message() for m in history]
        budget = self._effective_budget(question, history_messages)
        kept, total_tokens = _apply_token_budget(list(passages), self._llm.model, budget)
        if len(kept) < len(passages):
            logger.info(
                "Dropped %d of %d passages to fit %d context tokens",
                len(passages) - len(kept),
                len(passages),
                budget,
            )

        context = format_context(kept) if kept else _NO_CONTEXT
        messages: list[dict[str, str]] = [
            {"role": "system", "content": GROUNDED_SYSTEM.format(context=context)}
        ]
        messages.extend(history_messages)
        messages.append({"role": "user", "content": question})

        answer = await self._llm.complete(messages)
        logger.debug("Generated answer from %d passages (%d context tokens)", len(kept), total_tokens)
        return GeneratedAnswer(answer_text=answer.strip(), sources=kept)

    def _effective_budget(self, question: str, history: list[dict[str, str]]) -> int:
        model = self._llm.model
        fixed = (
            count_tokens(model, GROUNDED_SYSTEM)
            + count_tokens(model, question)
            + sum(count_tokens(model, m["content"]) for m in history)
            + _PROMPT_OVERHEAD_TOKENS
        )
        window = get_context_window(model) - self._llm.max_tokens - fixed
        return max(0, min(self.context_token_budget, window))


def format_context(passages: Sequence[ScoredPassage]) -> str:
    """Render passages as numbered blocks, in the given order."""
    return "\n\n".join(_format_passage(i, p) for i, p in enumerate(passages, start=1))


def _format_passage(number: int, passage: ScoredPassage) -> str:
    label = f"[{number}]"
    if passage.source:
        label += f" {passage.source}, part {passage.sequence_index + 1}"
    return f"{label}\n{passage.chunk_text}"


def _apply_token_budget(
    passages: list[ScoredPassage],
    model: str,
    budget: int,
) -> tuple[list[ScoredPassage], int]:
    """Drop lowest-similarity passages until the context fits *budget* tokens.

    Numbering depends on position, so sizes are recomputed after every drop.
    Returns (kept passages in original order, total context tokens).
    """
    kept = list(passages)
    while kept:
        total = count_tokens(model, format_context(kept))
        if total <= budget:
            return kept, total
        # On equal scores the later passage goes first.
        weakest = min(
            range(len(kept)),
            key=lambda i: (kept[i].similarity_score, -i),
        )
        del kept[weakest]
    return [], 0
