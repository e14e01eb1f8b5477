"""Chat transcript types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from docchat.rag.retriever import ScoredPassage


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sources: list[ScoredPassage] = field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, sources: list[ScoredPassage] | None = None) -> ChatMessage:
        return cls(role=Role.ASSISTANT, content=content, sources=list(sources or []))

    def to_llm_message(self) -> dict[str, str]:
        """OpenAI-style ``{role, content}`` dict (sources are not sent)."""
        return {"role": self.role.value, "content": self.content}
