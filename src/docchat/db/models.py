"""Domain models for the docchat database layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


@dataclass
class Document:
    id: str
    owner_user_id: str
    source_path: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    content_hash: str = ""
    error: str | None = None
    created_at: str | None = None

    @property
    def name(self) -> str:
        return self.source_path.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass
class Chunk:
    document_id: str
    owner_user_id: str
    sequence_index: int
    text: str
    source: str = ""
    embedding: list[float] | None = None  # None once read back from a search
    created_at: str | None = None
