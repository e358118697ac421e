"""Domain entities for the ContextChat system."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

Role = Literal["user", "assistant"]


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded slice of a document's text, the unit of retrieval."""

    id: str
    collection_id: str
    document_id: str
    text: str
    embedding: list[float] = field(default_factory=list)
    source_name: str = ""
    source_ext: str = ""


@dataclass(slots=True)
class RankedResult:
    """A chunk together with its 1-based positions in the individual rankings."""

    chunk_id: str
    text: str
    vector_rank: int | None = None
    keyword_rank: int | None = None


@dataclass(slots=True)
class FusedResult:
    """A passage scored by reciprocal rank fusion."""

    chunk_id: str
    text: str
    score: float


@dataclass(slots=True)
class Conversation:
    """A chat conversation scoped to a set of document collections."""

    id: str
    title: str
    collection_filter: list[str] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass(slots=True)
class ConversationTurn:
    """One user or assistant message within a conversation."""

    id: str
    conversation_id: str
    role: Role
    content: str
    created_at: datetime | None = None


class ChatEventKind(str, Enum):
    TOKEN = "token"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """Single item of the streamed answer: a token, an error or the terminal marker."""

    kind: ChatEventKind
    data: str = ""

    @classmethod
    def token(cls, text: str) -> ChatEvent:
        return cls(ChatEventKind.TOKEN, text)

    @classmethod
    def error(cls, message: str) -> ChatEvent:
        return cls(ChatEventKind.ERROR, message)

    @classmethod
    def done(cls) -> ChatEvent:
        return cls(ChatEventKind.DONE)


@dataclass(slots=True)
class IngestResult:
    """Outcome of ingesting a single document."""

    document_id: str
    indexed: bool
    chunk_count: int = 0
    skipped_reason: str | None = None


SyncStatus = Literal["syncing", "done", "error"]


@dataclass(slots=True)
class SyncState:
    """Progress of a collection re-synchronisation."""

    collection_id: str
    status: SyncStatus
    started_at: float
    finished_at: float | None = None
    error: str | None = None
    documents_indexed: int = 0
    documents_failed: int = 0


__all__ = [
    "Role",
    "Chunk",
    "RankedResult",
    "FusedResult",
    "Conversation",
    "ConversationTurn",
    "ChatEventKind",
    "ChatEvent",
    "IngestResult",
    "SyncStatus",
    "SyncState",
]
