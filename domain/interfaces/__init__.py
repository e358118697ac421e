"""Abstract interfaces for the ContextChat system."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Mapping, Sequence

from domain.entities import Chunk, Conversation, ConversationTurn, Role


class TextExtractor(ABC):
    """Extracts text from user provided sources."""

    @abstractmethod
    def extract(self, source: bytes | str) -> str:
        """Return the textual representation of a source."""


class Tokenizer(ABC):
    """Sub-word tokenizer shared by the chunker and the embedding model."""

    @abstractmethod
    def encode(self, text: str) -> list[int]:
        """Return token ids for the text."""

    @abstractmethod
    def decode(self, tokens: Sequence[int]) -> str:
        """Return the text for a sequence of token ids."""

    def count(self, text: str) -> int:
        return len(self.encode(text))


class ChunkSplitter(ABC):
    """Splits document text into bounded, overlapping segments."""

    @abstractmethod
    def split(self, text: str) -> list[str]:
        """Return the ordered chunk texts for the provided text."""


class Embedder(ABC):
    """Turns text into fixed-length vector embeddings."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension for this model."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed a single text. Raises ProviderError on provider failure."""

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class CompletionClient(ABC):
    """Streams answer tokens from a chat language model."""

    @abstractmethod
    def stream_complete(self, messages: Sequence[Mapping[str, str]]) -> AsyncIterator[str]:
        """Yield tokens for the ordered ``{"role", "content"}`` messages.

        Raises ProviderError when the stream cannot be opened or breaks mid-way.
        """


class ChunkIndex(ABC):
    """Stores chunks and answers vector and keyword ranked queries."""

    @abstractmethod
    def insert(self, chunk: Chunk) -> None:
        """Store a chunk."""

    @abstractmethod
    def vector_search(
        self,
        query_embedding: Sequence[float],
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        """Return chunks ordered by ascending distance to the query embedding."""

    @abstractmethod
    def keyword_search(
        self,
        query_text: str,
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        """Return lexically matching chunks ordered by descending relevance."""

    @abstractmethod
    def delete_by_document(self, document_id: str) -> int:
        """Remove every chunk of a document and return how many were removed."""

    @abstractmethod
    def delete_by_collection(self, collection_id: str) -> int:
        """Remove every chunk of a collection and return how many were removed."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored chunks."""


class ConversationRepository(ABC):
    """Persists conversations and their append-only turns."""

    @abstractmethod
    def create(self, conversation: Conversation) -> Conversation:
        """Store a new conversation."""

    @abstractmethod
    def get(self, conversation_id: str) -> Conversation | None:
        """Retrieve a conversation by id."""

    @abstractmethod
    def list(self) -> list[Conversation]:
        """Return all conversations, newest first."""

    @abstractmethod
    def update_title(self, conversation_id: str, title: str) -> None:
        """Replace the title of a conversation."""

    @abstractmethod
    def delete(self, conversation_id: str) -> None:
        """Remove a conversation together with its turns."""

    @abstractmethod
    def append_turn(self, conversation_id: str, role: Role, content: str) -> ConversationTurn:
        """Append a turn; ``created_at`` is strictly increasing per conversation."""

    @abstractmethod
    def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        """Return the turns of a conversation in chronological order."""


__all__ = [
    "TextExtractor",
    "Tokenizer",
    "ChunkSplitter",
    "Embedder",
    "CompletionClient",
    "ChunkIndex",
    "ConversationRepository",
]
