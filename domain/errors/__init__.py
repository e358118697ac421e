"""Error taxonomy shared by every layer of ContextChat."""
from __future__ import annotations


class ContextChatError(Exception):
    """Base class for all errors raised by the system."""


class ValidationError(ContextChatError):
    """Bad caller input, rejected before any side effect."""


class NotFoundError(ContextChatError):
    """A referenced conversation or collection does not exist."""


class ProviderError(ContextChatError):
    """Failure of the embedding or completion provider."""


class PersistenceError(ContextChatError):
    """Failure to read from or write to a store."""


class IngestError(ContextChatError):
    """Chunking or embedding failed partway through a document.

    Chunks inserted before the failure are kept.
    """

    def __init__(self, document_id: str, reason: str, inserted: int = 0) -> None:
        super().__init__(f"Ingestion of document {document_id} failed after {inserted} chunk(s): {reason}")
        self.document_id = document_id
        self.reason = reason
        self.inserted = inserted


class SyncInProgressError(ContextChatError):
    """A collection sync was requested while another one is running."""

    def __init__(self, collection_id: str) -> None:
        super().__init__(f"Sync already in progress for collection {collection_id}")
        self.collection_id = collection_id


__all__ = [
    "ContextChatError",
    "ValidationError",
    "NotFoundError",
    "ProviderError",
    "PersistenceError",
    "IngestError",
    "SyncInProgressError",
]
