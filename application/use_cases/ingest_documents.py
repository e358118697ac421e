"""Use case for ingesting documents into the chunk index."""
from __future__ import annotations

import logging
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable

from application.services.sync_guard import CollectionSyncGuard
from domain.entities import Chunk, IngestResult, SyncState
from domain.errors import ContextChatError, IngestError, PersistenceError, ProviderError
from domain.interfaces import ChunkIndex, ChunkSplitter, Embedder, TextExtractor

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


@dataclass(slots=True)
class SourceDocument:
    """Raw document handed to a collection sync."""

    document_id: str
    source_name: str
    content: bytes | str


def is_binary(content: bytes | str) -> bool:
    """Content containing a NUL byte is treated as binary and never indexed."""
    if isinstance(content, bytes):
        return b"\x00" in content
    return "\x00" in content


class IngestionPipeline:
    """Chunk, embed and index documents.

    Ingestion of one document is not transactional: when a chunk fails,
    the chunks stored before it stay in the index.
    """

    def __init__(
        self,
        *,
        extractor: TextExtractor,
        splitter: ChunkSplitter,
        embedder: Embedder,
        index: ChunkIndex,
        sync_guard: CollectionSyncGuard | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._extractor = extractor
        self._splitter = splitter
        self._embedder = embedder
        self._index = index
        self._sync_guard = sync_guard or CollectionSyncGuard()
        self._max_concurrency = max(1, max_concurrency)

    @property
    def sync_guard(self) -> CollectionSyncGuard:
        return self._sync_guard

    def ingest(
        self,
        document_id: str,
        collection_id: str,
        content: bytes | str,
        source_name: str,
    ) -> IngestResult:
        if is_binary(content):
            logger.info("Skipping binary document %s (%s)", document_id, source_name)
            return IngestResult(document_id=document_id, indexed=False, skipped_reason="binary")

        text = self._extractor.extract(content)
        pieces = self._splitter.split(text)
        if not pieces:
            logger.info("Document %s (%s) produced no chunks", document_id, source_name)
            return IngestResult(document_id=document_id, indexed=True, chunk_count=0)

        source_ext = PurePosixPath(source_name).suffix
        inserted = self._embed_and_insert(document_id, collection_id, pieces, source_name, source_ext)
        logger.info("Indexed %d chunk(s) for document %s (%s)", inserted, document_id, source_name)
        return IngestResult(document_id=document_id, indexed=True, chunk_count=inserted)

    def _embed_and_insert(
        self,
        document_id: str,
        collection_id: str,
        pieces: list[str],
        source_name: str,
        source_ext: str,
    ) -> int:
        def store(text: str) -> None:
            chunk = Chunk(
                id=str(uuid.uuid4()),
                collection_id=collection_id,
                document_id=document_id,
                text=text,
                embedding=self._embedder.embed(text),
                source_name=source_name,
                source_ext=source_ext,
            )
            self._index.insert(chunk)

        executor = ThreadPoolExecutor(max_workers=self._max_concurrency, thread_name_prefix="ingest")
        try:
            futures = [executor.submit(store, piece) for piece in pieces]
            done, _pending = wait(futures, return_when=FIRST_EXCEPTION)
            failure = next((future.exception() for future in done if future.exception() is not None), None)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        inserted = sum(1 for future in futures if future.done() and not future.cancelled() and future.exception() is None)
        if failure is None:
            return inserted
        if isinstance(failure, (ProviderError, PersistenceError)):
            raise IngestError(document_id, str(failure), inserted=inserted) from failure
        raise failure

    def remove_document(self, document_id: str) -> int:
        return self._index.delete_by_document(document_id)

    def remove_collection(self, collection_id: str) -> int:
        return self._index.delete_by_collection(collection_id)

    def start_sync(self, collection_id: str) -> SyncState:
        """Take the collection's sync lease; raises SyncInProgressError when held."""
        return self._sync_guard.begin(collection_id)

    def run_sync(self, lease: SyncState, documents: Iterable[SourceDocument]) -> SyncState:
        """Replace the collection's chunks with freshly ingested ``documents``.

        A failing document is logged and counted; it does not abort the sync.
        """
        collection_id = lease.collection_id
        try:
            removed = self._index.delete_by_collection(collection_id)
            logger.info("[sync] Cleared %d chunk(s) of collection %s", removed, collection_id)
            for document in documents:
                try:
                    result = self.ingest(document.document_id, collection_id, document.content, document.source_name)
                except ContextChatError as exc:
                    logger.warning("[sync] Failed to ingest %s: %s", document.source_name, exc)
                    lease.documents_failed += 1
                else:
                    if result.indexed:
                        lease.documents_indexed += 1
        except Exception as exc:
            logger.error("[sync] Sync failed for collection %s: %s", collection_id, exc)
            self._sync_guard.finish(collection_id, error=str(exc) or exc.__class__.__name__, lease=lease)
            raise
        self._sync_guard.finish(collection_id, lease=lease)
        logger.info(
            "[sync] Sync complete for collection %s: %d indexed, %d failed",
            collection_id,
            lease.documents_indexed,
            lease.documents_failed,
        )
        return lease

    def sync_collection(self, collection_id: str, documents: Iterable[SourceDocument]) -> SyncState:
        return self.run_sync(self.start_sync(collection_id), documents)


__all__ = ["IngestionPipeline", "SourceDocument", "is_binary", "DEFAULT_MAX_CONCURRENCY"]
