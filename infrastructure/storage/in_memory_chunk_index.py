"""Хранилище чанков в памяти для демо и тестов."""
from __future__ import annotations

import threading
from typing import Sequence

from application.services.bm25_index import BM25Index
from domain.entities import Chunk
from domain.interfaces import ChunkIndex
from infrastructure.storage.vector_math import rank_by_cosine_distance


class InMemoryChunkIndex(ChunkIndex):
    """Хранит чанки в словаре Python и ищет перебором."""

    def __init__(self) -> None:
        self._chunks: dict[str, Chunk] = {}
        self._lock = threading.Lock()
        self._bm25 = BM25Index()

    def insert(self, chunk: Chunk) -> None:
        with self._lock:
            self._chunks[chunk.id] = chunk

    def _scoped(self, collection_ids: Sequence[str]) -> list[Chunk]:
        with self._lock:
            chunks = list(self._chunks.values())
        if collection_ids:
            allowed = set(collection_ids)
            chunks = [chunk for chunk in chunks if chunk.collection_id in allowed]
        return sorted(chunks, key=lambda chunk: chunk.id)

    def vector_search(
        self,
        query_embedding: Sequence[float],
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        return rank_by_cosine_distance(query_embedding, self._scoped(collection_ids), limit)

    def keyword_search(
        self,
        query_text: str,
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        chunks = self._scoped(collection_ids)
        by_id = {chunk.id: chunk for chunk in chunks}
        with self._lock:
            self._bm25.update_chunks(chunks)
            ranked_ids = self._bm25.rank(query_text, limit)
        return [by_id[chunk_id] for chunk_id in ranked_ids]

    def delete_by_document(self, document_id: str) -> int:
        return self._delete_where(lambda chunk: chunk.document_id == document_id)

    def delete_by_collection(self, collection_id: str) -> int:
        return self._delete_where(lambda chunk: chunk.collection_id == collection_id)

    def _delete_where(self, predicate) -> int:
        with self._lock:
            doomed = [chunk_id for chunk_id, chunk in self._chunks.items() if predicate(chunk)]
            for chunk_id in doomed:
                del self._chunks[chunk_id]
        return len(doomed)

    def count(self) -> int:
        with self._lock:
            return len(self._chunks)


__all__ = ["InMemoryChunkIndex"]
