"""Персистентный индекс чанков в SQLite."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Sequence

from application.services.bm25_index import BM25Index
from domain.entities import Chunk
from domain.errors import PersistenceError
from domain.interfaces import ChunkIndex
from infrastructure.storage.vector_math import rank_by_cosine_distance

logger = logging.getLogger(__name__)

_COLUMNS = "id, collection_id, document_id, text, embedding, source_name, source_ext"
DEFAULT_MAX_CACHED_SCOPES = 8


class SqliteChunkIndex(ChunkIndex):
    """Хранит чанки и эмбеддинги в SQLite; векторный поиск выполняется перебором через numpy."""

    def __init__(
        self,
        db_path: str | Path = "contextchat.db",
        max_cached_scopes: int = DEFAULT_MAX_CACHED_SCOPES,
    ) -> None:
        self._db_path = Path(db_path)
        self._max_cached_scopes = max(1, max_cached_scopes)
        self._bm25_lock = threading.Lock()
        # LRU кэш BM25 по набору коллекций.
        self._bm25_by_scope: OrderedDict[tuple[str, ...], BM25Index] = OrderedDict()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path, timeout=30)

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS document_chunks (
                        id TEXT PRIMARY KEY,
                        collection_id TEXT NOT NULL,
                        document_id TEXT NOT NULL,
                        text TEXT NOT NULL,
                        embedding TEXT NOT NULL,
                        source_name TEXT,
                        source_ext TEXT
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_document_chunks_collection ON document_chunks (collection_id)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_document_chunks_document ON document_chunks (document_id)"
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot initialise chunk index at {self._db_path}: {exc}") from exc

    def insert(self, chunk: Chunk) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"REPLACE INTO document_chunks ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        chunk.id,
                        chunk.collection_id,
                        chunk.document_id,
                        chunk.text,
                        json.dumps(list(chunk.embedding)),
                        chunk.source_name,
                        chunk.source_ext,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot store chunk {chunk.id}: {exc}") from exc

    def _load(self, collection_ids: Sequence[str], with_embeddings: bool) -> list[Chunk]:
        query = f"SELECT {_COLUMNS} FROM document_chunks"
        params: list[str] = []
        if collection_ids:
            placeholders = ", ".join("?" for _ in collection_ids)
            query += f" WHERE collection_id IN ({placeholders})"
            params.extend(collection_ids)
        query += " ORDER BY id"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot read chunks: {exc}") from exc
        return [
            Chunk(
                id=row[0],
                collection_id=row[1],
                document_id=row[2],
                text=row[3],
                embedding=json.loads(row[4]) if with_embeddings else [],
                source_name=row[5] or "",
                source_ext=row[6] or "",
            )
            for row in rows
        ]

    def vector_search(
        self,
        query_embedding: Sequence[float],
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        return rank_by_cosine_distance(query_embedding, self._load(collection_ids, with_embeddings=True), limit)

    def keyword_search(
        self,
        query_text: str,
        collection_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> list[Chunk]:
        chunks = self._load(collection_ids, with_embeddings=False)
        by_id = {chunk.id: chunk for chunk in chunks}
        scope = tuple(sorted(set(collection_ids)))
        with self._bm25_lock:
            index = self._bm25_by_scope.pop(scope, None) or BM25Index()
            self._bm25_by_scope[scope] = index
            while len(self._bm25_by_scope) > self._max_cached_scopes:
                self._bm25_by_scope.popitem(last=False)
            index.update_chunks(chunks)
            ranked_ids = index.rank(query_text, limit)
        return [by_id[chunk_id] for chunk_id in ranked_ids]

    def delete_by_document(self, document_id: str) -> int:
        return self._delete("document_id", document_id)

    def delete_by_collection(self, collection_id: str) -> int:
        return self._delete("collection_id", collection_id)

    def _delete(self, column: str, value: str) -> int:
        try:
            with self._connect() as conn:
                cursor = conn.execute(f"DELETE FROM document_chunks WHERE {column} = ?", (value,))
                removed = cursor.rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot delete chunks by {column}={value}: {exc}") from exc
        logger.info("Удалено %d чанков (%s=%s)", removed, column, value)
        return removed

    def count(self) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT COUNT(*) FROM document_chunks").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot count chunks: {exc}") from exc
        return int(row[0]) if row else 0


__all__ = ["SqliteChunkIndex", "DEFAULT_MAX_CACHED_SCOPES"]
