"""SQLite-репозиторий для бесед и их сообщений."""
from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from domain.entities import Conversation, ConversationTurn, Role
from domain.errors import NotFoundError, PersistenceError
from domain.interfaces import ConversationRepository

_ONE_TICK = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SqliteConversationRepository(ConversationRepository):
    """Хранит беседы и append-only сообщения в SQLite."""

    def __init__(self, db_path: str | Path = "contextchat.db", clock=_utcnow) -> None:
        self._db_path = Path(db_path)
        self._clock = clock
        self._append_lock = threading.Lock()
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS conversations (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL DEFAULT 'New Chat',
                        collection_filter TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS turns (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
                        role TEXT NOT NULL,
                        content TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns (conversation_id, created_at, seq)"
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot initialise conversation store at {self._db_path}: {exc}") from exc

    def create(self, conversation: Conversation) -> Conversation:
        if not conversation.id:
            conversation.id = str(uuid.uuid4())
        if conversation.created_at is None:
            conversation.created_at = self._clock()
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO conversations (id, title, collection_filter, created_at) VALUES (?, ?, ?, ?)",
                    (
                        conversation.id,
                        conversation.title,
                        json.dumps(list(conversation.collection_filter)),
                        _to_db(conversation.created_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot create conversation: {exc}") from exc
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT id, title, collection_filter, created_at FROM conversations WHERE id = ?",
                    (conversation_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot read conversation {conversation_id}: {exc}") from exc
        if row is None:
            return None
        return self._conversation_from_row(row)

    def list(self) -> list[Conversation]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT id, title, collection_filter, created_at FROM conversations ORDER BY created_at DESC"
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot list conversations: {exc}") from exc
        return [self._conversation_from_row(row) for row in rows]

    def update_title(self, conversation_id: str, title: str) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.execute("UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot update title of {conversation_id}: {exc}") from exc
        if cursor.rowcount == 0:
            raise NotFoundError(f"Conversation {conversation_id} not found")

    def delete(self, conversation_id: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM turns WHERE conversation_id = ?", (conversation_id,))
                conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot delete conversation {conversation_id}: {exc}") from exc

    def append_turn(self, conversation_id: str, role: Role, content: str) -> ConversationTurn:
        turn_id = str(uuid.uuid4())
        with self._append_lock:
            try:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT MAX(created_at) FROM turns WHERE conversation_id = ?",
                        (conversation_id,),
                    ).fetchone()
                    created_at = self._clock()
                    # Время строго возрастает внутри беседы даже при одинаковых отметках часов.
                    if row and row[0]:
                        last = datetime.fromisoformat(row[0])
                        if created_at <= last:
                            created_at = last + _ONE_TICK
                    conn.execute(
                        """
                        INSERT INTO turns (id, conversation_id, role, content, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (turn_id, conversation_id, role, content, _to_db(created_at)),
                    )
            except sqlite3.IntegrityError as exc:
                raise NotFoundError(f"Conversation {conversation_id} not found") from exc
            except sqlite3.Error as exc:
                raise PersistenceError(f"Cannot save {role} message: {exc}") from exc
        return ConversationTurn(
            id=turn_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=created_at,
        )

    def list_turns(self, conversation_id: str) -> list[ConversationTurn]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, conversation_id, role, content, created_at
                    FROM turns WHERE conversation_id = ?
                    ORDER BY created_at ASC, seq ASC
                    """,
                    (conversation_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot list messages of {conversation_id}: {exc}") from exc
        return [
            ConversationTurn(
                id=row[0],
                conversation_id=row[1],
                role=row[2],
                content=row[3],
                created_at=datetime.fromisoformat(row[4]),
            )
            for row in rows
        ]

    @staticmethod
    def _conversation_from_row(row: tuple) -> Conversation:
        return Conversation(
            id=row[0],
            title=row[1],
            collection_filter=json.loads(row[2]),
            created_at=datetime.fromisoformat(row[3]),
        )


__all__ = ["SqliteConversationRepository"]
