"""Проверки SQLite-хранилища бесед."""
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from application.use_cases.conversations import (
    DEFAULT_TITLE,
    create_conversation,
    delete_conversation,
    list_turns,
)
from domain.errors import NotFoundError
from infrastructure.repositories.sqlite_conversation_repository import SqliteConversationRepository

FROZEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestSqliteConversationRepository(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "contextchat.db"
        self.repo = SqliteConversationRepository(db_path=self.db_path, clock=lambda: FROZEN)

    def test_create_uses_default_title_and_scope(self):
        conversation = create_conversation(repository=self.repo, collection_ids=["b", "a", "b"])
        stored = self.repo.get(conversation.id)
        self.assertEqual(stored.title, DEFAULT_TITLE)
        self.assertEqual(stored.collection_filter, ["a", "b"])
        self.assertEqual(stored.created_at, FROZEN)

    def test_turn_timestamps_strictly_increase_with_a_frozen_clock(self):
        conversation = create_conversation(repository=self.repo)
        first = self.repo.append_turn(conversation.id, "user", "question")
        second = self.repo.append_turn(conversation.id, "assistant", "answer")
        third = self.repo.append_turn(conversation.id, "user", "follow-up")

        self.assertLess(first.created_at, second.created_at)
        self.assertLess(second.created_at, third.created_at)
        turns = self.repo.list_turns(conversation.id)
        self.assertEqual([turn.content for turn in turns], ["question", "answer", "follow-up"])
        self.assertEqual([turn.role for turn in turns], ["user", "assistant", "user"])

    def test_append_to_missing_conversation_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.repo.append_turn("missing", "user", "hello")

    def test_update_title(self):
        conversation = create_conversation(repository=self.repo, title="Draft")
        self.repo.update_title(conversation.id, "Renamed")
        self.assertEqual(self.repo.get(conversation.id).title, "Renamed")
        with self.assertRaises(NotFoundError):
            self.repo.update_title("missing", "x")

    def test_delete_removes_turns(self):
        conversation = create_conversation(repository=self.repo)
        self.repo.append_turn(conversation.id, "user", "hello")
        delete_conversation(conversation.id, repository=self.repo)

        self.assertIsNone(self.repo.get(conversation.id))
        self.assertEqual(self.repo.list_turns(conversation.id), [])
        with self.assertRaises(NotFoundError):
            list_turns(conversation.id, repository=self.repo)

    def test_data_survives_reopening(self):
        conversation = create_conversation(repository=self.repo, title="Persistent")
        self.repo.append_turn(conversation.id, "user", "hello")
        reopened = SqliteConversationRepository(db_path=self.db_path)
        self.assertEqual([item.title for item in reopened.list()], ["Persistent"])
        self.assertEqual(len(reopened.list_turns(conversation.id)), 1)


if __name__ == "__main__":
    unittest.main()
