"""Use cases for creating and reading conversations."""
from __future__ import annotations

from typing import Sequence

from domain.entities import Conversation, ConversationTurn
from domain.errors import NotFoundError
from domain.interfaces import ConversationRepository

DEFAULT_TITLE = "New Chat"


def create_conversation(
    *,
    repository: ConversationRepository,
    title: str = "",
    collection_ids: Sequence[str] = (),
) -> Conversation:
    conversation = Conversation(
        id="",
        title=title.strip() or DEFAULT_TITLE,
        collection_filter=sorted(set(collection_ids)),
    )
    return repository.create(conversation)


def list_conversations(*, repository: ConversationRepository) -> list[Conversation]:
    return repository.list()


def list_turns(conversation_id: str, *, repository: ConversationRepository) -> list[ConversationTurn]:
    if repository.get(conversation_id) is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return repository.list_turns(conversation_id)


def delete_conversation(conversation_id: str, *, repository: ConversationRepository) -> None:
    if repository.get(conversation_id) is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    repository.delete(conversation_id)


__all__ = [
    "DEFAULT_TITLE",
    "create_conversation",
    "list_conversations",
    "list_turns",
    "delete_conversation",
]
