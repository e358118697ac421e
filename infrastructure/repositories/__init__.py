from infrastructure.repositories.sqlite_conversation_repository import SqliteConversationRepository

__all__ = ["SqliteConversationRepository"]
