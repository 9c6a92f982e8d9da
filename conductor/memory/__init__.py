"""Persistent stores for conversations, user facts and user profiles."""

from conductor.memory.store import ConversationStore, FactStore, SQLiteStore, UserConfigStore

__all__ = ["SQLiteStore", "ConversationStore", "FactStore", "UserConfigStore"]
