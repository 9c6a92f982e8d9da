"""SQLite-backed conversation history, user facts and user profiles."""

from __future__ import annotations

import time
from pathlib import Path

import aiosqlite

from conductor.models import Message, UserConfig, UserFact
from conductor.utils.logging import get_logger

log = get_logger(__name__)


class SQLiteStore:
    """Owns one aiosqlite connection and applies ``SCHEMA`` on start."""

    SCHEMA = ""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(self.SCHEMA)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None


class ConversationStore(SQLiteStore):
    SCHEMA = """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sender_id TEXT NOT NULL,
        channel TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at REAL NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_id, created_at);
    """

    async def add_message(
        self,
        sender_id: str,
        role: str,
        content: str,
        channel: str = "sms",
        created_at: float | None = None,
    ) -> Message:
        assert self._db is not None
        message = Message(role=role, content=content, created_at=created_at or time.time())
        await self._db.execute(
            "INSERT INTO messages (sender_id, channel, role, content, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (sender_id, channel, message.role, message.content, message.created_at),
        )
        await self._db.commit()
        return message

    async def get_history(self, sender_id: str, limit: int = 100) -> list[Message]:
        """Most recent ``limit`` messages for a sender, oldest first."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT role, content, created_at FROM messages "
            "WHERE sender_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (sender_id, limit),
        )
        rows = await cursor.fetchall()
        return [Message(role=r[0], content=r[1], created_at=r[2]) for r in reversed(rows)]

    async def clear(self, sender_id: str) -> int:
        assert self._db is not None
        cursor = await self._db.execute("DELETE FROM messages WHERE sender_id = ?", (sender_id,))
        await self._db.commit()
        return cursor.rowcount


class FactStore(SQLiteStore):
    SCHEMA = """
    CREATE TABLE IF NOT EXISTS facts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sender_id TEXT NOT NULL,
        fact TEXT NOT NULL,
        category TEXT DEFAULT 'general',
        created_at REAL NOT NULL,
        UNIQUE(sender_id, fact)
    );
    """

    async def add_fact(self, sender_id: str, fact: str, category: str = "general") -> bool:
        """Store a fact. Returns False if the sender already had it."""
        assert self._db is not None
        cursor = await self._db.execute(
            "INSERT OR IGNORE INTO facts (sender_id, fact, category, created_at) "
            "VALUES (?, ?, ?, ?)",
            (sender_id, fact.strip(), category, time.time()),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def list_facts(self, sender_id: str) -> list[UserFact]:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT fact, category, created_at FROM facts "
            "WHERE sender_id = ? ORDER BY created_at, id",
            (sender_id,),
        )
        rows = await cursor.fetchall()
        return [UserFact(fact=r[0], category=r[1], created_at=r[2]) for r in rows]

    async def search(self, sender_id: str, query: str) -> list[UserFact]:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT fact, category, created_at FROM facts "
            "WHERE sender_id = ? AND (fact LIKE ? OR category LIKE ?) ORDER BY created_at, id",
            (sender_id, f"%{query}%", f"%{query}%"),
        )
        rows = await cursor.fetchall()
        return [UserFact(fact=r[0], category=r[1], created_at=r[2]) for r in rows]

    async def delete_fact(self, sender_id: str, fact: str) -> bool:
        assert self._db is not None
        cursor = await self._db.execute(
            "DELETE FROM facts WHERE sender_id = ? AND fact = ?",
            (sender_id, fact.strip()),
        )
        await self._db.commit()
        return cursor.rowcount > 0


class UserConfigStore(SQLiteStore):
    SCHEMA = """
    CREATE TABLE IF NOT EXISTS user_config (
        sender_id TEXT PRIMARY KEY,
        name TEXT,
        timezone TEXT,
        updated_at REAL NOT NULL
    );
    """

    async def get(self, sender_id: str) -> UserConfig | None:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT name, timezone FROM user_config WHERE sender_id = ?",
            (sender_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return UserConfig(name=row[0], timezone=row[1])

    async def set(self, sender_id: str, name: str | None = None, timezone: str | None = None) -> UserConfig:
        """Upsert the profile. ``None`` fields keep their stored value."""
        assert self._db is not None
        await self._db.execute(
            "INSERT INTO user_config (sender_id, name, timezone, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(sender_id) DO UPDATE SET "
            "name = COALESCE(excluded.name, user_config.name), "
            "timezone = COALESCE(excluded.timezone, user_config.timezone), "
            "updated_at = excluded.updated_at",
            (sender_id, name, timezone, time.time()),
        )
        await self._db.commit()
        log.info("user_config_updated", sender=sender_id)
        config = await self.get(sender_id)
        assert config is not None
        return config
