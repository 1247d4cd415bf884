"""
SQLite-backed session store.

Holds the short-lived associations the service needs between requests:
which conversation a phone call belongs to, which Airtable record a
conversation is writing to, the reply waiting to be spoken on a call and
the assistant's chat history. Every key expires after a TTL.
"""
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

import aiosqlite

from detective.config import settings

logger = logging.getLogger(__name__)

# Singleton instance
_store_instance: Optional["SessionStore"] = None


class SessionStore:
    """Async key-value store with per-key expiry."""

    def __init__(self, db_path: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.db_path = db_path or settings.database_path
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_hours * 3600
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self):
        """Open the database and create the table."""
        if self._db is not None:
            return
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        if self.db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS session_keys (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_session_keys_expires ON session_keys (expires_at);
        """)
        await self._db.commit()
        logger.info(f"Session store initialized at {self.db_path}")

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    async def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        return self._db

    # ── Raw key access ────────────────────────────────────

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        """Store a JSON-serializable value, replacing any previous one."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        db = await self._connection()
        await db.execute(
            "INSERT OR REPLACE INTO session_keys (key, value, expires_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), time.time() + ttl),
        )
        await db.commit()

    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when missing or expired."""
        db = await self._connection()
        async with db.execute(
            "SELECT value, expires_at FROM session_keys WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        if row["expires_at"] <= time.time():
            await self.delete(key)
            return None
        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding unreadable session value for {key}")
            await self.delete(key)
            return None

    async def pop(self, key: str) -> Optional[Any]:
        """Return and remove a value."""
        value = await self.get(key)
        if value is not None:
            await self.delete(key)
        return value

    async def delete(self, key: str):
        db = await self._connection()
        await db.execute("DELETE FROM session_keys WHERE key = ?", (key,))
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete every expired key. Returns the number removed."""
        db = await self._connection()
        cursor = await db.execute("DELETE FROM session_keys WHERE expires_at <= ?", (time.time(),))
        await db.commit()
        removed = cursor.rowcount or 0
        if removed:
            logger.info(f"Purged {removed} expired session keys")
        return removed

    async def health_check(self) -> bool:
        try:
            db = await self._connection()
            async with db.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return True
        except Exception as e:
            logger.warning(f"Session store health check failed: {e}")
            return False

    # ── Typed helpers ─────────────────────────────────────

    async def get_call_conversation(self, call_sid: str) -> Optional[str]:
        return await self.get(f"call:{call_sid}")

    async def set_call_conversation(self, call_sid: str, conversation_id: str):
        await self.set(f"call:{call_sid}", conversation_id)

    async def get_record_id(self, conversation_id: str) -> Optional[str]:
        return await self.get(f"record:{conversation_id}")

    async def set_record_id(self, conversation_id: str, record_id: str):
        await self.set(f"record:{conversation_id}", record_id)

    async def set_reply(self, call_sid: str, reply: str):
        await self.set(f"reply:{call_sid}", reply)

    async def pop_reply(self, call_sid: str) -> Optional[str]:
        return await self.pop(f"reply:{call_sid}")

    async def get_history(self, conversation_id: str) -> List[Dict[str, Any]]:
        history = await self.get(f"history:{conversation_id}")
        return history if isinstance(history, list) else []

    async def set_history(self, conversation_id: str, history: List[Dict[str, Any]]):
        await self.set(f"history:{conversation_id}", history)

    async def forget_conversation(self, conversation_id: str):
        """Drop the record association and chat history of a conversation."""
        await self.delete(f"record:{conversation_id}")
        await self.delete(f"history:{conversation_id}")


def get_session_store() -> SessionStore:
    """Get or create the singleton SessionStore."""
    global _store_instance
    if _store_instance is None:
        _store_instance = SessionStore()
    return _store_instance
