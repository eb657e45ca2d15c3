"""SQLite-backed chat message store.

Persists user questions and assistant answers, with the answer's citation
metadata serialized as JSON, using ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite
import structlog

from ragdesk.interfaces.message_store import IMessageStore
from ragdesk.models.chat import ChatMessage, MessageRole
from ragdesk.providers.storage.sqlite_common import connect, format_timestamp, parse_timestamp

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/ragdesk.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS messages (
    id          TEXT PRIMARY KEY,
    chat_id     TEXT NOT NULL,
    role        TEXT NOT NULL,
    content     TEXT NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id, created_at);",
]


class SQLiteMessageStore(IMessageStore):
    """SQLite persistence for chat messages."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the messages table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with connect(self._db_path) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("message_db_initialized", path=str(self._db_path))

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        async with connect(self._db_path) as db:
            await db.execute(
                "INSERT INTO messages (id, chat_id, role, content, metadata, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    message.id,
                    message.chat_id,
                    message.role.value,
                    message.content,
                    json.dumps(message.metadata),
                    format_timestamp(message.created_at),
                ),
            )
            await db.commit()
        logger.debug(
            "message_stored",
            chat_id=message.chat_id,
            role=message.role.value,
            message_id=message.id,
        )
        return message

    async def list_messages(self, chat_id: str) -> list[ChatMessage]:
        async with connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT id, chat_id, role, content, metadata, created_at FROM messages "
                "WHERE chat_id = ? ORDER BY created_at, rowid",
                (chat_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_message(r) for r in rows]

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            metadata=json.loads(row["metadata"]),
            created_at=parse_timestamp(row["created_at"]),
        )
