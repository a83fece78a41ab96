"""Conversation and message persistence."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from prompt_studio.core.types import Sender
from prompt_studio.log import get_logger
from prompt_studio.storage.database import Database
from prompt_studio.storage.models import Attachment, Conversation, Message

logger = get_logger(__name__)


class ConversationRepository:
    """CRUD over conversations and their ordered message lists."""

    def __init__(self, db: Database):
        self._db = db

    async def upsert_conversation(self, conversation: Conversation) -> None:
        await self._db.conn.execute(
            """INSERT INTO conversations (id, title, last_message, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   title = excluded.title,
                   last_message = excluded.last_message,
                   updated_at = excluded.updated_at""",
            (
                conversation.id,
                conversation.title,
                conversation.last_message,
                conversation.timestamp.isoformat(),
            ),
        )
        await self._db.conn.commit()

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Conversation(
            id=row["id"],
            title=row["title"],
            last_message=row["last_message"],
            timestamp=datetime.fromisoformat(row["updated_at"]),
        )

    async def list_conversations(self) -> list[Conversation]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations ORDER BY updated_at DESC"
        )
        rows = await cursor.fetchall()
        return [
            Conversation(
                id=row["id"],
                title=row["title"],
                last_message=row["last_message"],
                timestamp=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    async def replace_messages(self, conversation_id: str, messages: list[Message]) -> None:
        """Store *messages* as the full, ordered history of a conversation."""
        conn = self._db.conn
        try:
            await conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            await conn.executemany(
                """INSERT INTO messages
                   (id, conversation_id, sender, content, attachments_json, position, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        m.id,
                        conversation_id,
                        m.sender.value,
                        m.content,
                        json.dumps([asdict(a) for a in m.attachments]),
                        position,
                        m.timestamp.isoformat(),
                    )
                    for position, m in enumerate(messages)
                ],
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    async def get_messages(self, conversation_id: str) -> list[Message]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY position ASC",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> int:
        """Delete a conversation and its messages. Returns deleted message count."""
        cursor = await self._db.conn.execute(
            "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
        )
        await self._db.conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        await self._db.conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender=Sender(row["sender"]),
            content=row["content"],
            timestamp=datetime.fromisoformat(row["created_at"]),
            attachments=[Attachment(**a) for a in json.loads(row["attachments_json"])],
        )
