"""Story, prompt version and prompt template persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from prompt_studio.log import get_logger
from prompt_studio.storage.database import Database
from prompt_studio.storage.models import GlobalPromptTemplate, PromptVersion, Story

logger = get_logger(__name__)


class StoryRepository:
    """Reads and writes whole stories (header row plus ordered version log)."""

    def __init__(self, db: Database):
        self._db = db

    async def load(self, story_id: str) -> Optional[Story]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM stories WHERE story_id = ?", (story_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        cursor = await self._db.conn.execute(
            "SELECT * FROM prompt_versions WHERE story_id = ? ORDER BY position ASC",
            (story_id,),
        )
        version_rows = await cursor.fetchall()
        return Story(
            story_id=row["story_id"],
            content=row["content"],
            active_version_id=row["active_version_id"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
            versions=[
                PromptVersion(
                    id=v["id"],
                    content=v["content"],
                    version=v["version"],
                    updated_at=datetime.fromisoformat(v["updated_at"]),
                )
                for v in version_rows
            ],
        )

    async def save(self, story: Story) -> None:
        """Replace the stored story in one transaction."""
        conn = self._db.conn
        try:
            await conn.execute(
                """INSERT INTO stories (story_id, content, active_version_id, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(story_id) DO UPDATE SET
                       content = excluded.content,
                       active_version_id = excluded.active_version_id,
                       updated_at = excluded.updated_at""",
                (story.story_id, story.content, story.active_version_id, story.updated_at.isoformat()),
            )
            await conn.execute("DELETE FROM prompt_versions WHERE story_id = ?", (story.story_id,))
            await conn.executemany(
                """INSERT INTO prompt_versions (id, story_id, content, version, position, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (v.id, story.story_id, v.content, v.version, position, v.updated_at.isoformat())
                    for position, v in enumerate(story.versions)
                ],
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
        logger.debug("story_saved", story_id=story.story_id, versions=len(story.versions))

    async def delete(self, story_id: str) -> None:
        await self._db.conn.execute("DELETE FROM prompt_versions WHERE story_id = ?", (story_id,))
        await self._db.conn.execute("DELETE FROM stories WHERE story_id = ?", (story_id,))
        await self._db.conn.commit()


class TemplateRepository:
    """CRUD over global prompt templates."""

    def __init__(self, db: Database):
        self._db = db

    async def list_all(self) -> list[GlobalPromptTemplate]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM prompt_templates ORDER BY created_at ASC"
        )
        rows = await cursor.fetchall()
        return [
            GlobalPromptTemplate(
                id=row["id"],
                name=row["name"],
                content=row["content"],
                is_default=bool(row["is_default"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    async def save_all(self, templates: list[GlobalPromptTemplate]) -> None:
        """Write the whole catalogue so default exclusivity is stored atomically."""
        conn = self._db.conn
        try:
            await conn.execute("DELETE FROM prompt_templates")
            await conn.executemany(
                """INSERT INTO prompt_templates (id, name, content, is_default, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (
                        t.id,
                        t.name,
                        t.content,
                        int(t.is_default),
                        t.created_at.isoformat(),
                        t.updated_at.isoformat(),
                    )
                    for t in templates
                ],
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise


class SettingsRepository:
    """Key/value bot settings written by the local configuration sink."""

    def __init__(self, db: Database):
        self._db = db

    async def set(self, key: str, value: str) -> None:
        await self._db.conn.execute(
            """INSERT INTO bot_settings (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (key, value),
        )
        await self._db.conn.commit()

    async def get_all(self) -> dict[str, str]:
        cursor = await self._db.conn.execute("SELECT key, value FROM bot_settings ORDER BY key")
        rows = await cursor.fetchall()
        return {row["key"]: row["value"] for row in rows}
