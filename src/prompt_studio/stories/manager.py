"""Versioned story documents: commit, revert, delete and housekeeping."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from prompt_studio.core.errors import NotFoundError, VersionInvariantViolation
from prompt_studio.log import get_logger
from prompt_studio.storage.models import GlobalPromptTemplate, PromptVersion, Story, new_id, utc_now
from prompt_studio.storage.story_repo import StoryRepository

logger = get_logger(__name__)


def _clock_ms() -> int:
    return time.time_ns() // 1_000_000


class StoryManager:
    """Owns the story of every conversation, keyed by conversation id.

    Every operation works on a copy of the story, persists it, and only then
    replaces the cached instance, so a failed write leaves nothing half-done.
    Mutations of one story are serialised by a per-story lock.
    """

    def __init__(
        self,
        repo: StoryRepository | None = None,
        clock_ms: Callable[[], int] = _clock_ms,
    ):
        self._repo = repo
        self._clock_ms = clock_ms
        self._stories: dict[str, Story] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, story_id: str) -> asyncio.Lock:
        lock = self._locks.get(story_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[story_id] = lock
        return lock

    async def get(self, story_id: str) -> Optional[Story]:
        """Return a snapshot of the story, or None if the conversation has none."""
        story = await self._load(story_id)
        return story.copy() if story else None

    async def commit(self, story_id: str, content: str, create_new_version: bool = True) -> Story:
        async with self._lock(story_id):
            current = await self._load(story_id)
            now = utc_now()

            if current is None:
                version = self._new_version(content, None)
                story = Story(
                    story_id=story_id,
                    content=content,
                    active_version_id=version.id,
                    versions=[version],
                    updated_at=now,
                )
            elif create_new_version:
                story = current.copy()
                version = self._new_version(content, story)
                story.versions.append(version)
                story.active_version_id = version.id
                story.content = content
                story.updated_at = now
            else:
                story = current.copy()
                active = story.active_version
                active.content = content
                active.updated_at = now
                story.content = content
                story.updated_at = now

            await self._store(story)
            logger.info(
                "story_committed",
                story_id=story_id,
                new_version=create_new_version,
                versions=len(story.versions),
            )
            return story.copy()

    async def revert(self, story_id: str, version_id: str) -> Story:
        async with self._lock(story_id):
            story = (await self._require(story_id)).copy()
            target = story.get_version(version_id)
            if target is None:
                raise NotFoundError(f"Version '{version_id}' does not belong to story '{story_id}'")

            now = utc_now()
            target.updated_at = now
            story.active_version_id = target.id
            story.content = target.content
            story.updated_at = now

            await self._store(story)
            logger.info("story_reverted", story_id=story_id, version_id=version_id)
            return story.copy()

    async def delete(self, story_id: str, version_id: str) -> Story:
        async with self._lock(story_id):
            story = (await self._require(story_id)).copy()
            target = story.get_version(version_id)
            if target is None:
                raise NotFoundError(f"Version '{version_id}' does not belong to story '{story_id}'")
            if len(story.versions) == 1:
                raise VersionInvariantViolation("Cannot delete the only remaining version of a story")

            story.versions = [v for v in story.versions if v.id != version_id]
            if story.is_active(version_id):
                promoted = max(story.versions, key=lambda v: v.version)
                story.active_version_id = promoted.id
                story.content = promoted.content
                story.updated_at = utc_now()
                logger.info("story_version_promoted", story_id=story_id, version_id=promoted.id)

            await self._store(story)
            logger.info("story_version_deleted", story_id=story_id, version_id=version_id)
            return story.copy()

    async def clear_history(self, story_id: str) -> Story:
        """Collapse the version log to the active version only."""
        async with self._lock(story_id):
            story = (await self._require(story_id)).copy()
            story.versions = [story.active_version]
            story.updated_at = utc_now()
            await self._store(story)
            logger.info("story_history_cleared", story_id=story_id)
            return story.copy()

    async def keep_last(self, story_id: str, count: int) -> Story:
        """Keep the newest *count* versions by stamp; the active one always survives."""
        if count < 1:
            raise ValueError("count must be at least 1")
        async with self._lock(story_id):
            story = (await self._require(story_id)).copy()
            newest = sorted(story.versions, key=lambda v: v.version, reverse=True)[:count]
            keep_ids = {v.id for v in newest} | {story.active_version_id}
            if len(keep_ids) == len(story.versions):
                return story
            story.versions = [v for v in story.versions if v.id in keep_ids]
            await self._store(story)
            logger.info("story_pruned", story_id=story_id, kept=len(story.versions))
            return story.copy()

    async def seed(self, story_id: str, template: GlobalPromptTemplate) -> Story:
        """Start a story from *template* unless the conversation already has one."""
        existing = await self.get(story_id)
        if existing is not None:
            return existing
        return await self.commit(story_id, template.content, create_new_version=True)

    def evict(self, story_id: str) -> None:
        """Forget the cached copy; the next read goes back to the repository."""
        self._stories.pop(story_id, None)

    def _new_version(self, content: str, story: Story | None) -> PromptVersion:
        stamp = self._clock_ms()
        if story is not None and story.versions:
            stamp = max(stamp, max(v.version for v in story.versions) + 1)
        return PromptVersion(id=new_id("version"), content=content, version=stamp)

    async def _load(self, story_id: str) -> Optional[Story]:
        story = self._stories.get(story_id)
        if story is None and self._repo is not None:
            story = await self._repo.load(story_id)
            if story is not None:
                self._stories[story_id] = story
        return story

    async def _require(self, story_id: str) -> Story:
        story = await self._load(story_id)
        if story is None:
            raise NotFoundError(f"Story '{story_id}' does not exist")
        return story

    async def _store(self, story: Story) -> None:
        if self._repo is not None:
            await self._repo.save(story)
        self._stories[story.story_id] = story
