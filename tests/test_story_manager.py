"""Tests for versioned stories."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from itertools import count

import pytest

from prompt_studio.core.errors import NotFoundError, VersionInvariantViolation
from prompt_studio.storage.models import GlobalPromptTemplate, Story
from prompt_studio.stories import manager as manager_module
from prompt_studio.stories.manager import StoryManager


def _manager() -> StoryManager:
    ticks = count(1_000)
    return StoryManager(clock_ms=lambda: next(ticks))


def _active_count(story: Story) -> int:
    return sum(1 for v in story.versions if story.is_active(v.id))


@pytest.mark.asyncio
async def test_first_commit_creates_story_with_one_active_version() -> None:
    manager = _manager()

    story = await manager.commit("conv", "1. Greet")

    assert story.content == "1. Greet"
    assert len(story.versions) == 1
    assert story.active_version.content == "1. Greet"


@pytest.mark.asyncio
async def test_new_version_becomes_active() -> None:
    manager = _manager()
    first = await manager.commit("conv", "v1")

    story = await manager.commit("conv", "v2")

    assert [v.content for v in story.versions] == ["v1", "v2"]
    assert story.active_version_id != first.active_version_id
    assert story.content == "v2"
    assert story.versions[0].version < story.versions[1].version


@pytest.mark.asyncio
async def test_recommit_without_new_version_overwrites_active() -> None:
    manager = _manager()
    created = await manager.commit("conv", "draft")

    await manager.commit("conv", "edit one", create_new_version=False)
    story = await manager.commit("conv", "edit two", create_new_version=False)

    assert len(story.versions) == 1
    assert story.active_version_id == created.active_version_id
    assert story.active_version.content == "edit two"
    assert story.content == "edit two"


@pytest.mark.asyncio
async def test_deleting_only_version_is_refused() -> None:
    manager = _manager()
    story = await manager.commit("conv", "only")

    with pytest.raises(VersionInvariantViolation):
        await manager.delete("conv", story.active_version_id)

    after = await manager.get("conv")
    assert after is not None
    assert len(after.versions) == 1


@pytest.mark.asyncio
async def test_exactly_one_active_after_every_operation() -> None:
    manager = _manager()
    v1 = (await manager.commit("conv", "v1")).active_version_id
    await manager.commit("conv", "v2")
    story = await manager.commit("conv", "v3")
    assert _active_count(story) == 1

    story = await manager.revert("conv", v1)
    assert _active_count(story) == 1
    assert story.content == "v1"

    story = await manager.delete("conv", story.versions[1].id)
    assert _active_count(story) == 1
    assert story.active_version_id == v1


@pytest.mark.asyncio
async def test_deleting_active_promotes_most_recent_remaining() -> None:
    manager = _manager()
    await manager.commit("conv", "v1")
    await manager.commit("conv", "v2")
    v3 = (await manager.commit("conv", "v3")).active_version_id
    await manager.revert("conv", v3)

    story = await manager.delete("conv", v3)

    assert story.active_version.content == "v2"
    assert story.content == "v2"


@pytest.mark.asyncio
async def test_unknown_version_raises_not_found() -> None:
    manager = _manager()
    await manager.commit("conv", "v1")

    with pytest.raises(NotFoundError):
        await manager.revert("conv", "version_missing")
    with pytest.raises(NotFoundError):
        await manager.delete("conv", "version_missing")
    with pytest.raises(NotFoundError):
        await manager.clear_history("other")


@pytest.mark.asyncio
async def test_clear_history_keeps_active_only() -> None:
    manager = _manager()
    v1 = (await manager.commit("conv", "v1")).active_version_id
    await manager.commit("conv", "v2")
    await manager.revert("conv", v1)

    story = await manager.clear_history("conv")

    assert [v.id for v in story.versions] == [v1]


@pytest.mark.asyncio
async def test_clear_history_touches_story_timestamp(monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _manager()
    await manager.commit("conv", "v1")
    await manager.commit("conv", "v2")
    later = datetime(2030, 1, 1, tzinfo=timezone.utc)
    monkeypatch.setattr(manager_module, "utc_now", lambda: later)

    story = await manager.clear_history("conv")

    assert story.updated_at == later


@pytest.mark.asyncio
async def test_keep_last_preserves_active_version() -> None:
    manager = _manager()
    v1 = (await manager.commit("conv", "v1")).active_version_id
    for n in range(2, 6):
        await manager.commit("conv", f"v{n}")
    await manager.revert("conv", v1)

    story = await manager.keep_last("conv", 2)

    assert [v.content for v in story.versions] == ["v1", "v4", "v5"]
    assert story.active_version_id == v1

    with pytest.raises(ValueError):
        await manager.keep_last("conv", 0)


@pytest.mark.asyncio
async def test_snapshots_are_isolated() -> None:
    manager = _manager()
    await manager.commit("conv", "v1")

    snapshot = await manager.get("conv")
    assert snapshot is not None
    snapshot.versions.clear()
    snapshot.content = "tampered"

    fresh = await manager.get("conv")
    assert fresh is not None
    assert fresh.content == "v1"
    assert len(fresh.versions) == 1


@pytest.mark.asyncio
async def test_failed_persist_leaves_story_untouched() -> None:
    class _FailingRepo:
        def __init__(self) -> None:
            self.fail = False

        async def load(self, story_id: str) -> Story | None:
            return None

        async def save(self, story: Story) -> None:
            if self.fail:
                raise OSError("disk full")

    repo = _FailingRepo()
    manager = StoryManager(repo=repo)  # type: ignore[arg-type]
    await manager.commit("conv", "v1")
    repo.fail = True

    with pytest.raises(OSError):
        await manager.commit("conv", "v2")

    story = await manager.get("conv")
    assert story is not None
    assert [v.content for v in story.versions] == ["v1"]


@pytest.mark.asyncio
async def test_seed_uses_template_once() -> None:
    manager = _manager()
    template = GlobalPromptTemplate(name="Support", content="1. Greet politely", is_default=True)

    seeded = await manager.seed("conv", template)
    again = await manager.seed("conv", GlobalPromptTemplate(name="Other", content="other"))

    assert seeded.content == "1. Greet politely"
    assert again.content == "1. Greet politely"
    assert len(again.versions) == 1


@pytest.mark.asyncio
async def test_version_stamps_stay_increasing_with_stalled_clock() -> None:
    manager = StoryManager(clock_ms=lambda: 42)

    await manager.commit("conv", "a")
    await manager.commit("conv", "b")
    story = await manager.commit("conv", "c")

    assert [v.version for v in story.versions] == [42, 43, 44]


@pytest.mark.asyncio
async def test_concurrent_commits_to_one_story_are_serialised() -> None:
    manager = _manager()
    await manager.commit("conv", "base")

    await asyncio.gather(*(manager.commit("conv", f"v{n}") for n in range(10)))

    story = await manager.get("conv")
    assert story is not None
    assert len(story.versions) == 11
    assert _active_count(story) == 1
