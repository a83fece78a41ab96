"""Data models for conversations, stories and prompt templates."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from prompt_studio.core.types import Sender


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class Attachment:
    """Reference to an uploaded file; carried with a message but not interpreted."""

    url: str
    media_type: str = "application/octet-stream"
    filename: str = "attachment"


@dataclass
class Message:
    conversation_id: str
    sender: Sender
    content: str
    id: str = field(default_factory=lambda: new_id("msg"))
    timestamp: datetime = field(default_factory=utc_now)
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class Conversation:
    id: str
    title: str = ""
    last_message: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class PromptVersion:
    id: str
    content: str
    version: int  # creation stamp in ms, strictly increasing within a story
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Story:
    """Versioned prompt document bound to one conversation.

    ``content`` is the working copy; ``versions`` is the log and
    ``active_version_id`` points into it.
    """

    story_id: str
    content: str
    active_version_id: str
    versions: list[PromptVersion] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utc_now)

    def get_version(self, version_id: str) -> Optional[PromptVersion]:
        return next((v for v in self.versions if v.id == version_id), None)

    @property
    def active_version(self) -> PromptVersion:
        version = self.get_version(self.active_version_id)
        if version is None:
            raise LookupError(f"Story '{self.story_id}' points at a missing version")
        return version

    def is_active(self, version_id: str) -> bool:
        return version_id == self.active_version_id

    def copy(self) -> Story:
        return replace(self, versions=[replace(v) for v in self.versions])


@dataclass
class GlobalPromptTemplate:
    name: str
    content: str
    is_default: bool = False
    id: str = field(default_factory=lambda: new_id("template"))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
