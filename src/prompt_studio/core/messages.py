"""Per-conversation message lists and typing/generating status flags."""

from __future__ import annotations

from typing import Optional

from prompt_studio.core.types import Sender
from prompt_studio.log import get_logger
from prompt_studio.storage.conversation_repo import ConversationRepository
from prompt_studio.storage.models import Attachment, Conversation, Message, utc_now

logger = get_logger(__name__)


class MessageStore:
    """Holds the live message list of every open conversation."""

    def __init__(self, repo: ConversationRepository | None = None):
        self._repo = repo
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._typing: set[str] = set()
        self._generating: set[str] = set()

    def ensure_conversation(self, conversation_id: str, title: str = "") -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(id=conversation_id, title=title or f"Chat {conversation_id}")
            self._conversations[conversation_id] = conversation
            self._messages.setdefault(conversation_id, [])
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def add_message(
        self,
        conversation_id: str,
        content: str,
        sender: Sender,
        attachments: list[Attachment] | None = None,
    ) -> Message:
        conversation = self.ensure_conversation(conversation_id)
        message = Message(
            conversation_id=conversation_id,
            sender=sender,
            content=content,
            attachments=list(attachments or []),
        )
        self._messages[conversation_id].append(message)
        if content:
            conversation.last_message = content
        conversation.timestamp = message.timestamp
        return message

    def append_content(self, conversation_id: str, message_id: str, text: str) -> bool:
        message = self._find(conversation_id, message_id)
        if message is None:
            return False
        message.content += text
        message.timestamp = utc_now()
        return True

    def update_message(self, conversation_id: str, message_id: str, content: str) -> bool:
        message = self._find(conversation_id, message_id)
        if message is None:
            return False
        message.content = content
        message.timestamp = utc_now()
        return True

    def remove_last_message(self, conversation_id: str) -> bool:
        messages = self._messages.get(conversation_id)
        if not messages:
            return False
        messages.pop()
        return True

    def messages(self, conversation_id: str) -> list[Message]:
        return list(self._messages.get(conversation_id, []))

    def last_message(self, conversation_id: str) -> Optional[Message]:
        messages = self._messages.get(conversation_id)
        return messages[-1] if messages else None

    def set_last_message_summary(self, conversation_id: str, summary: str) -> None:
        conversation = self.ensure_conversation(conversation_id)
        conversation.last_message = summary
        conversation.timestamp = utc_now()

    def clear(self, conversation_id: str) -> None:
        self._messages[conversation_id] = []

    # Status flags

    def set_typing(self, conversation_id: str, status: bool) -> None:
        (self._typing.add if status else self._typing.discard)(conversation_id)

    def set_generating(self, conversation_id: str, status: bool) -> None:
        (self._generating.add if status else self._generating.discard)(conversation_id)

    def is_typing(self, conversation_id: str) -> bool:
        return conversation_id in self._typing

    def is_generating(self, conversation_id: str) -> bool:
        return conversation_id in self._generating

    def reset_status(self, conversation_id: str) -> None:
        self._typing.discard(conversation_id)
        self._generating.discard(conversation_id)

    # Persistence

    async def load(self, conversation_id: str) -> list[Message]:
        """Load a conversation from the repository, replacing the in-memory copy."""
        if self._repo is None:
            return self.messages(conversation_id)
        stored = await self._repo.get_conversation(conversation_id)
        self._conversations[conversation_id] = stored or Conversation(id=conversation_id)
        self._messages[conversation_id] = await self._repo.get_messages(conversation_id)
        return self.messages(conversation_id)

    async def persist(self, conversation_id: str) -> None:
        if self._repo is None:
            return
        conversation = self.ensure_conversation(conversation_id)
        await self._repo.upsert_conversation(conversation)
        await self._repo.replace_messages(conversation_id, self._messages[conversation_id])
        logger.debug("conversation_persisted", conversation_id=conversation_id)

    def _find(self, conversation_id: str, message_id: str) -> Optional[Message]:
        return next((m for m in self._messages.get(conversation_id, []) if m.id == message_id), None)
