"""Convert conversation history to completion API message format."""

from __future__ import annotations

from typing import Any

from prompt_studio.core.types import Sender
from prompt_studio.storage.models import Message


def build_messages(history: list[Message], system: str = "") -> list[dict[str, Any]]:
    """Convert stored messages into role/content dicts.

    Empty messages (an unfilled streaming placeholder) are skipped and
    consecutive messages from the same sender are merged, since the API
    expects alternating roles.
    """
    messages: list[dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    for message in history:
        content = message.content.strip()
        if not content:
            continue
        role = "user" if message.sender is Sender.USER else "assistant"
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += f"\n\n{content}"
        else:
            messages.append({"role": role, "content": content})

    # The Messages API requires the first turn after the system prompt to be the user's
    first = 1 if system else 0
    while len(messages) > first and messages[first]["role"] == "assistant":
        messages.pop(first)
    return messages
