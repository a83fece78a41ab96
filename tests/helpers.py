"""Shared test doubles: a scripted completion transport and a recording sink."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator, Iterable

from prompt_studio.ai.client import CompletionTransport, StreamEvent
from prompt_studio.ai.orchestrator import SessionOrchestrator
from prompt_studio.ai.tools.configure import ConfigureChatbotTool
from prompt_studio.ai.tools.dispatcher import ToolDispatcher
from prompt_studio.ai.tools.registry import ToolRegistry
from prompt_studio.config import StreamingConfig
from prompt_studio.core.messages import MessageStore
from prompt_studio.core.types import ConfigAction
from prompt_studio.services.configuration import ActionResult, ConfigurationSink
from prompt_studio.stories.manager import StoryManager


class ScriptedTransport(CompletionTransport):
    """Plays back a script of stream items.

    ``StreamEvent`` items are yielded, exceptions are raised at that point of
    the stream, and ``asyncio.Event`` items pause the stream until set.
    """

    def __init__(self, script: Iterable[Any] = (), connected: bool = True):
        self._script = list(script)
        self._connected = connected
        self.requests: list[tuple[list[dict[str, Any]], list[dict[str, Any]] | None]] = []
        self.closed = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        self.requests.append((messages, tools))
        try:
            for item in self._script:
                if isinstance(item, BaseException):
                    raise item
                if isinstance(item, asyncio.Event):
                    await item.wait()
                    continue
                yield item
        finally:
            self.closed = True


def text_events(*chunks: str) -> list[StreamEvent]:
    return [StreamEvent.text_delta(chunk) for chunk in chunks]


class RecordingSink(ConfigurationSink):
    """Records applied actions; actions listed in ``failing`` report failure."""

    def __init__(self, failing: Iterable[ConfigAction] = ()):
        self.applied: list[tuple[ConfigAction, str]] = []
        self._failing = set(failing)

    @property
    def service_name(self) -> str:
        return "recording"

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    async def apply(self, action: ConfigAction, value: str) -> ActionResult:
        if action in self._failing:
            return ActionResult(success=False, message="backend said no")
        self.applied.append((action, value))
        return ActionResult(success=True, message="ok")


def make_orchestrator(
    transport: CompletionTransport,
    sink: ConfigurationSink | None = None,
    messages: MessageStore | None = None,
    stories: StoryManager | None = None,
    **kwargs: Any,
) -> tuple[SessionOrchestrator, MessageStore, StoryManager]:
    registry = ToolRegistry()
    registry.register(ConfigureChatbotTool(sink or RecordingSink()))
    messages = messages or MessageStore()
    stories = stories or StoryManager()
    orchestrator = SessionOrchestrator(
        transport=transport,
        messages=messages,
        stories=stories,
        registry=registry,
        dispatcher=ToolDispatcher(registry),
        streaming=kwargs.pop("streaming", StreamingConfig(min_visible_chars=1)),
        **kwargs,
    )
    return orchestrator, messages, stories
