"""Session orchestrator: drives one chat turn from user message to committed story."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncGenerator, Optional

from prompt_studio.ai.classifier import GENERIC_ACKNOWLEDGEMENT, DualResponse, classify
from prompt_studio.ai.client import CompletionTransport, StreamEvent
from prompt_studio.ai.conversation import build_messages
from prompt_studio.ai.prompts import build_system_prompt
from prompt_studio.ai.reveal import RevealGate
from prompt_studio.ai.tools.dispatcher import ToolCallBuffer, ToolDispatcher
from prompt_studio.ai.tools.registry import ToolRegistry
from prompt_studio.config import StreamingConfig
from prompt_studio.core.errors import (
    DISCONNECTED_MESSAGE,
    TransportError,
    TurnInProgressError,
    user_facing_message,
)
from prompt_studio.core.messages import MessageStore
from prompt_studio.core.types import Sender, StreamEventKind, TurnState
from prompt_studio.log import bind_turn_context, clear_turn_context, get_logger
from prompt_studio.stories.manager import StoryManager
from prompt_studio.stories.templates import TemplateStore
from prompt_studio.storage.models import Attachment, Message, Story, new_id

logger = get_logger(__name__)


@dataclass
class TurnResult:
    """Outcome of one turn.

    ``state`` is the state the turn finished from: ``IDLE`` for a completed
    turn, ``ERROR_RECOVERY`` after any failure, ``CANCELLED`` when
    the turn was cancelled.
    """

    conversation_id: str
    state: TurnState
    chat_response: Optional[str] = None
    ai_prompt: Optional[str] = None
    tool_summary: Optional[str] = None
    error: Optional[str] = None
    story: Optional[Story] = None
    assistant_message_id: Optional[str] = None


@dataclass
class _Turn:
    conversation_id: str
    id: str = field(default_factory=lambda: new_id("turn"))
    state: TurnState = TurnState.IDLE
    cancel_requested: asyncio.Event = field(default_factory=asyncio.Event)
    placeholder: Optional[Message] = None


class SessionOrchestrator:
    """Runs chat turns; at most one per conversation, any number across conversations."""

    def __init__(
        self,
        transport: CompletionTransport,
        messages: MessageStore,
        stories: StoryManager,
        registry: ToolRegistry,
        dispatcher: ToolDispatcher,
        templates: TemplateStore | None = None,
        streaming: StreamingConfig | None = None,
        system_prompt: str = "",
        keep_last_versions: int | None = None,
    ):
        self._transport = transport
        self._messages = messages
        self._stories = stories
        self._registry = registry
        self._dispatcher = dispatcher
        self._templates = templates
        self._streaming = streaming or StreamingConfig()
        self._system_prompt = system_prompt
        self._keep_last_versions = keep_last_versions
        self._turns: dict[str, _Turn] = {}

    def state(self, conversation_id: str) -> TurnState:
        turn = self._turns.get(conversation_id)
        return turn.state if turn else TurnState.IDLE

    def cancel(self, conversation_id: str) -> bool:
        """Request cancellation of the running turn. Returns False when none is running."""
        turn = self._turns.get(conversation_id)
        if turn is None:
            return False
        turn.cancel_requested.set()
        logger.info("turn_cancel_requested", conversation_id=conversation_id, state=turn.state.value)
        return True

    async def handle_turn(
        self,
        conversation_id: str,
        text: str,
        attachments: list[Attachment] | None = None,
    ) -> TurnResult:
        if conversation_id in self._turns:
            raise TurnInProgressError(conversation_id)

        turn = _Turn(conversation_id)
        self._turns[conversation_id] = turn
        bind_turn_context(conversation_id, turn.id)
        logger.info("turn_started")
        try:
            return await self._run(turn, text, attachments)
        except Exception as e:
            return self._recover(turn, e)
        finally:
            self._messages.reset_status(conversation_id)
            del self._turns[conversation_id]
            await self._persist(conversation_id)
            logger.info("turn_finished")
            clear_turn_context()

    async def _run(self, turn: _Turn, text: str, attachments: list[Attachment] | None) -> TurnResult:
        cid = turn.conversation_id
        self._messages.add_message(cid, text, Sender.USER, attachments)

        if not self._transport.connected:
            self._messages.add_message(cid, DISCONNECTED_MESSAGE, Sender.ASSISTANT)
            logger.warning("turn_refused_disconnected")
            return TurnResult(cid, TurnState.IDLE, error=DISCONNECTED_MESSAGE)

        self._set_state(turn, TurnState.AWAITING_FIRST_TOKEN)
        self._messages.set_typing(cid, True)
        story = await self._story_for(cid)
        request = build_messages(
            self._messages.messages(cid),
            build_system_prompt(self._system_prompt, story.content if story else None),
        )
        placeholder = turn.placeholder = self._messages.add_message(cid, "", Sender.ASSISTANT)
        gate = RevealGate(self._streaming.min_visible_chars)
        tool_calls = ToolCallBuffer()

        stream = self._transport.stream(request, self._registry.manifest() or None)
        try:
            while (event := await self._next_event(turn, stream)) is not None:
                if turn.state is TurnState.AWAITING_FIRST_TOKEN:
                    self._set_state(turn, TurnState.STREAMING)
                if event.kind is StreamEventKind.TOOL_CALL_DELTA:
                    tool_calls.add(event)
                    continue
                await self._reveal(cid, placeholder, gate.feed(event.text))
                if gate.prompt_started and not self._messages.is_generating(cid):
                    self._messages.set_generating(cid, True)
        finally:
            await stream.aclose()

        if turn.cancel_requested.is_set():
            self._set_state(turn, TurnState.CANCELLED)
            self._drop_if_empty(cid, placeholder)
            return TurnResult(cid, TurnState.CANCELLED, assistant_message_id=placeholder.id)

        await self._reveal(cid, placeholder, gate.flush())
        self._set_state(turn, TurnState.COMMITTING)
        return await self._commit(turn, placeholder, classify(gate.buffer), tool_calls, had_reveal=bool(gate.revealed))

    async def _commit(
        self,
        turn: _Turn,
        placeholder: Message,
        result: DualResponse,
        tool_calls: ToolCallBuffer,
        had_reveal: bool,
    ) -> TurnResult:
        cid = turn.conversation_id
        outcome = TurnResult(
            cid,
            TurnState.IDLE,
            chat_response=result.chat_response,
            ai_prompt=result.ai_prompt,
            assistant_message_id=placeholder.id,
        )

        chat = result.chat_response or (GENERIC_ACKNOWLEDGEMENT if result.ai_prompt else None)
        if chat:
            self._messages.set_last_message_summary(cid, chat)
            if not had_reveal:
                self._messages.update_message(cid, placeholder.id, chat)

        if result.ai_prompt:
            outcome.story = await self._stories.commit(cid, result.ai_prompt, create_new_version=True)
            if self._keep_last_versions:
                outcome.story = await self._stories.keep_last(cid, self._keep_last_versions)

        if self._drop_if_empty(cid, placeholder):
            outcome.assistant_message_id = None

        if tool_calls:
            report = await self._dispatcher.dispatch(tool_calls.finish())
            outcome.tool_summary = report.render()
            self._messages.add_message(cid, outcome.tool_summary, Sender.ASSISTANT)

        logger.info(
            "turn_committed",
            source=result.source,
            has_chat=result.chat_response is not None,
            has_prompt=result.ai_prompt is not None,
            tool_summary=outcome.tool_summary is not None,
        )
        self._set_state(turn, TurnState.IDLE)
        return outcome

    def _recover(self, turn: _Turn, error: Exception) -> TurnResult:
        cid = turn.conversation_id
        self._set_state(turn, TurnState.ERROR_RECOVERY)
        if isinstance(error, TransportError):
            logger.error("turn_transport_error", error=str(error), status=error.status_code)
        else:
            logger.exception("turn_failed", error=str(error))
        if turn.placeholder is not None:
            self._drop_if_empty(cid, turn.placeholder)
        message = user_facing_message(error)
        self._messages.add_message(cid, message, Sender.ASSISTANT)
        return TurnResult(cid, TurnState.ERROR_RECOVERY, error=message)

    async def _next_event(
        self,
        turn: _Turn,
        stream: AsyncGenerator[StreamEvent, None],
    ) -> Optional[StreamEvent]:
        """Pull the next event; None when the stream is exhausted or the turn is cancelled."""
        if turn.cancel_requested.is_set():
            return None
        pull = asyncio.ensure_future(anext(stream))
        cancelled = asyncio.ensure_future(turn.cancel_requested.wait())
        done, pending = await asyncio.wait({pull, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if pull not in done:
            return None
        try:
            return pull.result()
        except StopAsyncIteration:
            return None

    async def _reveal(self, conversation_id: str, placeholder: Message, text: str) -> None:
        if not text:
            return
        if self._streaming.reveal_delay > 0:
            await asyncio.sleep(self._streaming.reveal_delay)
        self._messages.append_content(conversation_id, placeholder.id, text)

    def _drop_if_empty(self, conversation_id: str, placeholder: Message) -> bool:
        last = self._messages.last_message(conversation_id)
        if last is None or last.id != placeholder.id or last.content.strip():
            return False
        return self._messages.remove_last_message(conversation_id)

    async def _story_for(self, conversation_id: str) -> Optional[Story]:
        story = await self._stories.get(conversation_id)
        if story is None and self._templates is not None:
            template = self._templates.default()
            if template is not None:
                story = await self._stories.seed(conversation_id, template)
        return story

    async def _persist(self, conversation_id: str) -> None:
        try:
            await self._messages.persist(conversation_id)
        except Exception as e:
            logger.error("conversation_persist_failed", conversation_id=conversation_id, error=str(e))

    def _set_state(self, turn: _Turn, state: TurnState) -> None:
        logger.debug("turn_state", previous=turn.state.value, state=state.value)
        turn.state = state
