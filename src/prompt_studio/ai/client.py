"""Completion stream transport with an Anthropic API backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

from prompt_studio.config import AnthropicConfig, CompletionConfig
from prompt_studio.core.errors import RateLimitedError, TransportError
from prompt_studio.core.types import StreamEventKind
from prompt_studio.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One increment of a completion stream.

    Text deltas carry ``text``. Tool-call deltas carry the tool ``name``
    (on the first fragment of a call) and a piece of its JSON arguments;
    fragments of one call share the same ``index``.
    """

    kind: StreamEventKind
    text: str = ""
    name: Optional[str] = None
    arguments_fragment: str = ""
    index: int = 0
    call_id: Optional[str] = None

    @classmethod
    def text_delta(cls, text: str) -> StreamEvent:
        return cls(kind=StreamEventKind.TEXT_DELTA, text=text)

    @classmethod
    def tool_call_delta(
        cls,
        arguments_fragment: str,
        index: int = 0,
        name: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> StreamEvent:
        return cls(
            kind=StreamEventKind.TOOL_CALL_DELTA,
            name=name,
            arguments_fragment=arguments_fragment,
            index=index,
            call_id=call_id,
        )


class CompletionTransport(ABC):
    """Abstract base class for streaming completion backends."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the backend is configured and has not rejected our credentials."""
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Open a completion stream.

        The returned iterator is single-pass and produces nothing until it is
        pulled. Closing it with ``aclose()`` stops the underlying request.
        Failures are raised as :class:`TransportError`.
        """
        ...


class AnthropicTransport(CompletionTransport):
    """Streams completions from the Anthropic Messages API."""

    def __init__(self, config: AnthropicConfig, completion: CompletionConfig, client: Any = None):
        self._completion = completion
        self._client: Any = client
        self._rejected = False
        if client is None and config.api_key:
            import anthropic

            self._client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                base_url=config.base_url,
                max_retries=config.max_retries,
                timeout=config.timeout,
            )

    @property
    def connected(self) -> bool:
        return self._client is not None and not self._rejected

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        import anthropic

        if self._client is None:
            raise TransportError("No Anthropic API key configured")

        system, conversation = _split_system(messages)
        kwargs: dict[str, Any] = {
            "model": self._completion.model,
            "max_tokens": self._completion.max_tokens,
            "temperature": self._completion.temperature,
            "messages": conversation,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools

        logger.debug("stream_request", model=self._completion.model, message_count=len(conversation))
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    normalized = _normalize_event(event)
                    if normalized is not None:
                        yield normalized
        except anthropic.RateLimitError as e:
            logger.warning("stream_rate_limited", error=str(e))
            raise RateLimitedError(retry_after=_retry_after(e)) from e
        except anthropic.AuthenticationError as e:
            self._rejected = True
            logger.error("stream_auth_failed", error=str(e))
            raise TransportError("Invalid API key. Please check your Anthropic API key.", status_code=401) from e
        except anthropic.APIStatusError as e:
            logger.error("stream_status_error", status=e.status_code, error=str(e))
            raise TransportError(f"API error {e.status_code}: {e.message}", status_code=e.status_code) from e
        except anthropic.APIError as e:
            # connection failures and timeouts
            logger.error("stream_failed", error=str(e))
            raise TransportError(str(e) or type(e).__name__) from e


def _split_system(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """Pull system messages out; the Messages API takes them as a separate field."""
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    rest = [m for m in messages if m.get("role") != "system"]
    return "\n\n".join(system_parts), rest


def _normalize_event(event: Any) -> StreamEvent | None:
    event_type = getattr(event, "type", None)
    if event_type == "content_block_start":
        block = event.content_block
        if getattr(block, "type", None) == "tool_use":
            return StreamEvent.tool_call_delta("", index=event.index, name=block.name, call_id=block.id)
        return None
    if event_type == "content_block_delta":
        delta = event.delta
        delta_type = getattr(delta, "type", None)
        if delta_type == "text_delta" and delta.text:
            return StreamEvent.text_delta(delta.text)
        if delta_type == "input_json_delta":
            return StreamEvent.tool_call_delta(delta.partial_json, index=event.index)
    return None


def _retry_after(error: Any) -> float | None:
    response = getattr(error, "response", None)
    header = response.headers.get("retry-after") if response is not None else None
    try:
        return float(header) if header else None
    except ValueError:
        return None
