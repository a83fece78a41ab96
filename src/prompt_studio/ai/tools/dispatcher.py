"""Assemble streamed tool calls and dispatch them to registered tools."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from prompt_studio.ai.client import StreamEvent
from prompt_studio.ai.tools.base import TaskResult
from prompt_studio.ai.tools.registry import ToolRegistry
from prompt_studio.log import get_logger

logger = get_logger(__name__)


@dataclass
class ToolCall:
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    parse_error: Optional[str] = None


@dataclass
class _PendingCall:
    name: Optional[str] = None
    call_id: Optional[str] = None
    fragments: list[str] = field(default_factory=list)


class ToolCallBuffer:
    """Collects tool-call fragments by block index until the stream ends."""

    def __init__(self) -> None:
        self._pending: dict[int, _PendingCall] = {}

    def add(self, event: StreamEvent) -> None:
        pending = self._pending.setdefault(event.index, _PendingCall())
        if event.name and not pending.name:
            pending.name = event.name
        if event.call_id and not pending.call_id:
            pending.call_id = event.call_id
        if event.arguments_fragment:
            pending.fragments.append(event.arguments_fragment)

    def __bool__(self) -> bool:
        return bool(self._pending)

    def finish(self) -> list[ToolCall]:
        """Decode every buffered call; undecodable ones carry a parse error."""
        calls: list[ToolCall] = []
        for index in sorted(self._pending):
            pending = self._pending[index]
            name = pending.name or "unknown"
            raw = "".join(pending.fragments).strip()
            try:
                parameters = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                calls.append(ToolCall(name=name, parse_error=f"invalid JSON arguments ({e.msg})"))
                continue
            if not isinstance(parameters, dict):
                calls.append(ToolCall(name=name, parse_error="arguments must be a JSON object"))
                continue
            calls.append(ToolCall(name=name, parameters=parameters))
        self._pending.clear()
        return calls


@dataclass
class DispatchReport:
    successes: list[TaskResult] = field(default_factory=list)
    failures: list[TaskResult] = field(default_factory=list)

    def add(self, result: TaskResult) -> None:
        (self.successes if result.success else self.failures).append(result)

    def render(self) -> str:
        if not self.successes and not self.failures:
            return "No configuration changes were requested."

        parts: list[str] = []
        if self.successes:
            lines = [f"✅ Successfully completed {len(self.successes)} configuration update(s):"]
            lines.extend(f"• {r.message}" for r in self.successes)
            parts.append("\n".join(lines))
        if self.failures:
            lines = [f"❌ Failed to complete {len(self.failures)} configuration update(s):"]
            lines.extend(f"• {r.message}" for r in self.failures)
            parts.append("\n".join(lines))
        return "\n\n".join(parts)


class ToolDispatcher:
    """Routes tool calls to tools. A failing call never affects its siblings."""

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    async def dispatch(self, calls: list[ToolCall]) -> DispatchReport:
        report = DispatchReport()
        for call in calls:
            for result in await self._dispatch_one(call):
                report.add(result)
        logger.info(
            "tool_batch_dispatched",
            calls=len(calls),
            succeeded=len(report.successes),
            failed=len(report.failures),
        )
        return report

    async def _dispatch_one(self, call: ToolCall) -> list[TaskResult]:
        if call.parse_error:
            logger.warning("tool_call_unparseable", tool=call.name, error=call.parse_error)
            return [TaskResult(success=False, message=f"Could not read {call.name} call: {call.parse_error}")]

        tool = self._registry.get(call.name)
        if tool is None:
            logger.warning("tool_call_unknown", tool=call.name)
            return [TaskResult(success=False, message=f"Unknown tool: {call.name}")]

        try:
            arguments = tool.arguments_model.model_validate(call.parameters)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors()
            )
            logger.warning("tool_call_invalid", tool=call.name, errors=e.error_count())
            return [TaskResult(success=False, message=f"Invalid arguments for {call.name}: {problems}")]

        try:
            results = await tool.execute(arguments)
        except Exception as e:
            logger.error("tool_execution_error", tool=call.name, error=str(e))
            return [TaskResult(success=False, message=f"Error executing {call.name}: {e}")]
        if not results:
            return [TaskResult(success=True, message=f"{call.name} completed")]
        return results
