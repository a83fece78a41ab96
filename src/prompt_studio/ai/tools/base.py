"""Abstract tool interface for model-callable tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of one unit of work performed by a tool."""

    success: bool
    message: str
    data: Optional[dict[str, Any]] = None


class Tool(ABC):
    """Base class for all tools the model may call.

    Arguments are validated against :attr:`arguments_model` before
    :meth:`execute` runs, so implementations receive a typed model.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the completion backend."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def arguments_model(self) -> type[BaseModel]:
        """Pydantic model describing the accepted arguments."""
        ...

    @abstractmethod
    async def execute(self, arguments: BaseModel) -> list[TaskResult]:
        """Run the tool; one result per task performed."""
        ...

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.arguments_model.model_json_schema()

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }
