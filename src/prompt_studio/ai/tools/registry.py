"""Tool registry for looking up tools by name."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from prompt_studio.ai.tools.base import Tool
from prompt_studio.log import get_logger

if TYPE_CHECKING:
    from prompt_studio.services.service_manager import ServiceManager

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def manifest(self) -> list[dict[str, Any]]:
        """Tool definitions in the format sent with each completion request."""
        return [t.to_api_dict() for t in self._tools.values()]

    def register_builtin(self, service_manager: ServiceManager) -> None:
        """Register the built-in tools."""
        from prompt_studio.ai.tools.configure import ConfigureChatbotTool

        self.register(ConfigureChatbotTool(service_manager.get_configuration_sink()))
