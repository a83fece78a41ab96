"""Chatbot configuration tool: language, logo, theme, status, welcome message, name."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from prompt_studio.ai.tools.base import TaskResult, Tool
from prompt_studio.core.types import ConfigAction
from prompt_studio.log import get_logger
from prompt_studio.services.configuration import ConfigurationSink

logger = get_logger(__name__)

# Task keys the model may use, with the aliases older prompts produced.
TASK_KEY_ACTIONS: dict[str, ConfigAction] = {
    "change_language": ConfigAction.UPDATE_LANGUAGE,
    "language": ConfigAction.UPDATE_LANGUAGE,
    "change_logo": ConfigAction.UPDATE_LOGO,
    "logo": ConfigAction.UPDATE_LOGO,
    "change_color": ConfigAction.UPDATE_THEME,
    "color_scheme": ConfigAction.UPDATE_THEME,
    "theme": ConfigAction.UPDATE_THEME,
    "toggle_chatbot": ConfigAction.TOGGLE_STATUS,
    "chatbot_status": ConfigAction.TOGGLE_STATUS,
    "update_welcome_message": ConfigAction.UPDATE_WELCOME,
    "welcome_message": ConfigAction.UPDATE_WELCOME,
    "change_name": ConfigAction.UPDATE_NAME,
    "chatbot_name": ConfigAction.UPDATE_NAME,
}


class ConfigurationTask(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str = Field(description="Configuration property to update, e.g. change_language, change_logo, change_color")
    value: str = Field(description="New value for the configuration property")


class ConfigureChatbotArguments(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tasks: list[ConfigurationTask] = Field(description="Configuration updates to perform")


class ConfigureChatbotTool(Tool):
    """Applies configuration tasks through a :class:`ConfigurationSink`."""

    def __init__(self, sink: ConfigurationSink):
        self._sink = sink

    @property
    def name(self) -> str:
        return "configure_chatbot"

    @property
    def description(self) -> str:
        return (
            "Handles configuration updates for the chatbot, such as language, logo, "
            "color scheme, on/off status, welcome message and display name."
        )

    @property
    def arguments_model(self) -> type[BaseModel]:
        return ConfigureChatbotArguments

    async def execute(self, arguments: ConfigureChatbotArguments) -> list[TaskResult]:  # type: ignore[override]
        return [await self._run_task(task) for task in arguments.tasks]

    async def _run_task(self, task: ConfigurationTask) -> TaskResult:
        action = TASK_KEY_ACTIONS.get(task.key)
        if action is None:
            logger.warning("tool_task_unknown_key", key=task.key)
            return TaskResult(success=False, message=f"Unknown configuration key: {task.key}")

        try:
            result = await self._sink.apply(action, task.value)
        except Exception as e:
            logger.error("tool_task_failed", key=task.key, action=action.value, error=str(e))
            return TaskResult(success=False, message=f"Error updating {task.key}: {e}")

        if not result.success:
            logger.warning("tool_task_rejected", key=task.key, action=action.value, reason=result.message)
            return TaskResult(success=False, message=f"Failed to update {task.key}: {result.message}")

        logger.info("tool_task_applied", key=task.key, action=action.value)
        return TaskResult(
            success=True,
            message=f'Successfully updated {task.key} to "{task.value}"',
            data=result.data,
        )
