"""Application wiring: builds every component and manages their lifecycle."""

from __future__ import annotations

from prompt_studio.ai.client import AnthropicTransport, CompletionTransport
from prompt_studio.ai.orchestrator import SessionOrchestrator
from prompt_studio.ai.tools.dispatcher import ToolDispatcher
from prompt_studio.ai.tools.registry import ToolRegistry
from prompt_studio.config import AppConfig
from prompt_studio.core.cache import CacheService
from prompt_studio.core.messages import MessageStore
from prompt_studio.log import get_logger
from prompt_studio.services.service_manager import ServiceManager
from prompt_studio.storage.conversation_repo import ConversationRepository
from prompt_studio.storage.database import Database
from prompt_studio.storage.story_repo import SettingsRepository, StoryRepository, TemplateRepository
from prompt_studio.stories.manager import StoryManager
from prompt_studio.stories.templates import TemplateStore

logger = get_logger(__name__)


class PromptStudioApp:
    """Top-level application object."""

    def __init__(self, config: AppConfig, transport: CompletionTransport | None = None):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.cache = CacheService(default_ttl=config.cache.default_ttl)

        self.conversation_repo = ConversationRepository(self.db)
        self.story_repo = StoryRepository(self.db)
        self.template_repo = TemplateRepository(self.db)
        self.settings_repo = SettingsRepository(self.db)

        self.messages = MessageStore(self.conversation_repo)
        self.stories = StoryManager(self.story_repo)
        self.templates = TemplateStore(self.cache, self.template_repo)

        self.service_manager = ServiceManager(config.configuration_api, self.cache, self.settings_repo)
        self.tool_registry = ToolRegistry()
        self.dispatcher = ToolDispatcher(self.tool_registry)
        self.transport = transport or self._create_transport()

        self.orchestrator = SessionOrchestrator(
            transport=self.transport,
            messages=self.messages,
            stories=self.stories,
            registry=self.tool_registry,
            dispatcher=self.dispatcher,
            templates=self.templates,
            streaming=config.streaming,
            system_prompt=config.completion.system_prompt,
            keep_last_versions=config.story.keep_last_versions,
        )

    async def start(self) -> None:
        """Initialize storage, services and tools."""
        await self.db.initialize()
        await self.templates.load()
        await self.service_manager.start_all()
        self.tool_registry.register_builtin(self.service_manager)
        logger.info(
            "prompt_studio_started",
            backend=self.config.completion.backend,
            connected=self.transport.connected,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        await self.service_manager.stop_all()
        await self.db.close()
        self.cache.clear()
        logger.info("prompt_studio_stopped")

    def _create_transport(self) -> CompletionTransport:
        match self.config.completion.backend:
            case "anthropic":
                return AnthropicTransport(self.config.anthropic, self.config.completion)
            case _:
                raise ValueError(f"Unknown completion backend: {self.config.completion.backend}")
