"""Service lifecycle manager."""

from __future__ import annotations

from prompt_studio.config import ConfigurationApiConfig
from prompt_studio.core.cache import CacheService
from prompt_studio.log import get_logger
from prompt_studio.services.configuration import (
    ConfigurationSink,
    HttpConfigurationSink,
    StoredConfigurationSink,
)
from prompt_studio.storage.story_repo import SettingsRepository

logger = get_logger(__name__)


class ServiceManager:
    """Manages startup and shutdown of all services."""

    def __init__(
        self,
        config: ConfigurationApiConfig,
        cache: CacheService,
        settings_repo: SettingsRepository | None = None,
    ):
        self._configuration: ConfigurationSink
        if config.base_url:
            self._configuration = HttpConfigurationSink(config)
        else:
            self._configuration = StoredConfigurationSink(cache, settings_repo)

    def get_configuration_sink(self) -> ConfigurationSink:
        return self._configuration

    async def start_all(self) -> None:
        await self._configuration.start()
        logger.info("all_services_started", configuration=self._configuration.service_name)

    async def stop_all(self) -> None:
        """Stop all services gracefully."""
        try:
            await self._configuration.stop()
        except Exception as e:
            logger.warning("service_stop_failed", service=self._configuration.service_name, error=str(e))
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        return {self._configuration.service_name: await self._configuration.health_check()}
