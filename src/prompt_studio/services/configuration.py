"""Configuration action sinks: the side-effecting end of the configure tool."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from prompt_studio.config import ConfigurationApiConfig
from prompt_studio.core.cache import CacheService
from prompt_studio.core.types import ConfigAction
from prompt_studio.log import get_logger
from prompt_studio.services.base import Service
from prompt_studio.storage.story_repo import SettingsRepository

logger = get_logger(__name__)

# action -> (endpoint resource, payload field)
ACTION_ROUTES: dict[ConfigAction, tuple[str, str]] = {
    ConfigAction.UPDATE_LANGUAGE: ("language", "language"),
    ConfigAction.UPDATE_LOGO: ("logo", "logo_url"),
    ConfigAction.UPDATE_THEME: ("theme", "color_scheme"),
    ConfigAction.TOGGLE_STATUS: ("status", "status"),
    ConfigAction.UPDATE_WELCOME: ("welcome", "message"),
    ConfigAction.UPDATE_NAME: ("name", "name"),
}

_SETTINGS_CACHE_KEY = "bot_settings"


@dataclass(frozen=True, slots=True)
class ActionResult:
    success: bool
    message: str
    data: Optional[dict[str, Any]] = None


class ConfigurationSink(Service):
    """Applies one configuration action with a single string value."""

    @abstractmethod
    async def apply(self, action: ConfigAction, value: str) -> ActionResult:
        ...


class HttpConfigurationSink(ConfigurationSink):
    """Posts configuration actions to the chatbot management API."""

    def __init__(self, config: ConfigurationApiConfig, client: httpx.AsyncClient | None = None):
        if not config.base_url:
            raise ValueError("configuration_api.base_url is required for the HTTP sink")
        self._config = config
        self._client = client
        self._owns_client = client is None

    @property
    def service_name(self) -> str:
        return "configuration_api"

    async def start(self) -> None:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._config.api_key:
                headers["Authorization"] = f"Bearer {self._config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                headers=headers,
                timeout=self._config.timeout,
            )
        logger.info("configuration_sink_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        return self._client is not None

    async def apply(self, action: ConfigAction, value: str) -> ActionResult:
        if self._client is None:
            await self.start()
        resource, field = ACTION_ROUTES[action]
        payload = {field: value, "action": action.value}

        try:
            response = await self._client.post(f"/chatbot/{resource}", json=payload)
        except httpx.HTTPError as e:
            logger.error("configuration_request_failed", action=action.value, error=str(e))
            return ActionResult(success=False, message=str(e) or "Network error")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"result": body}

        if response.is_success:
            return ActionResult(success=True, message="ok", data=body)
        return ActionResult(
            success=False,
            message=body.get("message") or f"HTTP {response.status_code}",
        )


class StoredConfigurationSink(ConfigurationSink):
    """Keeps bot settings in the local database (or in memory without one)."""

    def __init__(self, cache: CacheService, repo: SettingsRepository | None = None):
        self._cache = cache
        self._repo = repo
        self._memory: dict[str, str] = {}

    @property
    def service_name(self) -> str:
        return "configuration_store"

    async def start(self) -> None:
        self._cache.invalidate(_SETTINGS_CACHE_KEY)

    async def stop(self) -> None:
        self._cache.invalidate(_SETTINGS_CACHE_KEY)

    async def health_check(self) -> bool:
        return True

    async def apply(self, action: ConfigAction, value: str) -> ActionResult:
        _, field = ACTION_ROUTES[action]
        if action is ConfigAction.TOGGLE_STATUS:
            normalized = _normalize_status(value)
            if normalized is None:
                return ActionResult(success=False, message=f"Invalid status '{value}', expected on or off")
            value = normalized

        if self._repo is not None:
            await self._repo.set(field, value)
        else:
            self._memory[field] = value
        self._cache.invalidate(_SETTINGS_CACHE_KEY)
        logger.info("bot_setting_stored", field=field, action=action.value)
        return ActionResult(success=True, message="ok", data={field: value})

    async def get_settings(self) -> dict[str, str]:
        cached = self._cache.get(_SETTINGS_CACHE_KEY)
        if cached is not None:
            return dict(cached)
        settings = await self._repo.get_all() if self._repo is not None else dict(self._memory)
        self._cache.set(_SETTINGS_CACHE_KEY, settings)
        return dict(settings)


def _normalize_status(value: str) -> str | None:
    lowered = value.strip().lower()
    if lowered in ("on", "enable", "enabled", "true", "active", "1"):
        return "on"
    if lowered in ("off", "disable", "disabled", "false", "inactive", "0"):
        return "off"
    return None
