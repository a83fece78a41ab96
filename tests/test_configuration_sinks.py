"""Tests for the HTTP and stored configuration sinks."""

from __future__ import annotations

import json

import httpx
import pytest

from prompt_studio.config import ConfigurationApiConfig
from prompt_studio.core.cache import CacheService
from prompt_studio.core.types import ConfigAction
from prompt_studio.services.configuration import HttpConfigurationSink, StoredConfigurationSink
from prompt_studio.services.service_manager import ServiceManager


def _http_sink(handler) -> HttpConfigurationSink:
    client = httpx.AsyncClient(base_url="https://api.example.com", transport=httpx.MockTransport(handler))
    return HttpConfigurationSink(ConfigurationApiConfig(base_url="https://api.example.com"), client=client)


@pytest.mark.asyncio
async def test_http_sink_posts_field_and_action() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"status": "updated"})

    result = await _http_sink(handler).apply(ConfigAction.UPDATE_THEME, "dark")

    assert result.success
    assert result.data == {"status": "updated"}
    assert requests[0].url.path == "/chatbot/theme"
    assert json.loads(requests[0].content) == {"color_scheme": "dark", "action": "update_theme"}


@pytest.mark.asyncio
async def test_http_sink_reports_error_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Unsupported language"})

    result = await _http_sink(handler).apply(ConfigAction.UPDATE_LANGUAGE, "xx")

    assert not result.success
    assert result.message == "Unsupported language"


@pytest.mark.asyncio
async def test_http_sink_network_failure_is_a_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _http_sink(handler).apply(ConfigAction.UPDATE_NAME, "Pizzabot")

    assert not result.success
    assert "connection refused" in result.message


def test_http_sink_requires_base_url() -> None:
    with pytest.raises(ValueError):
        HttpConfigurationSink(ConfigurationApiConfig())


@pytest.mark.asyncio
async def test_stored_sink_normalizes_status_and_caches_settings() -> None:
    cache = CacheService()
    sink = StoredConfigurationSink(cache)

    assert (await sink.apply(ConfigAction.TOGGLE_STATUS, "Enabled")).success
    assert not (await sink.apply(ConfigAction.TOGGLE_STATUS, "maybe")).success
    await sink.apply(ConfigAction.UPDATE_WELCOME, "Welcome!")

    settings = await sink.get_settings()
    assert settings == {"status": "on", "message": "Welcome!"}
    assert "bot_settings" in cache

    await sink.apply(ConfigAction.UPDATE_NAME, "Pizzabot")
    assert "bot_settings" not in cache
    assert (await sink.get_settings())["name"] == "Pizzabot"


def test_service_manager_picks_sink_from_config() -> None:
    cache = CacheService()

    local = ServiceManager(ConfigurationApiConfig(), cache)
    remote = ServiceManager(ConfigurationApiConfig(base_url="https://api.example.com"), cache)

    assert isinstance(local.get_configuration_sink(), StoredConfigurationSink)
    assert isinstance(remote.get_configuration_sink(), HttpConfigurationSink)
