"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class CompletionConfig(BaseModel):
    backend: str = "anthropic"  # only "anthropic" is built in
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2000
    temperature: float = 0.7
    system_prompt: str = ""  # empty -> prompts.DEFAULT_SYSTEM_PROMPT


class AnthropicConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_retries: int = 2
    timeout: int = 120


class StreamingConfig(BaseModel):
    min_visible_chars: int = 12
    reveal_delay: float = 0.0  # seconds


class ConfigurationApiConfig(BaseModel):
    base_url: Optional[str] = None  # None -> settings are stored locally
    api_key: Optional[str] = None
    timeout: float = 30.0


class StorageConfig(BaseModel):
    db_path: str = "./data/prompt_studio.db"


class CacheConfig(BaseModel):
    default_ttl: float = 300.0


class StoryConfig(BaseModel):
    keep_last_versions: Optional[int] = None  # None -> never prune


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    configuration_api: ConfigurationApiConfig = Field(default_factory=ConfigurationApiConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    story: StoryConfig = Field(default_factory=StoryConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other entries as ${data_dir}
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    config = AppConfig(**data)
    # Unresolved ${VAR} placeholders count as "not configured"
    config.anthropic.api_key = _unset_if_placeholder(config.anthropic.api_key)
    config.configuration_api.base_url = _unset_if_placeholder(config.configuration_api.base_url)
    config.configuration_api.api_key = _unset_if_placeholder(config.configuration_api.api_key)
    if config.anthropic.api_key is None:
        config.anthropic.api_key = os.environ.get("ANTHROPIC_API_KEY")
    return config


def _unset_if_placeholder(value: Optional[str]) -> Optional[str]:
    if not value or _ENV_VAR_PATTERN.fullmatch(value):
        return None
    return value
