"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Sender(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class StreamEventKind(StrEnum):
    TEXT_DELTA = "text_delta"
    TOOL_CALL_DELTA = "tool_call_delta"


class TurnState(StrEnum):
    IDLE = "idle"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING = "streaming"
    COMMITTING = "committing"
    ERROR_RECOVERY = "error_recovery"
    CANCELLED = "cancelled"


class ConfigAction(StrEnum):
    UPDATE_LANGUAGE = "update_language"
    UPDATE_LOGO = "update_logo"
    UPDATE_THEME = "update_theme"
    TOGGLE_STATUS = "toggle_status"
    UPDATE_WELCOME = "update_welcome"
    UPDATE_NAME = "update_name"
