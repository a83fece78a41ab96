"""In-process TTL cache passed explicitly to the components that need it."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from prompt_studio.log import get_logger

logger = get_logger(__name__)

_MISSING = object()


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float | None


class CacheService:
    """Key/value cache with per-entry time-to-live."""

    def __init__(self, default_ttl: float | None = 300.0, clock: Callable[[], float] = time.monotonic):
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            logger.debug("cache_expired", key=key)
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None | object = _MISSING) -> None:
        """Store *value*; ``ttl=None`` keeps it until invalidated."""
        effective_ttl = self._default_ttl if ttl is _MISSING else ttl
        expires_at = None if effective_ttl is None else self._clock() + float(effective_ttl)  # type: ignore[arg-type]
        self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def invalidate(self, key: str) -> bool:
        """Drop *key*. Returns True if an entry was removed."""
        removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug("cache_invalidated", key=key)
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
