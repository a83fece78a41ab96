"""Global prompt templates used to seed new stories."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from prompt_studio.core.cache import CacheService
from prompt_studio.core.errors import NotFoundError
from prompt_studio.log import get_logger
from prompt_studio.storage.models import GlobalPromptTemplate, utc_now
from prompt_studio.storage.story_repo import TemplateRepository

logger = get_logger(__name__)

_DEFAULT_CACHE_KEY = "templates:default"
_UPDATABLE_FIELDS = frozenset({"name", "content", "is_default"})


class TemplateStore:
    """Catalogue of global prompt templates; at most one is the default."""

    def __init__(self, cache: CacheService, repo: TemplateRepository | None = None):
        self._cache = cache
        self._repo = repo
        self._templates: list[GlobalPromptTemplate] = []

    async def load(self) -> None:
        if self._repo is not None:
            self._templates = await self._repo.list_all()
        self._cache.invalidate(_DEFAULT_CACHE_KEY)

    def all(self) -> list[GlobalPromptTemplate]:
        return [replace(t) for t in self._templates]

    def get(self, template_id: str) -> Optional[GlobalPromptTemplate]:
        template = self._find(template_id)
        return replace(template) if template else None

    def default(self) -> Optional[GlobalPromptTemplate]:
        cached = self._cache.get(_DEFAULT_CACHE_KEY)
        if cached is not None:
            return replace(cached)
        template = next((t for t in self._templates if t.is_default), None)
        if template is not None:
            self._cache.set(_DEFAULT_CACHE_KEY, replace(template))
        return replace(template) if template else None

    async def create(self, name: str, content: str, is_default: bool = False) -> GlobalPromptTemplate:
        template = GlobalPromptTemplate(name=name, content=content, is_default=is_default)
        templates = [replace(t) for t in self._templates]
        if is_default:
            for other in templates:
                other.is_default = False
        templates.append(template)
        await self._commit(templates)
        logger.info("template_created", template_id=template.id, is_default=is_default)
        return replace(template)

    async def update(self, template_id: str, **updates: Any) -> GlobalPromptTemplate:
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update template fields: {', '.join(sorted(unknown))}")
        if self._find(template_id) is None:
            raise NotFoundError(f"Template '{template_id}' does not exist")

        templates = [replace(t) for t in self._templates]
        target = next(t for t in templates if t.id == template_id)
        for key, value in updates.items():
            setattr(target, key, value)
        target.updated_at = utc_now()
        if updates.get("is_default"):
            for other in templates:
                if other.id != template_id:
                    other.is_default = False

        await self._commit(templates)
        logger.info("template_updated", template_id=template_id, fields=sorted(updates))
        return replace(target)

    async def delete(self, template_id: str) -> None:
        if self._find(template_id) is None:
            raise NotFoundError(f"Template '{template_id}' does not exist")
        await self._commit([replace(t) for t in self._templates if t.id != template_id])
        logger.info("template_deleted", template_id=template_id)

    def _find(self, template_id: str) -> Optional[GlobalPromptTemplate]:
        return next((t for t in self._templates if t.id == template_id), None)

    async def _commit(self, templates: list[GlobalPromptTemplate]) -> None:
        if self._repo is not None:
            await self._repo.save_all(templates)
        self._templates = templates
        self._cache.invalidate(_DEFAULT_CACHE_KEY)
