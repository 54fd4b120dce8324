"""
Block and component content store.

Content is keyed by ``(id, language, variation)``. Lookups fall back to the
default variation, then to the default language, so a Spanish letter with no
Spanish disclaimer still gets the English one rather than nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


LOGGER = logging.getLogger(__name__)

ContentKind = Literal["block", "component"]


class ContentNotFound(LookupError):
    def __init__(self, kind: ContentKind, content_id: str, language: str, variation: str) -> None:
        self.kind = kind
        self.content_id = content_id
        self.language = language
        self.variation = variation
        super().__init__(f"No {kind} '{content_id}' for language={language} variation={variation}")


class ContentItem(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(min_length=1)
    content: str = ""
    language: str | None = None
    variation: str | None = None
    tags: tuple[str, ...] = ()
    compliance_flags: tuple[str, ...] = ()


class ContentRepository(Protocol):
    def get_block(self, block_id: str, language: str, variation: str) -> ContentItem: ...

    def get_component(self, component_id: str, language: str, variation: str) -> ContentItem: ...


class InMemoryContentRepository:
    """Read-only after construction; safe to share across concurrent requests."""

    def __init__(
        self,
        *,
        blocks: Iterable[ContentItem | Mapping[str, Any]] = (),
        components: Iterable[ContentItem | Mapping[str, Any]] = (),
        default_language: str = "en",
        default_variation: str = "default",
    ) -> None:
        self._default_language = default_language
        self._default_variation = default_variation
        self._items: dict[tuple[ContentKind, str, str, str], ContentItem] = {}
        for item in blocks:
            self._add("block", item)
        for item in components:
            self._add("component", item)

    @classmethod
    def from_document(
        cls,
        document: Mapping[str, Any],
        *,
        default_language: str = "en",
        default_variation: str = "default",
    ) -> InMemoryContentRepository:
        return cls(
            blocks=document.get("blocks") or [],
            components=document.get("components") or [],
            default_language=default_language,
            default_variation=default_variation,
        )

    def get_block(self, block_id: str, language: str, variation: str) -> ContentItem:
        return self._get("block", block_id, language, variation)

    def get_component(self, component_id: str, language: str, variation: str) -> ContentItem:
        return self._get("component", component_id, language, variation)

    def _add(self, kind: ContentKind, raw: ContentItem | Mapping[str, Any]) -> None:
        item = raw if isinstance(raw, ContentItem) else ContentItem.model_validate(raw)
        key = (
            kind,
            item.id,
            item.language or self._default_language,
            item.variation or self._default_variation,
        )
        self._items[key] = item

    def _get(self, kind: ContentKind, content_id: str, language: str, variation: str) -> ContentItem:
        candidates = (
            (language, variation),
            (language, self._default_variation),
            (self._default_language, variation),
            (self._default_language, self._default_variation),
        )
        for candidate_language, candidate_variation in candidates:
            item = self._items.get((kind, content_id, candidate_language, candidate_variation))
            if item is not None:
                if (candidate_language, candidate_variation) != (language, variation):
                    LOGGER.debug(
                        "Resolved %s %s via fallback %s/%s",
                        kind,
                        content_id,
                        candidate_language,
                        candidate_variation,
                    )
                return item
        raise ContentNotFound(kind, content_id, language, variation)
