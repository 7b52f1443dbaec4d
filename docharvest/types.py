"""Core type definitions shared across the harvester.

This module is intentionally dependency-light so other modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from .constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_INTERVAL_SECONDS,
    DEFAULT_MAX_INTERVAL_SECONDS,
    DEFAULT_MAX_RETRIES,
)


class ContentKind(str, Enum):
    """How a fetched response is routed by the strategies."""

    HTML = "html"
    MARKDOWN = "markdown"
    OTHER = "other"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]

HEADING_LEVELS = ("h1", "h2", "h3", "h4", "h5", "h6")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A crawl candidate tracked by the frontier."""

    url: str
    depth: int
    referrer: str | None = None


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Result of one successful fetch, either from the network or the cache."""

    url: str
    status_code: int
    body: bytes
    content_type: str = ""
    final_url: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def effective_url(self) -> str:
        return self.final_url or self.url

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff settings; non-positive values fall back to defaults."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_interval: float = DEFAULT_INITIAL_INTERVAL_SECONDS
    max_interval: float = DEFAULT_MAX_INTERVAL_SECONDS
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        if self.max_retries <= 0:
            object.__setattr__(self, "max_retries", DEFAULT_MAX_RETRIES)
        if self.initial_interval <= 0:
            object.__setattr__(self, "initial_interval", DEFAULT_INITIAL_INTERVAL_SECONDS)
        if self.max_interval <= 0:
            object.__setattr__(self, "max_interval", DEFAULT_MAX_INTERVAL_SECONDS)
        if self.multiplier <= 0:
            object.__setattr__(self, "multiplier", DEFAULT_BACKOFF_MULTIPLIER)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached value with an absolute expiry time (epoch seconds)."""

    value: bytes
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at

    def ttl(self, now: float | None = None) -> float:
        """Remaining lifetime in seconds, never negative."""

        current = time.time() if now is None else now
        return max(0.0, self.expires_at - current)


@dataclass(frozen=True, slots=True)
class Document:
    """One normalized documentation page ready to be written."""

    url: str
    title: str = ""
    description: str = ""
    content: str = ""
    html_content: str = ""
    content_hash: str = ""
    word_count: int = 0
    char_count: int = 0
    links: tuple[str, ...] = ()
    headings: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    rendered_with_js: bool = False
    source_strategy: str = ""
    cache_hit: bool = False
    fetched_at: datetime | None = None
    relative_path: str = ""

    def with_updates(self, **changes: Any) -> "Document":
        return replace(self, **changes)

    def frontmatter(self) -> dict[str, Any]:
        """Mapping serialized as the YAML header of the Markdown file."""

        data: dict[str, Any] = {
            "title": self.title,
            "url": self.url,
            "source": self.source_strategy,
            "fetched_at": (self.fetched_at or utc_now()).isoformat(timespec="seconds"),
            "rendered_js": self.rendered_with_js,
            "word_count": self.word_count,
        }
        if self.description:
            data["description"] = self.description
        return data

    def to_metadata(self) -> JSONDict:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "content_hash": self.content_hash,
            "word_count": self.word_count,
            "char_count": self.char_count,
            "links": list(self.links),
            "headings": {level: list(texts) for level, texts in self.headings.items()},
            "rendered_with_js": self.rendered_with_js,
            "source_strategy": self.source_strategy,
            "cache_hit": self.cache_hit,
            "fetched_at": None if self.fetched_at is None else self.fetched_at.isoformat(timespec="seconds"),
        }


__all__ = [
    "CacheEntry",
    "ContentKind",
    "Document",
    "FetchResult",
    "FrontierItem",
    "HEADING_LEVELS",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "RetryPolicy",
    "utc_now",
]
