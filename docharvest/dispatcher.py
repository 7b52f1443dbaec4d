"""Classify an input URL and build the strategy that harvests it."""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlsplit

from .errors import InvalidURLError, NoStrategyError
from .strategies import (
    CrawlerStrategy,
    Dependencies,
    LinkListStrategy,
    PackageRegistryStrategy,
    SitemapStrategy,
    SourceArchiveStrategy,
    Strategy,
    WikiStrategy,
    is_link_list_url,
    is_registry_url,
    is_sitemap_url,
    is_source_repo_url,
    is_wiki_url,
)
from .url import is_http_url


class StrategyType(str, Enum):
    CRAWLER = "crawler"
    SOURCE_ARCHIVE = "git"
    SITEMAP = "sitemap"
    LINK_LIST = "llms"
    PACKAGE_REGISTRY = "pkggo"
    WIKI = "wiki"
    UNKNOWN = "unknown"


_STRATEGY_CLASSES: dict[StrategyType, type[Strategy]] = {
    StrategyType.CRAWLER: CrawlerStrategy,
    StrategyType.SOURCE_ARCHIVE: SourceArchiveStrategy,
    StrategyType.SITEMAP: SitemapStrategy,
    StrategyType.LINK_LIST: LinkListStrategy,
    StrategyType.PACKAGE_REGISTRY: PackageRegistryStrategy,
    StrategyType.WIKI: WikiStrategy,
}


def detect_strategy(url: str) -> StrategyType:
    """Pick the strategy for ``url``; the first matching rule wins.

    Order: wiki, source repository, sitemap, ``llms.txt``, package registry,
    generic HTTP crawl. Anything else is `StrategyType.UNKNOWN`.
    """

    url = (url or "").strip()
    if not url:
        return StrategyType.UNKNOWN
    if is_wiki_url(url):
        return StrategyType.WIKI
    if is_source_repo_url(url):
        return StrategyType.SOURCE_ARCHIVE
    if not is_http_url(url):
        return StrategyType.UNKNOWN
    if is_sitemap_url(url):
        return StrategyType.SITEMAP
    if is_link_list_url(url):
        return StrategyType.LINK_LIST
    if is_registry_url(url):
        return StrategyType.PACKAGE_REGISTRY
    return StrategyType.CRAWLER


def create_strategy(strategy_type: StrategyType | str, deps: Dependencies) -> Strategy:
    try:
        strategy_type = StrategyType(strategy_type)
    except ValueError:
        raise NoStrategyError(f"unknown strategy type: {strategy_type}") from None
    strategy_class = _STRATEGY_CLASSES.get(strategy_type)
    if strategy_class is None:
        raise NoStrategyError(f"no strategy for type {strategy_type.value}")
    return strategy_class(deps)


def is_valid_strategy(name: str) -> bool:
    return name in {member.value for member in _STRATEGY_CLASSES}


def validate_url(url: str) -> str:
    """Return the stripped URL or raise `InvalidURLError` before any I/O."""

    stripped = (url or "").strip()
    if not stripped:
        raise InvalidURLError("URL is empty")
    if is_source_repo_url(stripped) or is_wiki_url(stripped):
        return stripped
    parsed = urlsplit(stripped)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise InvalidURLError(f"unsupported URL scheme {parsed.scheme or '(none)'!r} in {stripped}")
    if not parsed.netloc:
        raise InvalidURLError(f"URL has no host: {stripped}")
    return stripped


__all__ = [
    "StrategyType",
    "create_strategy",
    "detect_strategy",
    "is_valid_strategy",
    "validate_url",
]
