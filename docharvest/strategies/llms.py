"""Harvest the pages an ``llms.txt`` index links to."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..context import Context
from ..url import is_http_url, resolve_url, url_path_lower
from .base import Options, Strategy, filter_urls


logger = logging.getLogger(__name__)

_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")


@dataclass(frozen=True, slots=True)
class LinkEntry:
    title: str
    url: str


def is_link_list_url(url: str) -> bool:
    return url_path_lower(url).endswith("llms.txt")


def parse_link_list(content: str, base_url: str = "") -> list[LinkEntry]:
    """Markdown ``[title](url)`` links, resolved against ``base_url``.

    Fragment-only and empty targets are dropped; duplicates keep the first
    title seen.
    """

    entries: list[LinkEntry] = []
    seen: set[str] = set()
    for match in _LINK.finditer(content):
        title = match.group(1).strip()
        target = match.group(2).strip().split(maxsplit=1)[0] if match.group(2).strip() else ""
        if not target or target.startswith("#"):
            continue
        resolved = resolve_url(base_url, target) if base_url else target
        if not resolved or not is_http_url(resolved) or resolved in seen:
            continue
        seen.add(resolved)
        entries.append(LinkEntry(title=title, url=resolved))
    return entries


class LinkListStrategy(Strategy):
    """Fetch ``llms.txt`` and harvest every page it lists."""

    name = "llms"

    def can_handle(self, url: str) -> bool:
        return is_http_url(url) and is_link_list_url(url)

    def execute(self, ctx: Context, url: str, options: Options) -> None:
        ctx.raise_if_done()
        logger.info("Fetching llms.txt %s", url)
        if options.filter_url:
            logger.info("Only harvesting URLs under %s", options.filter_url)

        result = self.deps.fetcher.get(url, ctx=ctx)
        entries = parse_link_list(result.text, result.effective_url)
        logger.info("Found %d links in %s", len(entries), url)

        titles = {entry.url: entry.title for entry in entries}
        urls = filter_urls((entry.url for entry in entries), options.filter_url, options.exclude_patterns)
        if options.limit:
            urls = urls[: options.limit]

        produced = self.process_urls(ctx, urls, options, desc="llms.txt", titles=titles)
        logger.info("llms.txt extraction of %s completed: %d documents", url, produced)


__all__ = [
    "LinkEntry",
    "LinkListStrategy",
    "is_link_list_url",
    "parse_link_list",
]
