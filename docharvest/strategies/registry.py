"""Harvest Go package documentation from pkg.go.dev."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from ..constants import PACKAGE_REGISTRY_DOMAIN
from ..context import Context
from ..converter import ConversionPipeline
from ..errors import Cancelled, HarvestError, find_error
from ..types import Document, FetchResult, utc_now
from ..url import host_from_url, url_to_path
from .base import Options, Strategy


logger = logging.getLogger(__name__)

REGISTRY_HOST = PACKAGE_REGISTRY_DOMAIN
TITLE_SELECTOR = "h1.UnitHeader-title"
CONTENT_SELECTORS = ("div.Documentation-content", "main")
# Regions are cut out of the page before conversion and converted whole.
FRAGMENT_SELECTOR = "body"
SECTIONS = (
    ("#pkg-overview", "Overview"),
    ("#pkg-index", "Index"),
    ("#pkg-constants", "Constants"),
    ("#pkg-variables", "Variables"),
    ("#pkg-functions", "Functions"),
    ("#pkg-types", "Types"),
)


def is_registry_url(url: str) -> bool:
    host = host_from_url(url) if "://" in url else ""
    return host == REGISTRY_HOST or REGISTRY_HOST in host


def section_path(base_url: str, section: str) -> str:
    stem = url_to_path(base_url)[: -len(".md")]
    return f"{stem}/{section.lower()}.md"


class PackageRegistryStrategy(Strategy):
    """One document per package page, or one per API section with ``split``."""

    name = "pkggo"

    def can_handle(self, url: str) -> bool:
        return is_registry_url(url)

    def execute(self, ctx: Context, url: str, options: Options) -> None:
        ctx.raise_if_done()
        logger.info("Fetching pkg.go.dev documentation %s", url)

        result = self.deps.fetcher.get(url, ctx=ctx)
        self.deps.stats.record_fetch(result, "html")
        soup = BeautifulSoup(result.text, "lxml")
        header = soup.select_one(TITLE_SELECTOR)
        package_name = header.get_text(" ", strip=True) if header is not None else ""
        converter = ConversionPipeline(
            content_selector=FRAGMENT_SELECTOR,
            exclude_selector=options.exclude_selector or None,
        )

        if options.split:
            written = self.extract_sections(ctx, soup, result, package_name, converter, options)
            logger.info("pkg.go.dev extraction of %s completed: %d sections", url, written)
            return

        content = None
        for selector in CONTENT_SELECTORS:
            content = soup.select_one(selector)
            if content is not None:
                break
        html = content.decode_contents() if content is not None else result.text

        document = converter.convert(html, result.effective_url, ctx=ctx)
        document = self._finish(document, result, package_name or document.title)
        self.deps.write_document(document, options)

    def extract_sections(
        self,
        ctx: Context,
        soup: BeautifulSoup,
        result: FetchResult,
        package_name: str,
        converter: ConversionPipeline,
        options: Options,
    ) -> int:
        """Convert each API section on its own; a failing section is skipped."""

        base_url = result.effective_url.split("#", 1)[0]
        written = 0
        for selector, section in SECTIONS:
            ctx.raise_if_done()
            node = soup.select_one(selector)
            if node is None:
                continue
            html = node.decode_contents()
            if not html.strip():
                continue

            try:
                document = converter.convert(html, base_url + selector, ctx=ctx)
                title = f"{package_name} - {section}" if package_name else section
                document = self._finish(document, result, title).with_updates(
                    relative_path=section_path(base_url, section)
                )
                if self.deps.write_document(document, options):
                    written += 1
            except HarvestError as exc:
                cancelled = find_error(exc, Cancelled)
                if cancelled is not None:
                    raise cancelled
                logger.warning("Failed to convert section %s of %s: %s", section, base_url, exc)
        return written

    def _finish(self, document: Document, result: FetchResult, title: str) -> Document:
        document = document.with_updates(
            title=title,
            source_strategy=self.name,
            cache_hit=result.from_cache,
            fetched_at=utc_now(),
        )
        self.deps.stats.record_converted(document)
        return document


__all__ = [
    "PackageRegistryStrategy",
    "is_registry_url",
    "section_path",
]
