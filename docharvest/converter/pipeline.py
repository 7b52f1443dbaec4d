"""HTML -> Document conversion: encoding, sanitation, extraction, Markdown, metadata."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from ..context import Context
from ..types import Document, utc_now
from .encoding import to_unicode
from .extractor import (
    ContentExtractor,
    extract_description,
    extract_headings,
    extract_links,
    extract_title,
)
from .markdown import MarkdownConverter
from .metadata import content_hash, count_bytes, count_words
from .sanitizer import Sanitizer


logger = logging.getLogger(__name__)


class ConversionPipeline:
    """Turn raw HTML into a normalized `Document`.

    Each stage only depends on the previous one's output, so converting the
    same input for the same URL always yields the same content hash. Malformed
    markup never raises; only an unknown declared charset does
    (`UnsupportedCharsetError`).
    """

    def __init__(
        self,
        *,
        content_selector: str | None = None,
        exclude_selector: str | None = None,
        remove_navigation: bool = True,
        markdown: MarkdownConverter | None = None,
    ) -> None:
        self.content_selector = content_selector or None
        self.exclude_selector = exclude_selector or None
        self.remove_navigation = remove_navigation
        self.markdown = markdown or MarkdownConverter()

    def convert(self, html: str | bytes, source_url: str, *, ctx: Context | None = None) -> Document:
        if ctx is not None:
            ctx.raise_if_done()

        text = to_unicode(html)
        soup = BeautifulSoup(text, "lxml")

        # Title and description live in <head> and in <header>, which
        # sanitation removes, so read them first.
        title = extract_title(soup)
        description = extract_description(soup)

        sanitizer = Sanitizer(
            base_url=source_url,
            remove_navigation=self.remove_navigation,
            exclude_selector=self.exclude_selector,
        )
        sanitizer.sanitize(soup)

        headings = extract_headings(soup)
        links = extract_links(soup, source_url)

        extraction = ContentExtractor(selector=self.content_selector).extract(soup)
        logger.debug("Extracted %s via %s", source_url, extraction.method)

        content = self.markdown.convert(extraction.html)

        return Document(
            url=source_url,
            title=title,
            description=description,
            content=content,
            html_content=text,
            content_hash=content_hash(content),
            word_count=count_words(content),
            char_count=count_bytes(content),
            links=links,
            headings=headings,
            fetched_at=utc_now(),
        )


__all__ = ["ConversionPipeline"]
