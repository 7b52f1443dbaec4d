"""Main-content extraction and page metadata (title, description, headings, links)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag
from readability import Document as ReadabilityDocument
from soupsieve import SelectorSyntaxError

from ..types import HEADING_LEVELS
from ..url import resolve_url, should_skip_href


logger = logging.getLogger(__name__)

MIN_USABLE_TEXT_CHARS = 60


@dataclass(frozen=True, slots=True)
class Extraction:
    """HTML of the chosen content region and how it was chosen."""

    html: str
    method: str


def _meta_content(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str:
    attrs = {"name": name} if name else {"property": prop}
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    content = tag.get("content")
    return content.strip() if isinstance(content, str) else ""


def extract_title(soup: BeautifulSoup) -> str:
    """``<title>``, then ``og:title``, then the first ``<h1>``."""

    if soup.title is not None:
        title = soup.title.get_text(" ", strip=True)
        if title:
            return title

    og_title = _meta_content(soup, prop="og:title")
    if og_title:
        return og_title

    heading = soup.find("h1")
    if heading is not None:
        return heading.get_text(" ", strip=True)
    return ""


def extract_description(soup: BeautifulSoup) -> str:
    return _meta_content(soup, name="description") or _meta_content(soup, prop="og:description")


def extract_headings(soup: BeautifulSoup | Tag) -> dict[str, tuple[str, ...]]:
    headings: dict[str, tuple[str, ...]] = {}
    for level in HEADING_LEVELS:
        texts = tuple(
            text
            for text in (node.get_text(" ", strip=True) for node in soup.find_all(level))
            if text
        )
        if texts:
            headings[level] = texts
    return headings


def extract_links(soup: BeautifulSoup | Tag, base_url: str) -> tuple[str, ...]:
    """Resolved anchor targets in document order, duplicates removed."""

    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        if should_skip_href(href):
            continue
        resolved = resolve_url(base_url, href)
        if resolved is None or resolved in seen:
            continue
        seen.add(resolved)
        links.append(resolved)
    return tuple(links)


def _text_length(html: str) -> int:
    return len(BeautifulSoup(html, "lxml").get_text(" ", strip=True))


class ContentExtractor:
    """Pick the primary content region of a sanitized document.

    Order: explicit CSS selector, readability scoring, then the whole body.
    """

    def __init__(self, *, selector: str | None = None, min_text_chars: int = MIN_USABLE_TEXT_CHARS) -> None:
        self.selector = selector or None
        self.min_text_chars = min_text_chars

    def extract(self, soup: BeautifulSoup) -> Extraction:
        if self.selector:
            selected = self._select(soup)
            if selected is not None:
                return Extraction(html=selected, method="selector")

        body_html = self._body_html(soup)
        body_chars = _text_length(body_html)

        summary = self._readability_summary(str(soup))
        if summary:
            summary_chars = _text_length(summary)
            if summary_chars > 0 and summary_chars >= min(self.min_text_chars, body_chars):
                return Extraction(html=summary, method="readability")

        return Extraction(html=body_html, method="body")

    def _select(self, soup: BeautifulSoup) -> str | None:
        try:
            nodes = soup.select(self.selector)
        except SelectorSyntaxError as exc:
            logger.warning("Invalid content selector %r: %s", self.selector, exc)
            return None
        if not nodes:
            logger.debug("Content selector %r matched nothing", self.selector)
            return None
        return "\n".join(str(node) for node in nodes)

    @staticmethod
    def _readability_summary(html: str) -> str:
        try:
            summary = ReadabilityDocument(html).summary(html_partial=True)
        except Exception as exc:
            logger.debug("Readability extraction failed: %s: %s", exc.__class__.__name__, exc)
            return ""
        if isinstance(summary, bytes):
            summary = summary.decode("utf-8", errors="replace")
        return summary or ""

    @staticmethod
    def _body_html(soup: BeautifulSoup) -> str:
        body = soup.body
        if body is not None:
            return body.decode_contents()
        return str(soup)


__all__ = [
    "ContentExtractor",
    "Extraction",
    "extract_description",
    "extract_headings",
    "extract_links",
    "extract_title",
]
