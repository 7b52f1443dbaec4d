"""Routing of fetched responses by Content-Type and URL suffix."""

from __future__ import annotations

from ..types import ContentKind
from ..url import url_path_lower


MARKDOWN_CONTENT_TYPES = ("text/markdown", "text/x-markdown", "application/markdown")
MARKDOWN_EXTENSIONS = (".md", ".markdown", ".mdown")
HTML_CONTENT_TYPES = ("text/html", "application/xhtml")


def is_markdown_content(content_type: str | None, url: str) -> bool:
    lowered = (content_type or "").lower()
    if any(kind in lowered for kind in MARKDOWN_CONTENT_TYPES):
        return True
    return url_path_lower(url).endswith(MARKDOWN_EXTENSIONS)


def is_html_content(content_type: str | None) -> bool:
    lowered = (content_type or "").strip().lower()
    if not lowered:
        return True
    return any(kind in lowered for kind in HTML_CONTENT_TYPES)


def classify_content(content_type: str | None, url: str) -> ContentKind:
    """Markdown wins over HTML so raw ``.md`` files served as text/html stay Markdown."""

    if is_markdown_content(content_type, url):
        return ContentKind.MARKDOWN
    if is_html_content(content_type):
        return ContentKind.HTML
    return ContentKind.OTHER


__all__ = [
    "classify_content",
    "is_html_content",
    "is_markdown_content",
]
