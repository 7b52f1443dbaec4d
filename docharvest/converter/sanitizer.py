"""Boilerplate removal and URL resolution over a parsed HTML tree."""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Comment, Tag
from soupsieve import SelectorSyntaxError

from ..url import resolve_url


logger = logging.getLogger(__name__)

TAGS_TO_REMOVE = frozenset(
    {
        "script",
        "style",
        "noscript",
        "iframe",
        "object",
        "embed",
        "applet",
        "form",
        "input",
        "button",
        "select",
        "option",
        "textarea",
        "nav",
        "footer",
        "header",
        "aside",
    }
)

CLASSES_TO_REMOVE = frozenset(
    {
        "sidebar",
        "navigation",
        "nav",
        "navbar",
        "menu",
        "footer",
        "header",
        "banner",
        "advertisement",
        "ad",
        "ads",
        "social",
        "share",
        "sharing",
        "comment",
        "comments",
        "related",
        "recommended",
        "breadcrumb",
        "breadcrumbs",
        "cookie",
    }
)

IDS_TO_REMOVE = frozenset(
    {
        "sidebar",
        "navigation",
        "nav",
        "menu",
        "footer",
        "header",
        "banner",
        "advertisement",
        "comments",
    }
)

# Elements that can become empty shells once boilerplate is gone.
EMPTY_CANDIDATE_TAGS = (
    "p",
    "div",
    "span",
    "section",
    "article",
    "main",
    "ul",
    "ol",
    "li",
    "dl",
    "blockquote",
    "figure",
    "strong",
    "em",
    "b",
    "i",
)

PROTECTED_TAGS = frozenset({"html", "head", "body"})
CODE_TAGS = ("pre", "code")
URL_ATTRIBUTES = ("href", "src")
_TOKEN_SPLIT = re.compile(r"[-_]+")
_HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)


def _matches_denylist(value: str, denylist: frozenset[str]) -> bool:
    """Match a class/id token whole or by one of its ``-``/``_`` separated parts."""

    token = value.strip().lower()
    if not token:
        return False
    if token in denylist:
        return True
    return any(part in denylist for part in _TOKEN_SPLIT.split(token) if part)


def _decompose(tag: Tag) -> None:
    if not tag.decomposed:
        tag.decompose()


def _class_tokens(tag: Tag) -> list[str]:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return [str(item) for item in classes]


class Sanitizer:
    """Strip non-content markup from a parsed document, in place."""

    def __init__(
        self,
        *,
        base_url: str = "",
        remove_navigation: bool = True,
        exclude_selector: str | None = None,
    ) -> None:
        self.base_url = base_url
        self.remove_navigation = remove_navigation
        self.exclude_selector = exclude_selector

    def sanitize(self, soup: BeautifulSoup | Tag) -> BeautifulSoup | Tag:
        self._remove_comments(soup)
        self._remove_tags(soup)
        if self.remove_navigation:
            self._remove_boilerplate(soup)
        self._remove_hidden(soup)
        self._remove_excluded(soup)
        self._resolve_urls(soup)
        self._remove_empty(soup)
        return soup

    def sanitize_html(self, html: str) -> str:
        soup = BeautifulSoup(html, "lxml")
        return str(self.sanitize(soup))

    @staticmethod
    def _remove_comments(root: Tag) -> None:
        for comment in root.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

    def _remove_tags(self, root: Tag) -> None:
        tags = TAGS_TO_REMOVE
        if not self.remove_navigation:
            tags = tags - {"nav", "footer", "header", "aside"}
        for tag in root.find_all(list(tags)):
            _decompose(tag)

    @staticmethod
    def _is_boilerplate(tag: Tag) -> bool:
        if tag.name in PROTECTED_TAGS or tag.name in CODE_TAGS:
            return False
        # Syntax highlighters use classes such as "token comment".
        if tag.find_parent(list(CODE_TAGS)) is not None:
            return False
        if any(_matches_denylist(token, CLASSES_TO_REMOVE) for token in _class_tokens(tag)):
            return True
        element_id = tag.get("id")
        return isinstance(element_id, str) and _matches_denylist(element_id, IDS_TO_REMOVE)

    def _remove_boilerplate(self, root: Tag) -> None:
        for tag in root.find_all(True):
            if tag.decomposed:
                continue
            if self._is_boilerplate(tag):
                tag.decompose()

    @staticmethod
    def _remove_hidden(root: Tag) -> None:
        for tag in root.find_all(True):
            if tag.decomposed or tag.name in PROTECTED_TAGS:
                continue
            style = tag.get("style")
            if tag.has_attr("hidden") or tag.get("aria-hidden") == "true":
                tag.decompose()
            elif isinstance(style, str) and _HIDDEN_STYLE.search(style):
                tag.decompose()

    def _remove_excluded(self, root: Tag) -> None:
        if not self.exclude_selector:
            return
        try:
            matches = root.select(self.exclude_selector)
        except SelectorSyntaxError as exc:
            logger.debug("Ignoring invalid exclude selector %r: %s", self.exclude_selector, exc)
            return
        for tag in matches:
            if not tag.decomposed and tag.name not in PROTECTED_TAGS:
                tag.decompose()

    def _resolve_urls(self, root: Tag) -> None:
        if not self.base_url:
            return

        for attribute in URL_ATTRIBUTES:
            for tag in root.find_all(attrs={attribute: True}):
                resolved = resolve_url(self.base_url, tag.get(attribute))
                if resolved is not None:
                    tag[attribute] = resolved

        for tag in root.find_all(attrs={"srcset": True}):
            tag["srcset"] = self._resolve_srcset(tag.get("srcset") or "")

    def _resolve_srcset(self, srcset: str) -> str:
        entries: list[str] = []
        for candidate in srcset.split(","):
            parts = candidate.strip().split()
            if not parts:
                continue
            resolved = resolve_url(self.base_url, parts[0])
            if resolved is not None:
                parts[0] = resolved
            entries.append(" ".join(parts))
        return ", ".join(entries)

    @staticmethod
    def _remove_empty(root: Tag) -> None:
        # Reverse document order visits children before their parents, so a
        # parent emptied by this pass is itself removed later in the same pass.
        for tag in reversed(root.find_all(list(EMPTY_CANDIDATE_TAGS))):
            if tag.decomposed or tag is root:
                continue
            if tag.find(True) is not None:
                continue
            if tag.get_text(strip=True):
                continue
            if tag.find_parent(list(CODE_TAGS)) is not None:
                continue
            tag.decompose()


__all__ = [
    "CLASSES_TO_REMOVE",
    "IDS_TO_REMOVE",
    "Sanitizer",
    "TAGS_TO_REMOVE",
]
