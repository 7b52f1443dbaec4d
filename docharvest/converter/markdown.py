"""HTML to Markdown conversion built on markdownify."""

from __future__ import annotations

import re

from bs4 import Tag
from markdownify import ATX, markdownify as md


LANGUAGE_CLASS_PREFIXES = ("language-", "lang-", "highlight-source-", "highlight-")
MAX_BLANK_LINES = 2
_FENCE = re.compile(r"^\s*(```|~~~)")


def code_language(pre: Tag) -> str:
    """Language hint of a ``<pre>`` block from its own or its ``<code>``'s classes."""

    candidates = [pre]
    code = pre.find("code")
    if isinstance(code, Tag):
        candidates.append(code)
    if isinstance(pre.parent, Tag):
        candidates.append(pre.parent)

    for node in candidates:
        data_lang = node.get("data-lang") or node.get("data-language")
        if isinstance(data_lang, str) and data_lang.strip():
            return data_lang.strip()
        classes = node.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        for cls in classes:
            for prefix in LANGUAGE_CLASS_PREFIXES:
                if cls.startswith(prefix) and len(cls) > len(prefix):
                    return cls[len(prefix):]
    return ""


def clean_markdown(text: str) -> str:
    """Trim whitespace-only lines and collapse long blank runs outside code fences."""

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    output: list[str] = []
    in_fence = False
    blank_run = 0

    for line in lines:
        if _FENCE.match(line):
            in_fence = not in_fence
            blank_run = 0
            output.append(line.rstrip())
            continue

        if in_fence:
            output.append(line)
            continue

        if not line.strip():
            blank_run += 1
            if blank_run > MAX_BLANK_LINES:
                continue
            output.append("")
            continue

        blank_run = 0
        output.append(line)

    return "\n".join(output).strip()


class MarkdownConverter:
    """Convert an HTML fragment to Markdown with stable, documented styles."""

    def __init__(self, *, heading_style: str = ATX, bullets: str = "-", strip: list[str] | None = None) -> None:
        self.heading_style = heading_style
        self.bullets = bullets
        self.strip = strip

    def convert(self, html: str) -> str:
        if not html or not html.strip():
            return ""

        options = {
            "heading_style": self.heading_style,
            "bullets": self.bullets,
            "code_language_callback": code_language,
        }
        if self.strip:
            options["strip"] = self.strip
        return clean_markdown(md(html, **options))


__all__ = [
    "MarkdownConverter",
    "clean_markdown",
    "code_language",
]
