"""Build Documents from content that is already Markdown."""

from __future__ import annotations

import logging
import re
from typing import Any

import yaml

from ..types import Document, utc_now
from ..url import resolve_url, should_skip_href
from .metadata import content_hash, count_bytes, count_words


logger = logging.getLogger(__name__)

MAX_DESCRIPTION_CHARS = 300
_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_LINK = re.compile(r"(?<!!)\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+[\"'][^\"']*[\"'])?\s*\)")
_FENCE = re.compile(r"^\s*(```|~~~)")


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Separate a leading YAML ``---`` block from the Markdown body."""

    if not text.startswith("---"):
        return {}, text

    lines = text.split("\n")
    if lines[0].strip() != "---":
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].strip() in {"---", "..."}:
            raw = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1:])
            try:
                data = yaml.safe_load(raw) or {}
            except yaml.YAMLError as exc:
                logger.debug("Ignoring malformed frontmatter: %s", exc)
                return {}, text
            if not isinstance(data, dict):
                return {}, text
            return data, body
    return {}, text


def _lines_outside_code(text: str) -> list[str]:
    lines: list[str] = []
    in_fence = False
    for line in text.split("\n"):
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if not in_fence:
            lines.append(line)
    return lines


def _truncate(text: str, limit: int = MAX_DESCRIPTION_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


class MarkdownReader:
    """Parse raw Markdown (optionally with YAML frontmatter) into a Document."""

    def read(self, content: str | bytes, source_url: str) -> Document:
        if isinstance(content, bytes):
            text = content.decode("utf-8-sig", errors="replace")
        else:
            text = content
        text = text.replace("\r\n", "\n").replace("\r", "\n")

        frontmatter, body = split_frontmatter(text)
        body = body.strip()
        plain_lines = _lines_outside_code(body)

        title = str(frontmatter.get("title") or "").strip() or self._first_h1(plain_lines)
        description = (
            str(frontmatter.get("description") or frontmatter.get("summary") or "").strip()
            or self._first_paragraph(plain_lines)
        )

        return Document(
            url=source_url,
            title=title,
            description=description,
            content=body,
            content_hash=content_hash(body),
            word_count=count_words(body),
            char_count=count_bytes(body),
            links=self._links(plain_lines, source_url),
            headings=self._headings(plain_lines),
            fetched_at=utc_now(),
        )

    @staticmethod
    def _first_h1(lines: list[str]) -> str:
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("# "):
                return stripped[2:].strip().rstrip("#").strip()
        return ""

    @staticmethod
    def _first_paragraph(lines: list[str]) -> str:
        paragraph: list[str] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                if paragraph:
                    break
                continue
            if stripped.startswith(("#", ">", "|", "-", "*", "<", "![")) or re.match(r"^\d+\.\s", stripped):
                if paragraph:
                    break
                continue
            paragraph.append(stripped)
        return _truncate(" ".join(paragraph))

    @staticmethod
    def _headings(lines: list[str]) -> dict[str, tuple[str, ...]]:
        collected: dict[str, list[str]] = {}
        for line in lines:
            match = _HEADING.match(line.strip())
            if match is None:
                continue
            level = f"h{len(match.group(1))}"
            collected.setdefault(level, []).append(match.group(2).strip())
        return {level: tuple(texts) for level, texts in collected.items()}

    @staticmethod
    def _links(lines: list[str], source_url: str) -> tuple[str, ...]:
        links: list[str] = []
        seen: set[str] = set()
        for line in lines:
            for match in _LINK.finditer(line):
                href = match.group(2)
                if should_skip_href(href):
                    continue
                resolved = resolve_url(source_url, href)
                if resolved is None or resolved in seen:
                    continue
                seen.add(resolved)
                links.append(resolved)
        return tuple(links)


__all__ = [
    "MarkdownReader",
    "split_frontmatter",
]
