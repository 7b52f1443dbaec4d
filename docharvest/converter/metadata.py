"""Counts and digests derived from final Markdown content."""

from __future__ import annotations

from hashlib import sha256


def content_hash(markdown: str) -> str:
    return sha256(markdown.encode("utf-8")).hexdigest()


def count_words(markdown: str) -> int:
    return len(markdown.split())


def count_bytes(markdown: str) -> int:
    return len(markdown.encode("utf-8"))


__all__ = [
    "content_hash",
    "count_bytes",
    "count_words",
]
