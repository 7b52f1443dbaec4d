"""Charset detection and transcoding to Unicode text."""

from __future__ import annotations

import codecs
import logging

from bs4.dammit import EncodingDetector, UnicodeDammit

from ..errors import UnsupportedCharsetError


logger = logging.getLogger(__name__)

_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def declared_charset(markup: str | bytes) -> str | None:
    """Charset named by ``<meta charset>`` or an ``http-equiv`` content type."""

    declared = EncodingDetector.find_declared_encoding(markup, is_html=True)
    if not declared:
        return None
    return declared.strip().lower() or None


def _lookup(charset: str) -> str:
    try:
        return codecs.lookup(charset).name
    except LookupError as exc:
        raise UnsupportedCharsetError(charset) from exc


def detect_encoding(content: bytes) -> str:
    """Pick the codec for raw bytes: BOM, then declaration, then statistics."""

    for bom, name in _BOMS:
        if content.startswith(bom):
            return name

    declared = declared_charset(content)
    if declared:
        return _lookup(declared)

    dammit = UnicodeDammit(content, is_html=True)
    return dammit.original_encoding or "utf-8"


def to_unicode(markup: str | bytes) -> str:
    """Return ``markup`` as text, transcoding bytes with the detected codec.

    Text input is already decoded; its declaration is still validated so an
    unknown charset fails the same way for both input types.
    """

    if isinstance(markup, str):
        declared = declared_charset(markup)
        if declared:
            _lookup(declared)
        return markup

    encoding = detect_encoding(markup)
    try:
        return markup.decode(encoding, errors="replace")
    except LookupError as exc:
        raise UnsupportedCharsetError(encoding) from exc


__all__ = [
    "declared_charset",
    "detect_encoding",
    "to_unicode",
]
