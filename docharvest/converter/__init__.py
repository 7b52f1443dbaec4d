"""Conversion of fetched pages into Markdown documents."""

from .content_type import classify_content, is_html_content, is_markdown_content
from .encoding import declared_charset, detect_encoding, to_unicode
from .extractor import (
    ContentExtractor,
    Extraction,
    extract_description,
    extract_headings,
    extract_links,
    extract_title,
)
from .markdown import MarkdownConverter, clean_markdown
from .markdown_reader import MarkdownReader, split_frontmatter
from .metadata import content_hash, count_bytes, count_words
from .pipeline import ConversionPipeline
from .sanitizer import Sanitizer

__all__ = [
    "ContentExtractor",
    "ConversionPipeline",
    "Extraction",
    "MarkdownConverter",
    "MarkdownReader",
    "Sanitizer",
    "classify_content",
    "clean_markdown",
    "content_hash",
    "count_bytes",
    "count_words",
    "declared_charset",
    "detect_encoding",
    "extract_description",
    "extract_headings",
    "extract_links",
    "extract_title",
    "is_html_content",
    "is_markdown_content",
    "split_frontmatter",
    "to_unicode",
]
