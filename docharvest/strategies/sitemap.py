"""Harvest every page listed in an XML sitemap (plain, gzipped, or an index)."""

from __future__ import annotations

import gzip
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from ..context import Context
from ..errors import Cancelled, ConversionError, find_error
from ..fetcher import Fetcher
from ..url import resolve_url, url_path_lower
from .base import Options, Strategy, filter_urls


logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
MAX_INDEX_DEPTH = 5
SITEMAP_CANDIDATE_PATHS = (
    "/sitemap.xml",
    "/sitemap-0.xml",
    "/sitemap_index.xml",
    "/sitemap/sitemap-index.xml",
    "/server-sitemap.xml",
)
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class SitemapURL:
    loc: str
    lastmod: datetime | None = None
    changefreq: str = ""


@dataclass(frozen=True, slots=True)
class Sitemap:
    """Parsed sitemap: either a URL set or an index of child sitemaps."""

    source_url: str
    urls: tuple[SitemapURL, ...] = ()
    sitemaps: tuple[str, ...] = ()

    @property
    def is_index(self) -> bool:
        return bool(self.sitemaps)


def is_sitemap_url(url: str) -> bool:
    path = url_path_lower(url)
    return "sitemap" in path and path.endswith((".xml", ".xml.gz"))


def parse_lastmod(value: str) -> datetime | None:
    """Parse W3C datetime values; unparseable input yields `None`."""

    raw = (value or "").strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def maybe_decompress(content: bytes, url: str) -> bytes:
    if url_path_lower(url).endswith(".gz") or content.startswith(GZIP_MAGIC):
        try:
            return gzip.decompress(content)
        except (OSError, EOFError) as exc:
            if content.startswith(GZIP_MAGIC):
                raise ConversionError(f"corrupt gzip sitemap {url}: {exc}") from exc
    return content


def is_sitemap_content(content: bytes) -> bool:
    head = content[:1024].lstrip(b"\xef\xbb\xbf").lstrip().lower()
    return b"<urlset" in head or b"<sitemapindex" in head


def _loc_text(node, source_url: str) -> str:
    loc = node.find("loc")
    if loc is None:
        return ""
    text = loc.get_text(strip=True)
    return resolve_url(source_url, text) or ""


def parse_sitemap(content: bytes, source_url: str) -> Sitemap:
    """Parse sitemap XML; raises `ConversionError` when it is neither form."""

    soup = BeautifulSoup(content, "xml")

    index = soup.find("sitemapindex")
    if index is not None:
        children = [_loc_text(node, source_url) for node in index.find_all("sitemap")]
        return Sitemap(source_url=source_url, sitemaps=tuple(child for child in children if child))

    urlset = soup.find("urlset")
    if urlset is None:
        raise ConversionError(f"{source_url} is not a sitemap")

    urls: list[SitemapURL] = []
    for node in urlset.find_all("url"):
        loc = _loc_text(node, source_url)
        if not loc:
            continue
        lastmod = node.find("lastmod")
        changefreq = node.find("changefreq")
        urls.append(
            SitemapURL(
                loc=loc,
                lastmod=parse_lastmod(lastmod.get_text(strip=True)) if lastmod else None,
                changefreq=changefreq.get_text(strip=True) if changefreq else "",
            )
        )
    return Sitemap(source_url=source_url, urls=tuple(urls))


def sort_by_lastmod(urls: list[SitemapURL]) -> list[SitemapURL]:
    """Newest first; entries without ``lastmod`` go last in document order."""

    return sorted(urls, key=lambda item: item.lastmod or _EPOCH, reverse=True)


def parse_robots_sitemaps(content: str, base_url: str) -> list[str]:
    """Collect ``Sitemap:`` directives from a robots.txt body."""

    found: list[str] = []
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        if line[:8].lower() != "sitemap:":
            continue
        raw = line[8:].strip()
        if not raw:
            continue
        resolved = resolve_url(base_url, raw)
        if resolved:
            found.append(resolved)
    return found


def discover_sitemap(fetcher: Fetcher, url: str, *, ctx: Context) -> str | None:
    """Find a sitemap for the site of ``url`` via robots.txt or well-known paths."""

    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    origin = f"{parsed.scheme}://{parsed.netloc}"

    candidates: list[str] = []
    try:
        robots = fetcher.get(origin + "/robots.txt", ctx=ctx)
        candidates.extend(parse_robots_sitemaps(robots.text, origin))
    except Exception as exc:
        cancelled = find_error(exc, Cancelled)
        if cancelled is not None:
            raise cancelled
        logger.debug("No robots.txt at %s: %s", origin, exc)

    candidates.extend(origin + path for path in SITEMAP_CANDIDATE_PATHS)

    for candidate in dict.fromkeys(candidates):
        ctx.raise_if_done()
        try:
            result = fetcher.get(candidate, ctx=ctx)
            body = maybe_decompress(result.body, candidate)
        except Exception as exc:
            cancelled = find_error(exc, Cancelled)
            if cancelled is not None:
                raise cancelled
            logger.debug("Sitemap candidate %s failed: %s", candidate, exc)
            continue
        if is_sitemap_content(body):
            logger.info("Discovered sitemap %s", candidate)
            return candidate
    return None


class SitemapStrategy(Strategy):
    """Harvest the pages a sitemap lists, newest ``lastmod`` first."""

    name = "sitemap"

    def can_handle(self, url: str) -> bool:
        return is_sitemap_url(url)

    def execute(self, ctx: Context, url: str, options: Options) -> None:
        ctx.raise_if_done()
        logger.info("Fetching sitemap %s", url)

        entries = self.collect(ctx, url)
        ordered = [entry.loc for entry in sort_by_lastmod(entries)]
        urls = filter_urls(ordered, options.filter_url, options.exclude_patterns)
        if options.limit:
            urls = urls[: options.limit]

        logger.info("Processing %d of %d URLs from %s", len(urls), len(entries), url)
        produced = self.process_urls(ctx, urls, options, desc="sitemap")
        logger.info("Sitemap extraction of %s completed: %d documents", url, produced)

    def collect(self, ctx: Context, url: str, *, depth: int = 0) -> list[SitemapURL]:
        """All URL entries of ``url``, following nested indexes.

        Failures below the top-level sitemap are logged and skipped.
        """

        result = self.deps.fetcher.get(url, ctx=ctx)
        sitemap = parse_sitemap(maybe_decompress(result.body, url), url)
        if not sitemap.is_index:
            return list(sitemap.urls)

        if depth >= MAX_INDEX_DEPTH:
            logger.warning("Sitemap index %s nested too deeply, ignoring children", url)
            return []

        logger.info("Sitemap index %s lists %d sitemaps", url, len(sitemap.sitemaps))
        entries: list[SitemapURL] = []
        for child in sitemap.sitemaps:
            ctx.raise_if_done()
            try:
                entries.extend(self.collect(ctx, child, depth=depth + 1))
            except Exception as exc:
                cancelled = find_error(exc, Cancelled)
                if cancelled is not None:
                    raise cancelled
                logger.warning("Failed to process nested sitemap %s: %s", child, exc)
        return entries


__all__ = [
    "Sitemap",
    "SitemapStrategy",
    "SitemapURL",
    "discover_sitemap",
    "is_sitemap_content",
    "is_sitemap_url",
    "parse_lastmod",
    "parse_robots_sitemaps",
    "parse_sitemap",
    "sort_by_lastmod",
]
