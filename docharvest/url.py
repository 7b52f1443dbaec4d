"""URL normalization, scope checks, cache keys, and output-path helpers."""

from __future__ import annotations

import hashlib
import posixpath
import re
from typing import Sequence
from urllib.parse import (
    parse_qsl,
    quote,
    unquote,
    urlencode,
    urljoin,
    urlsplit,
    urlunsplit,
)

from .constants import CACHE_PREFIX_PAGE


DEFAULT_ALLOWED_SCHEMES = ("http", "https")
SKIP_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")
TRACKING_QUERY_PARAM_PREFIXES = ("utm_",)
TRACKING_QUERY_PARAMS = {
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
    "igshid",
    "ref_src",
}
STRIPPED_PAGE_EXTENSIONS = (".html", ".htm", ".php", ".asp", ".aspx", ".mdx")
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"\\|?*\x00-\x1f]+')
_REPEATED_DASHES = re.compile(r"-{2,}")
MAX_FILENAME_LENGTH = 200


def host_from_url(url: str) -> str:
    """Extract normalized host from URL (lowercased, without ``www.``)."""

    parsed = urlsplit(url)
    host = (parsed.hostname or "").strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host.strip(".")


def is_http_url(url: str, allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES) -> bool:
    """Return True if URL is absolute and has an allowed HTTP-like scheme."""

    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.netloc:
        return False
    return parsed.scheme.lower() in {scheme.lower() for scheme in allowed_schemes}


def _has_default_port(scheme: str, port: int | None) -> bool:
    if port is None:
        return False
    return (scheme == "http" and port == 80) or (scheme == "https" and port == 443)


def _normalize_netloc(parsed_url, *, strip_default_port: bool) -> str:
    host = (parsed_url.hostname or "").lower()
    if not host:
        return parsed_url.netloc.lower()

    userinfo = ""
    if parsed_url.username:
        userinfo = quote(parsed_url.username, safe="")
        if parsed_url.password:
            userinfo += ":" + quote(parsed_url.password, safe="")
        userinfo += "@"

    try:
        port = parsed_url.port
    except ValueError:
        port = None

    include_port = port is not None and (
        not strip_default_port or not _has_default_port(parsed_url.scheme.lower(), port)
    )
    if include_port:
        return f"{userinfo}{host}:{port}"
    return f"{userinfo}{host}"


def _normalize_path(path: str, *, remove_trailing_slash: bool) -> str:
    if not path:
        return "/"

    collapsed = re.sub(r"/{2,}", "/", path)
    normalized = posixpath.normpath(collapsed)

    if collapsed.startswith("/") and not normalized.startswith("/"):
        normalized = "/" + normalized
    if normalized in {"", "."}:
        normalized = "/"
    if remove_trailing_slash and normalized != "/":
        normalized = normalized.rstrip("/")

    return normalized or "/"


def _is_tracking_query_key(key: str) -> bool:
    normalized = key.strip().lower()
    if not normalized:
        return False
    if normalized in TRACKING_QUERY_PARAMS:
        return True
    return any(normalized.startswith(prefix) for prefix in TRACKING_QUERY_PARAM_PREFIXES)


def _normalize_query(query: str, *, strip_tracking_params: bool, sort_query_params: bool) -> str:
    if not query:
        return ""

    pairs = parse_qsl(query, keep_blank_values=True)
    if strip_tracking_params:
        pairs = [(key, value) for key, value in pairs if not _is_tracking_query_key(key)]
    if sort_query_params:
        pairs = sorted(pairs, key=lambda item: (item[0], item[1]))
    if not pairs:
        return ""

    return urlencode(pairs, doseq=True)


def normalize_url(
    url: str,
    *,
    strip_fragment: bool = True,
    strip_default_port: bool = True,
    strip_tracking_params: bool = True,
    sort_query_params: bool = True,
    remove_trailing_slash: bool = True,
    allowed_schemes: Sequence[str] = DEFAULT_ALLOWED_SCHEMES,
) -> str | None:
    """Canonicalize an absolute URL for deduplication and cache keys.

    Returns `None` for URLs that are invalid or outside allowed schemes.
    """

    if not url:
        return None

    raw = url.strip()
    if not raw:
        return None

    parsed = urlsplit(raw)
    if not parsed.scheme or not parsed.netloc:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in {item.lower() for item in allowed_schemes}:
        return None

    netloc = _normalize_netloc(parsed, strip_default_port=strip_default_port)
    if not netloc:
        return None

    path = _normalize_path(parsed.path, remove_trailing_slash=remove_trailing_slash)
    query = _normalize_query(
        parsed.query,
        strip_tracking_params=strip_tracking_params,
        sort_query_params=sort_query_params,
    )
    fragment = "" if strip_fragment else parsed.fragment

    return urlunsplit((scheme, netloc, path, query, fragment))


def should_skip_href(href: str | None) -> bool:
    """True for empty, fragment-only, and non-navigational hrefs."""

    if href is None:
        return True
    candidate = href.strip()
    if not candidate:
        return True
    lowered = candidate.lower()
    return any(lowered.startswith(prefix) for prefix in SKIP_HREF_PREFIXES)


def resolve_url(base_url: str, href: str | None) -> str | None:
    """Resolve a possibly relative reference against ``base_url``.

    Skipped references (see ``should_skip_href``) resolve to `None`. The
    result is absolute but otherwise left as written.
    """

    if href is None or should_skip_href(href):
        return None
    candidate = href.strip()
    if not base_url:
        return candidate
    try:
        return urljoin(base_url, candidate)
    except ValueError:
        return None


def url_path_lower(url: str) -> str:
    """Lowercased path component, ignoring query and fragment."""

    return urlsplit(url.strip()).path.lower()


def is_same_domain(url: str, other: str) -> bool:
    """Host equality, ignoring case and a leading ``www.``."""

    host = host_from_url(url)
    return bool(host) and host == host_from_url(other)


def has_url_prefix(url: str, prefix: str) -> bool:
    """Plain string prefix match after trimming a trailing slash from ``prefix``.

    Deliberately permissive: ``https://example.com/docs-old`` matches the
    prefix ``https://example.com/docs``.
    """

    if not prefix:
        return True
    return url.startswith(prefix.rstrip("/"))


def cache_key(url: str, prefix: str = CACHE_PREFIX_PAGE) -> str:
    """Deterministic, fixed-width cache key for a URL."""

    normalized = normalize_url(url) or url.strip()
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


def sanitize_filename(name: str) -> str:
    """Make one path segment safe for any common filesystem."""

    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", unquote(name)).strip()
    cleaned = cleaned.replace(" ", "-")
    cleaned = _REPEATED_DASHES.sub("-", cleaned).strip("-.")
    if len(cleaned) > MAX_FILENAME_LENGTH:
        cleaned = cleaned[:MAX_FILENAME_LENGTH].rstrip("-.")
    return cleaned


def url_to_path(url: str, *, flat: bool = False) -> str:
    """Relative Markdown path derived from a URL path.

    ``https://x.com/docs/intro.html`` -> ``docs/intro.md`` (nested) or
    ``docs-intro.md`` (flat). Query strings and fragments are ignored.
    """

    path = urlsplit(url.strip()).path
    segments = [segment for segment in path.split("/") if segment and segment not in {".", ".."}]

    if segments:
        last = segments[-1]
        lowered = last.lower()
        for ext in STRIPPED_PAGE_EXTENSIONS + (".md", ".markdown"):
            if lowered.endswith(ext):
                last = last[: -len(ext)]
                break
        segments[-1] = last

    segments = [sanitize_filename(segment) for segment in segments]
    segments = [segment for segment in segments if segment]
    if not segments:
        segments = ["index"]

    if flat:
        return "-".join(segments) + ".md"
    return posixpath.join(*segments) + ".md"


__all__ = [
    "DEFAULT_ALLOWED_SCHEMES",
    "SKIP_HREF_PREFIXES",
    "cache_key",
    "has_url_prefix",
    "host_from_url",
    "is_http_url",
    "is_same_domain",
    "normalize_url",
    "resolve_url",
    "sanitize_filename",
    "should_skip_href",
    "url_path_lower",
    "url_to_path",
]
