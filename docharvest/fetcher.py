"""HTTP fetching with a cache in front and a retry loop around the network."""

from __future__ import annotations

import json
import logging
import threading
from http.cookiejar import Cookie
from typing import Callable, Mapping
from urllib.parse import urlsplit

import requests
from requests.cookies import RequestsCookieJar

from .cache import Cache
from .constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_USER_AGENT,
)
from .context import Context
from .errors import FetchError, FetchTimeoutError, HarvestError, RetryableError, should_retry_status
from .retry import Retrier, parse_retry_after
from .types import FetchResult, RetryPolicy
from .url import cache_key, is_http_url


logger = logging.getLogger(__name__)


def _encode_cached(result: FetchResult) -> bytes:
    header = json.dumps(
        {
            "content_type": result.content_type,
            "final_url": result.final_url,
            "status_code": result.status_code,
        },
        sort_keys=True,
    )
    return header.encode("utf-8") + b"\n" + result.body


def _decode_cached(url: str, payload: bytes) -> FetchResult:
    header, sep, body = payload.partition(b"\n")
    meta: dict = {}
    if sep:
        try:
            meta = json.loads(header.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            meta, body = {}, payload
    else:
        body = payload
    if not isinstance(meta, dict):
        meta, body = {}, payload

    return FetchResult(
        url=url,
        status_code=200,
        body=body,
        content_type=str(meta.get("content_type") or "text/html"),
        final_url=str(meta.get("final_url") or url),
        from_cache=True,
    )


class Fetcher:
    """Fetch URLs through `requests` with caching and retries.

    Concurrency model:
    - One `requests.Session` per worker thread; all sessions share one cookie
      jar so cookies observed by any worker are visible through `get_cookies`.
    - The cache is consulted before the network and populated only after a
      successful response.
    """

    def __init__(
        self,
        *,
        cache: Cache | None = None,
        enable_cache: bool = True,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        default_headers: Mapping[str, str] | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.cache = cache
        self.enable_cache = enable_cache and cache is not None
        self.cache_ttl_seconds = cache_ttl_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.default_headers = dict(DEFAULT_HTTP_HEADERS if default_headers is None else default_headers)

        self._session_factory = session_factory
        self._thread_local = threading.local()
        self._cookies = RequestsCookieJar()

        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._closed = False

    def get(self, url: str, *, ctx: Context | None = None) -> FetchResult:
        """Fetch one URL, consulting the cache first."""

        return self.get_with_headers(url, None, ctx=ctx)

    def get_with_headers(
        self,
        url: str,
        headers: Mapping[str, str] | None,
        *,
        ctx: Context | None = None,
    ) -> FetchResult:
        """Fetch one URL with extra request headers layered over the defaults."""

        ctx = ctx or Context()
        ctx.raise_if_done()
        self._ensure_open()

        if not is_http_url(url):
            raise FetchError(url, 0, "unsupported URL")

        key = cache_key(url)
        if self.enable_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Serving %s from cache", url)
                return _decode_cached(url, cached)

        retrier = Retrier(self.retry_policy, context=ctx)
        result = retrier.run(lambda: self._do_request(url, headers), description=f"GET {url}")

        if self.enable_cache:
            try:
                self.cache.set(key, _encode_cached(result), self.cache_ttl_seconds)
            except Exception as exc:
                logger.warning("Failed to cache %s: %s", url, exc)

        return result

    def get_bytes(self, url: str, *, headers: Mapping[str, str] | None = None, ctx: Context | None = None) -> bytes:
        """Download a binary payload (with retries, bypassing the cache)."""

        ctx = ctx or Context()
        ctx.raise_if_done()
        self._ensure_open()
        retrier = Retrier(self.retry_policy, context=ctx)
        return retrier.run(lambda: self._do_request(url, headers).body, description=f"GET {url}")

    def get_cookies(self, url: str) -> list[Cookie]:
        """Cookies previously set by responses that apply to the URL's host.

        Host-only cookies match their exact host; domain cookies (stored with
        a leading dot) also match subdomains. Expired cookies are left out, as
        are secure cookies for plain-HTTP URLs.
        """

        parsed = urlsplit(url)
        host = (parsed.hostname or "").lower().rstrip(".")
        if not host:
            return []

        matched: list[Cookie] = []
        for cookie in self._cookies:
            if cookie.is_expired():
                continue
            if cookie.secure and parsed.scheme.lower() != "https":
                continue
            domain = cookie.domain.lower()
            if domain.startswith("."):
                if host != domain[1:] and not host.endswith(domain):
                    continue
            elif host != domain:
                continue
            matched.append(cookie)
        return matched

    def close(self) -> None:
        with self._sessions_lock:
            if self._closed:
                return
            self._closed = True
            sessions, self._sessions = self._sessions, []

        for session in sessions:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _ensure_open(self) -> None:
        with self._sessions_lock:
            if self._closed:
                raise HarvestError("fetcher is closed")

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = self._session_factory()
            session.cookies = self._cookies
            self._thread_local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _do_request(self, url: str, headers: Mapping[str, str] | None) -> FetchResult:
        request_headers = dict(self.default_headers)
        request_headers["User-Agent"] = self.user_agent
        if headers:
            request_headers.update(headers)

        session = self._thread_local_session()
        try:
            response = session.get(
                url,
                headers=request_headers,
                timeout=self.timeout_seconds,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"request to {url} timed out") from exc
        except requests.RequestException as exc:
            raise FetchError(url, 0, exc) from exc

        status = response.status_code
        if status >= 400:
            error = FetchError(url, status, response.reason or "request failed")
            if should_retry_status(status):
                raise RetryableError(error, parse_retry_after(response.headers.get("Retry-After")))
            raise error

        return FetchResult(
            url=url,
            status_code=status,
            body=response.content or b"",
            content_type=response.headers.get("Content-Type", ""),
            final_url=response.url or url,
            headers=dict(response.headers),
        )


__all__ = ["Fetcher"]
