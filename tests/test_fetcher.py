"""Tests for the cache-aware, retrying fetcher (with a fake requests session)."""

from __future__ import annotations

import pytest
import requests
from requests.cookies import create_cookie

from docharvest.cache import MemoryCache
from docharvest.context import Context
from docharvest.errors import Cancelled, FetchError, FetchTimeoutError, HarvestError, RetryableError
from docharvest.fetcher import Fetcher
from docharvest.types import RetryPolicy
from docharvest.url import cache_key

from conftest import FakeResponse, FakeSession


FAST = RetryPolicy(max_retries=2, initial_interval=0.001, max_interval=0.001)


def make_fetcher(responses, *, cache=None, **kwargs) -> tuple[Fetcher, list[FakeSession]]:
    sessions: list[FakeSession] = []

    def factory():
        session = FakeSession(responses)
        sessions.append(session)
        return session

    fetcher = Fetcher(cache=cache, retry_policy=FAST, session_factory=factory, **kwargs)
    return fetcher, sessions


def ok(body: bytes = b"<html>ok</html>", content_type: str = "text/html") -> FakeResponse:
    return FakeResponse(200, body, headers={"Content-Type": content_type})


class TestGet:
    def test_success(self):
        fetcher, sessions = make_fetcher([ok(b"hello")])
        result = fetcher.get("https://x.com/docs")
        assert result.status_code == 200
        assert result.body == b"hello"
        assert result.content_type == "text/html"
        assert result.from_cache is False
        assert len(sessions[0].requests) == 1

    def test_headers_sent(self):
        fetcher, sessions = make_fetcher([ok()], user_agent="docharvest-test/1.0")
        fetcher.get_with_headers("https://x.com", {"X-Extra": "1"})
        _, headers = sessions[0].requests[0]
        assert headers["User-Agent"] == "docharvest-test/1.0"
        assert headers["X-Extra"] == "1"
        assert "Accept" in headers

    def test_retries_rate_limit_then_succeeds(self):
        fetcher, sessions = make_fetcher(
            [FakeResponse(429, reason="Too Many Requests"), FakeResponse(429), ok(b"done")]
        )
        assert fetcher.get("https://x.com").body == b"done"
        assert len(sessions[0].requests) == 3

    def test_gives_up_after_max_retries(self):
        fetcher, sessions = make_fetcher([FakeResponse(503, reason="Service Unavailable")])
        with pytest.raises(RetryableError) as excinfo:
            fetcher.get("https://x.com")
        assert excinfo.value.cause.status_code == 503
        assert len(sessions[0].requests) == 3

    def test_permanent_status_not_retried(self):
        fetcher, sessions = make_fetcher([FakeResponse(404, reason="Not Found")])
        with pytest.raises(FetchError) as excinfo:
            fetcher.get("https://x.com/missing")
        assert excinfo.value.status_code == 404
        assert len(sessions[0].requests) == 1

    def test_retry_after_header_parsed(self):
        fetcher, _ = make_fetcher([FakeResponse(429, headers={"Retry-After": "0"}), ok()])
        assert fetcher.get("https://x.com").status_code == 200

    def test_timeout_becomes_retryable(self):
        fetcher, sessions = make_fetcher([requests.Timeout("slow")])
        with pytest.raises(FetchTimeoutError):
            fetcher.get("https://x.com")
        assert len(sessions[0].requests) == 3

    def test_connection_error_is_permanent(self):
        fetcher, sessions = make_fetcher([requests.ConnectionError("dns failure")])
        with pytest.raises(FetchError) as excinfo:
            fetcher.get("https://x.com")
        assert excinfo.value.status_code == 0
        assert len(sessions[0].requests) == 1

    def test_rejects_non_http(self):
        fetcher, _ = make_fetcher([ok()])
        with pytest.raises(FetchError):
            fetcher.get("ftp://x.com/file")

    def test_cancelled_context(self):
        fetcher, sessions = make_fetcher([ok()])
        ctx = Context()
        ctx.cancel()
        with pytest.raises(Cancelled):
            fetcher.get("https://x.com", ctx=ctx)
        assert sessions == []

    def test_closed_fetcher_refuses(self):
        fetcher, sessions = make_fetcher([ok()])
        fetcher.get("https://x.com")
        fetcher.close()
        assert sessions[0].closed
        with pytest.raises(HarvestError):
            fetcher.get("https://x.com")

    def test_context_manager_closes_sessions(self):
        fetcher, sessions = make_fetcher([ok()])
        with fetcher:
            fetcher.get("https://x.com")
        assert sessions[0].closed


class TestCache:
    def test_hit_skips_network(self):
        cache = MemoryCache()
        fetcher, sessions = make_fetcher([ok(b"# Title", "text/markdown")], cache=cache)
        first = fetcher.get("https://x.com/readme.md")
        second = fetcher.get("https://x.com/readme.md")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.body == b"# Title"
        assert second.content_type == "text/markdown"
        assert len(sessions[0].requests) == 1

    def test_key_uses_normalized_url(self):
        cache = MemoryCache()
        fetcher, sessions = make_fetcher([ok()], cache=cache)
        fetcher.get("https://X.com/docs/?b=2&a=1#frag")
        assert cache.has(cache_key("https://x.com/docs?a=1&b=2"))
        fetcher.get("https://x.com/docs?a=1&b=2")
        assert len(sessions[0].requests) == 1

    def test_errors_not_cached(self):
        cache = MemoryCache()
        fetcher, _ = make_fetcher([FakeResponse(404)], cache=cache)
        with pytest.raises(FetchError):
            fetcher.get("https://x.com/missing")
        assert cache.stats()["entries"] == 0

    def test_cache_disabled(self):
        cache = MemoryCache()
        fetcher, sessions = make_fetcher([ok()], cache=cache, enable_cache=False)
        fetcher.get("https://x.com")
        fetcher.get("https://x.com")
        assert len(sessions[0].requests) == 2
        assert cache.stats()["entries"] == 0


class TestBytes:
    def test_get_bytes_bypasses_cache(self):
        cache = MemoryCache()
        fetcher, sessions = make_fetcher([ok(b"\x1f\x8bdata", "application/gzip")], cache=cache)
        assert fetcher.get_bytes("https://x.com/a.tar.gz") == b"\x1f\x8bdata"
        assert cache.stats()["entries"] == 0


class TestCookies:
    def fetcher_with(self, *cookies):
        fetcher, sessions = make_fetcher([ok()])
        fetcher.get("https://www.example.com/")
        for cookie in cookies:
            sessions[0].cookies.set_cookie(cookie)
        return fetcher

    def names(self, fetcher, url):
        return sorted(cookie.name for cookie in fetcher.get_cookies(url))

    def test_host_only_cookie_stays_on_its_host(self):
        fetcher = self.fetcher_with(create_cookie("sid", "1", domain="www.example.com"))
        assert self.names(fetcher, "https://www.example.com/docs") == ["sid"]
        assert self.names(fetcher, "https://api.example.com/x") == []
        assert self.names(fetcher, "https://example.com/") == []

    def test_domain_cookie_covers_subdomains(self):
        fetcher = self.fetcher_with(create_cookie("pref", "dark", domain=".example.com"))
        assert self.names(fetcher, "https://example.com/") == ["pref"]
        assert self.names(fetcher, "https://api.example.com/x") == ["pref"]
        assert self.names(fetcher, "https://notexample.com/") == []

    def test_secure_and_expired_cookies(self):
        fetcher = self.fetcher_with(
            create_cookie("secure", "1", domain="docs.example.com", secure=True),
            create_cookie("stale", "1", domain="docs.example.com", expires=1),
            create_cookie("plain", "1", domain="docs.example.com"),
        )
        assert self.names(fetcher, "https://docs.example.com/") == ["plain", "secure"]
        assert self.names(fetcher, "http://docs.example.com/") == ["plain"]

    def test_no_host(self):
        assert self.fetcher_with().get_cookies("not a url") == []
