"""Shared fakes and fixtures; nothing here touches the network."""

from __future__ import annotations

import threading
from typing import Callable, Mapping

import pytest

from docharvest.context import Context
from docharvest.errors import FetchError
from docharvest.state import SyncState
from docharvest.strategies import Dependencies
from docharvest.types import FetchResult
from docharvest.url import normalize_url
from docharvest.writer import Writer


def html_page(title: str, body: str = "", links: list[str] | tuple[str, ...] = ()) -> str:
    anchors = "".join(f'<li><a href="{href}">{href}</a></li>' for href in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<article><h1>{title}</h1><p>{body or 'Some documentation text for ' + title + '.'}</p>"
        f"<ul>{anchors}</ul></article></body></html>"
    )


class FakeFetcher:
    """Serves canned bodies keyed by normalized URL and records every call."""

    def __init__(
        self,
        pages: Mapping[str, str | bytes] | None = None,
        *,
        content_types: Mapping[str, str] | None = None,
        on_fetch: Callable[[str], None] | None = None,
    ) -> None:
        self.pages: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        for url, body in (pages or {}).items():
            self.add(url, body, (content_types or {}).get(url, "text/html; charset=utf-8"))
        self.on_fetch = on_fetch
        self.calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def add(self, url: str, body: str | bytes, content_type: str = "text/html; charset=utf-8") -> None:
        key = normalize_url(url) or url
        self.pages[key] = body.encode("utf-8") if isinstance(body, str) else body
        self.content_types[key] = content_type

    def get(self, url: str, *, ctx: Context | None = None) -> FetchResult:
        return self.get_with_headers(url, None, ctx=ctx)

    def get_with_headers(self, url: str, headers, *, ctx: Context | None = None) -> FetchResult:
        if ctx is not None:
            ctx.raise_if_done()
        with self._lock:
            self.calls.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)

        key = normalize_url(url) or url
        if key not in self.pages:
            raise FetchError(url, 404, "Not Found")
        return FetchResult(
            url=url,
            status_code=200,
            body=self.pages[key],
            content_type=self.content_types[key],
            final_url=url,
        )

    def get_bytes(self, url: str, *, headers=None, ctx: Context | None = None) -> bytes:
        return self.get(url, ctx=ctx).body

    def get_cookies(self, url: str) -> list:
        return []

    def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        *,
        headers: Mapping[str, str] | None = None,
        url: str = "",
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.headers = dict(headers or {})
        self.url = url
        self.reason = reason


class FakeSession:
    """Stands in for `requests.Session`, replaying queued responses or errors."""

    def __init__(self, responses: list[FakeResponse | Exception]) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, dict]] = []
        self.cookies = None
        self.closed = False

    def get(self, url: str, *, headers=None, timeout=None, allow_redirects=True):
        self.requests.append((url, dict(headers or {})))
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        if not outcome.url:
            outcome.url = url
        return outcome

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def ctx() -> Context:
    return Context()


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "out"


@pytest.fixture
def make_deps(output_dir):
    def _make(fetcher: FakeFetcher | None = None, *, state: SyncState | None = None, **writer_kwargs) -> Dependencies:
        return Dependencies(
            fetcher=fetcher or FakeFetcher(),
            writer=Writer(output_dir, **writer_kwargs),
            state=state,
        )

    return _make


def written_files(root) -> list[str]:
    if not root.exists():
        return []
    return sorted(str(path.relative_to(root)) for path in root.rglob("*.md"))
