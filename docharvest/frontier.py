"""Thread-safe crawl state: visited set, frontier queue, and result budget."""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable
from urllib.parse import urldefrag

from .types import FrontierItem
from .url import has_url_prefix, is_http_url, is_same_domain, normalize_url


logger = logging.getLogger(__name__)


class EnqueueStatus(str, Enum):
    """Result status for frontier enqueue attempts."""

    ENQUEUED = "enqueued"
    SKIPPED_INVALID_URL = "skipped_invalid_url"
    SKIPPED_OUT_OF_SCOPE = "skipped_out_of_scope"
    SKIPPED_EXCLUDED = "skipped_excluded"
    SKIPPED_DEPTH = "skipped_depth"
    SKIPPED_SEEN = "skipped_seen"
    SKIPPED_LIMIT = "skipped_limit"
    SKIPPED_CLOSED = "skipped_closed"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one enqueue attempt."""

    status: EnqueueStatus
    normalized_url: str | None = None
    item: FrontierItem | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


def compile_patterns(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile exclusion regexes, dropping the ones that do not compile."""

    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        if not pattern:
            continue
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            logger.debug("Ignoring invalid exclude pattern %r: %s", pattern, exc)
    return compiled


class LinkScope:
    """Which discovered links a crawl may follow.

    A link is in scope when it shares the seed's host and, if a filter URL is
    set, starts with that URL. The prefix test is a plain string comparison.
    """

    def __init__(self, seed_url: str, *, filter_url: str = "", exclude_patterns: Iterable[str] = ()) -> None:
        self.seed_url = seed_url
        self.filter_url = filter_url
        self.exclude = compile_patterns(exclude_patterns)

    def is_excluded(self, url: str) -> bool:
        return any(pattern.search(url) for pattern in self.exclude)

    def check(self, url: str) -> EnqueueStatus | None:
        """Return a skip status, or `None` when the link may be enqueued."""

        if not is_http_url(url):
            return EnqueueStatus.SKIPPED_INVALID_URL
        if not is_same_domain(url, self.seed_url):
            return EnqueueStatus.SKIPPED_OUT_OF_SCOPE
        if self.filter_url and not has_url_prefix(url, self.filter_url):
            return EnqueueStatus.SKIPPED_OUT_OF_SCOPE
        if self.is_excluded(url):
            return EnqueueStatus.SKIPPED_EXCLUDED
        return None


class Frontier:
    """Frontier queue shared by crawl workers.

    Visited set, pending queue, in-flight counter and result budget are all
    guarded by one condition variable. URLs are marked visited at enqueue
    time, so a URL is handed to at most one worker per run.
    """

    def __init__(self, *, max_depth: int = 0, limit: int = 0) -> None:
        self.max_depth = max(0, max_depth)
        self.limit = max(0, limit)

        self._cond = threading.Condition()
        self._pending: deque[FrontierItem] = deque()
        self._visited: set[str] = set()
        self._unfinished = 0
        self._results = 0
        self._closed = False

        self._enqueued_count = 0
        self._dequeued_count = 0
        self._skipped_seen_count = 0
        self._skipped_depth_count = 0
        self._abandoned_count = 0

    def seed(self, url: str) -> EnqueueResult:
        return self.push(url, depth=0)

    def push(self, url: str, *, depth: int, referrer: str | None = None) -> EnqueueResult:
        """Atomically check Visited and enqueue ``url`` at ``depth``.

        The normalized form is only the Visited key; the queued entry keeps
        the URL as discovered (minus any fragment) so it is fetched as written.
        """

        normalized = normalize_url(url)
        if not normalized:
            return EnqueueResult(EnqueueStatus.SKIPPED_INVALID_URL)

        with self._cond:
            if depth > self.max_depth:
                self._skipped_depth_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_DEPTH, normalized_url=normalized)
            if self._closed:
                return EnqueueResult(EnqueueStatus.SKIPPED_CLOSED, normalized_url=normalized)
            if self._limit_reached_locked():
                return EnqueueResult(EnqueueStatus.SKIPPED_LIMIT, normalized_url=normalized)
            if normalized in self._visited:
                self._skipped_seen_count += 1
                return EnqueueResult(EnqueueStatus.SKIPPED_SEEN, normalized_url=normalized)

            self._visited.add(normalized)
            item = FrontierItem(url=urldefrag(url.strip())[0], depth=depth, referrer=referrer)
            self._pending.append(item)
            self._unfinished += 1
            self._enqueued_count += 1
            self._cond.notify()

        return EnqueueResult(EnqueueStatus.ENQUEUED, normalized_url=normalized, item=item)

    def pop(self, *, timeout: float | None = None) -> FrontierItem | None:
        """Pop the next entry, waiting up to ``timeout`` seconds.

        Returns `None` on timeout or once the frontier is closed.
        """

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while not self._pending and not self._closed:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

            if self._closed or not self._pending:
                return None
            self._dequeued_count += 1
            return self._pending.popleft()

    def task_done(self) -> None:
        with self._cond:
            if self._unfinished <= 0:
                raise ValueError("task_done() called too many times")
            self._unfinished -= 1
            if self._unfinished == 0:
                self._cond.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until every enqueued entry is done; True when idle."""

        with self._cond:
            return self._cond.wait_for(lambda: self._unfinished == 0, timeout=timeout)

    def claim_result(self) -> bool:
        """Reserve one slot of the result budget.

        Returns False when the limit is already reached. Taking the last slot
        closes the frontier and abandons whatever is still pending.
        """

        with self._cond:
            if self._limit_reached_locked():
                return False
            self._results += 1
            if self.limit and self._results >= self.limit:
                self._close_locked()
            return True

    def limit_reached(self) -> bool:
        with self._cond:
            return self._limit_reached_locked()

    def close(self) -> None:
        """Stop handing out work; pending entries are abandoned."""

        with self._cond:
            self._close_locked()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def visited(self) -> set[str]:
        with self._cond:
            return set(self._visited)

    def snapshot(self) -> dict[str, int | bool]:
        """Return frontier counters for logs and stats reporting."""

        with self._cond:
            return {
                "closed": self._closed,
                "pending": len(self._pending),
                "in_flight": self._unfinished - len(self._pending),
                "visited": len(self._visited),
                "results": self._results,
                "enqueued": self._enqueued_count,
                "dequeued": self._dequeued_count,
                "skipped_seen": self._skipped_seen_count,
                "skipped_depth": self._skipped_depth_count,
                "abandoned": self._abandoned_count,
            }

    def _limit_reached_locked(self) -> bool:
        return bool(self.limit) and self._results >= self.limit

    def _close_locked(self) -> None:
        if not self._closed:
            self._closed = True
            abandoned = len(self._pending)
            self._pending.clear()
            self._abandoned_count += abandoned
            self._unfinished -= abandoned
        self._cond.notify_all()


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
    "LinkScope",
    "compile_patterns",
]
