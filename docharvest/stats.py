"""Thread-safe run statistics aggregation."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Mapping

from .frontier import EnqueueResult, EnqueueStatus
from .types import Document, FetchResult, utc_now


class StatsCollector:
    """Collect and summarize harvest runtime statistics.

    Safe to share between the workers of one strategy run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at: datetime = utc_now()
        self._finished_at: datetime | None = None

        self._enqueue_counts: dict[str, int] = defaultdict(int)
        self._frontier_snapshot: dict[str, int | bool] = {}

        self._fetched_ok = 0
        self._fetched_error = 0
        self._cache_hits = 0
        self._bytes_total = 0
        self._error_type_counts: dict[str, int] = defaultdict(int)
        self._content_kind_counts: dict[str, int] = defaultdict(int)

        self._converted = 0
        self._rendered = 0
        self._words_total = 0
        self._written = 0
        self._skipped_existing = 0
        self._unchanged = 0
        self._pruned = 0

    def record_enqueue(self, result_or_status: EnqueueResult | EnqueueStatus) -> None:
        if isinstance(result_or_status, EnqueueResult):
            status = result_or_status.status
        else:
            status = result_or_status
        with self._lock:
            self._enqueue_counts[status.value] += 1

    def record_frontier_snapshot(self, snapshot: Mapping[str, int | bool]) -> None:
        with self._lock:
            self._frontier_snapshot = dict(snapshot)

    def record_fetch(self, result: FetchResult, kind: str | None = None) -> None:
        with self._lock:
            self._fetched_ok += 1
            if result.from_cache:
                self._cache_hits += 1
            self._bytes_total += len(result.body)
            if kind:
                self._content_kind_counts[kind] += 1

    def record_fetch_error(self, exc: BaseException) -> None:
        with self._lock:
            self._fetched_error += 1
            self._error_type_counts[type(exc).__name__] += 1

    def record_converted(self, document: Document) -> None:
        with self._lock:
            self._converted += 1
            self._words_total += document.word_count
            if document.rendered_with_js:
                self._rendered += 1

    def record_written(self, written: bool) -> None:
        with self._lock:
            if written:
                self._written += 1
            else:
                self._skipped_existing += 1

    def record_unchanged(self) -> None:
        with self._lock:
            self._unchanged += 1

    def record_pruned(self, count: int) -> None:
        with self._lock:
            self._pruned += count

    def finish(self) -> None:
        with self._lock:
            if self._finished_at is None:
                self._finished_at = utc_now()

    @property
    def written(self) -> int:
        with self._lock:
            return self._written

    @property
    def fetch_errors(self) -> int:
        with self._lock:
            return self._fetched_error

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary payload."""

        with self._lock:
            end = self._finished_at or utc_now()
            duration_seconds = max(0.0, (end - self._started_at).total_seconds())
            fetched_total = self._fetched_ok + self._fetched_error

            return {
                "started_at": self._started_at.isoformat(timespec="seconds"),
                "finished_at": (
                    self._finished_at.isoformat(timespec="seconds") if self._finished_at else None
                ),
                "duration_seconds": duration_seconds,
                "pages_per_second": fetched_total / duration_seconds if duration_seconds > 0 else 0.0,
                "frontier": {
                    "status_counts": dict(self._enqueue_counts),
                    "snapshot": dict(self._frontier_snapshot),
                },
                "fetch": {
                    "ok": self._fetched_ok,
                    "error": self._fetched_error,
                    "cache_hits": self._cache_hits,
                    "bytes_total": self._bytes_total,
                    "error_type_counts": dict(self._error_type_counts),
                    "content_kind_counts": dict(self._content_kind_counts),
                },
                "convert": {
                    "documents": self._converted,
                    "rendered_with_js": self._rendered,
                    "words_total": self._words_total,
                },
                "write": {
                    "written": self._written,
                    "skipped_existing": self._skipped_existing,
                    "unchanged": self._unchanged,
                    "pruned": self._pruned,
                },
            }


__all__ = ["StatsCollector"]
