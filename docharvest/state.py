"""Incremental sync state: what earlier runs wrote into an output directory.

The state file lives at ``<output_dir>/.docharvest-state.json`` and maps each
source URL to the content hash, fetch time and output file of its last write.
A sync run compares fresh content hashes against it to skip unchanged pages,
and can prune output files whose source URLs were not seen again.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from .constants import JSON_INDENT, STATE_FILENAME, STATE_VERSION
from .errors import WriteError
from .types import Document, JSONDict, utc_now
from .writer import atomic_write_text


logger = logging.getLogger(__name__)


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _format_time(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class PageState:
    """Last recorded write for one source URL."""

    content_hash: str
    file_path: str
    fetched_at: datetime | None = None

    def to_dict(self) -> JSONDict:
        return {
            "content_hash": self.content_hash,
            "fetched_at": _format_time(self.fetched_at),
            "file_path": self.file_path,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PageState":
        return cls(
            content_hash=str(payload["content_hash"]),
            file_path=str(payload["file_path"]),
            fetched_at=_parse_time(payload.get("fetched_at")),
        )


class SyncState:
    """Thread-safe page records for one output directory.

    Every document a run produces is marked seen. Pages recorded by an
    earlier run and not seen by this one count as deleted upstream.
    """

    def __init__(self, output_dir: str | Path, *, source_url: str = "", strategy: str = "") -> None:
        self.output_dir = Path(output_dir).expanduser()
        self.source_url = source_url
        self.strategy = strategy
        self.last_sync: datetime | None = None

        self._lock = threading.Lock()
        self._pages: dict[str, PageState] = {}
        self._seen: set[str] = set()
        self._dirty = False

    @property
    def path(self) -> Path:
        return self.output_dir / STATE_FILENAME

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    def load(self) -> bool:
        """Read the state file. Returns False when starting from an empty state.

        A missing file is silent; unreadable, corrupted or other-version files
        are logged and ignored so the next save rebuilds them.
        """

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Cannot read sync state %s, starting fresh: %s", self.path, exc)
            return False

        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("top level is not a mapping")
            version = payload.get("version")
            if version != STATE_VERSION:
                logger.warning(
                    "Sync state %s has version %r, expected %d; rebuilding",
                    self.path,
                    version,
                    STATE_VERSION,
                )
                return False
            pages = {str(url): PageState.from_dict(entry) for url, entry in dict(payload.get("pages") or {}).items()}
            last_sync = _parse_time(payload.get("last_sync"))
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Sync state %s is corrupted, starting fresh: %s", self.path, exc)
            return False

        with self._lock:
            self._pages = pages
            self.last_sync = last_sync
            if not self.source_url:
                self.source_url = str(payload.get("source_url") or "")
            if not self.strategy:
                self.strategy = str(payload.get("strategy") or "")
        logger.info("Loaded sync state for %s with %d pages", self.source_url or self.output_dir, len(pages))
        return True

    def bind(self, source_url: str, strategy: str) -> None:
        """Attach the state to this run's source; records of another source are dropped."""

        with self._lock:
            if self._pages and self.source_url and self.source_url != source_url:
                logger.warning(
                    "Sync state in %s belongs to %s, not %s; starting fresh",
                    self.output_dir,
                    self.source_url,
                    source_url,
                )
                self._pages = {}
                self._dirty = True
            self.source_url = source_url
            self.strategy = strategy

    def page(self, url: str) -> PageState | None:
        with self._lock:
            return self._pages.get(url)

    def mark_seen(self, url: str) -> None:
        with self._lock:
            self._seen.add(url)

    def is_unchanged(self, url: str, content_hash: str) -> bool:
        """True when ``url`` was last written with the same content hash."""

        with self._lock:
            page = self._pages.get(url)
        return page is not None and bool(content_hash) and page.content_hash == content_hash

    def record(self, document: Document, path: Path) -> None:
        """Remember that ``document`` was written to ``path``."""

        if not document.content_hash:
            return
        try:
            file_path = path.relative_to(self.output_dir).as_posix()
        except ValueError:
            file_path = str(path)
        page = PageState(content_hash=document.content_hash, file_path=file_path, fetched_at=document.fetched_at)
        with self._lock:
            self._pages[document.url] = page
            self._seen.add(document.url)
            self._dirty = True

    def deleted_pages(self) -> dict[str, PageState]:
        """Recorded pages whose URLs were not seen during this run."""

        with self._lock:
            return {url: page for url, page in self._pages.items() if url not in self._seen}

    def prune(self) -> int:
        """Delete output files of pages not seen this run and forget them.

        Returns how many pages were removed. Files that are already gone
        count as removed; files that cannot be deleted stay recorded.
        """

        root = self.output_dir.resolve()
        removed: list[str] = []
        for url, page in sorted(self.deleted_pages().items()):
            target = (self.output_dir / page.file_path).resolve()
            if root not in target.parents:
                logger.warning("Not pruning %s: %s is outside %s", url, target, root)
                continue
            try:
                target.unlink(missing_ok=True)
                target.with_suffix(".json").unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove %s for %s: %s", target, url, exc)
                continue
            logger.info("Removed %s (%s no longer present)", page.file_path, url)
            removed.append(url)

        if removed:
            with self._lock:
                for url in removed:
                    self._pages.pop(url, None)
                self._dirty = True
        return len(removed)

    def to_dict(self) -> JSONDict:
        with self._lock:
            return {
                "version": STATE_VERSION,
                "source_url": self.source_url,
                "strategy": self.strategy,
                "last_sync": _format_time(self.last_sync),
                "pages": {url: page.to_dict() for url, page in sorted(self._pages.items())},
            }

    def save(self) -> bool:
        """Write the state file if anything changed. Returns True when written."""

        with self._lock:
            if not self._dirty:
                return False
            self.last_sync = utc_now()

        payload = json.dumps(self.to_dict(), ensure_ascii=False, indent=JSON_INDENT)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self.path, payload + "\n")
        except OSError as exc:
            raise WriteError(f"failed to save sync state to {self.path}: {exc}") from exc

        with self._lock:
            self._dirty = False
            count = len(self._pages)
        logger.debug("Saved sync state with %d pages to %s", count, self.path)
        return True


__all__ = ["PageState", "SyncState"]
