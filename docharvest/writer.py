"""Filesystem writer for harvested Markdown documents.

The writer owns the on-disk layout. Strategies hand it finished `Document`s
and never build output paths themselves.
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
import tempfile
from pathlib import Path

import yaml

from .constants import JSON_INDENT
from .errors import WriteError
from .types import Document
from .url import sanitize_filename, url_to_path


logger = logging.getLogger(__name__)


def _clean_relative_path(relative_path: str, *, flat: bool) -> str:
    """Normalize a caller-provided relative path and keep it inside the root."""

    normalized = posixpath.normpath(relative_path.replace("\\", "/")).lstrip("/")
    segments = [
        sanitize_filename(segment)
        for segment in normalized.split("/")
        if segment and segment not in {".", ".."}
    ]
    segments = [segment for segment in segments if segment]
    if not segments:
        return "index.md"

    last = segments[-1]
    stem, ext = posixpath.splitext(last)
    if ext.lower() in {".mdx", ".markdown", ".mdown"}:
        last = stem + ".md"
    elif ext.lower() != ".md":
        last = last + ".md"
    segments[-1] = last

    if flat:
        return "-".join(segments)
    return posixpath.join(*segments)


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to a temporary sibling of ``path`` and move it into place."""

    tmp_fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=path.name + ".",
        suffix=".tmp",
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def render_markdown(document: Document) -> str:
    """YAML frontmatter followed by the document body."""

    header = yaml.safe_dump(
        document.frontmatter(),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    body = document.content.rstrip("\n")
    return f"---\n{header}---\n\n{body}\n"


class Writer:
    """Persist documents under a single `output_dir` root.

    Concurrent calls are safe as long as they target distinct paths; each file
    is written to a temporary sibling and moved into place.
    """

    def __init__(self, output_dir: str | Path, *, flat: bool = False, json_metadata: bool = False) -> None:
        self.output_dir = Path(output_dir).expanduser()
        self.flat = flat
        self.json_metadata = json_metadata

    def path_for(self, url: str, relative_path: str = "") -> Path:
        if relative_path:
            relative = _clean_relative_path(relative_path, flat=self.flat)
        else:
            relative = url_to_path(url, flat=self.flat)
        return self.output_dir / relative

    def path_for_document(self, document: Document) -> Path:
        return self.path_for(document.url, document.relative_path)

    def exists(self, url: str, relative_path: str = "") -> bool:
        return self.path_for(url, relative_path).exists()

    def write(self, document: Document) -> Path:
        """Write ``document`` and, if enabled, its JSON metadata sidecar."""

        path = self.path_for_document(document)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(path, render_markdown(document))
            if self.json_metadata:
                payload = json.dumps(document.to_metadata(), ensure_ascii=False, indent=JSON_INDENT, sort_keys=True)
                atomic_write_text(path.with_suffix(".json"), payload + "\n")
        except OSError as exc:
            raise WriteError(f"failed to write {document.url} to {path}: {exc}") from exc

        logger.debug("Wrote %s -> %s", document.url, path)
        return path


__all__ = ["Writer", "atomic_write_text", "render_markdown"]
