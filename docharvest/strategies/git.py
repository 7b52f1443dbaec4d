"""Harvest Markdown files from a source repository archive or shallow clone."""

from __future__ import annotations

import io
import logging
import os
import posixpath
import re
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urlsplit

from ..context import Context
from ..errors import Cancelled, FetchError, HarvestError, InvalidURLError, NotFoundError, find_error
from ..types import Document
from .base import Options, Strategy
from .vcs import clone_repository, detect_default_branch
from .wiki import is_wiki_url


logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = frozenset({".md", ".mdx"})
IGNORE_DIRS = frozenset(
    {".git", "node_modules", "vendor", "__pycache__", ".venv", "venv", "dist", "build", ".next", ".nuxt"}
)
MAX_FILE_BYTES = 10 * 1024 * 1024
DEFAULT_BRANCHES = ("main", "master")

SSH_URL = re.compile(r"^[\w.-]+@[\w.-]+:[\w./~-]+")
_SSH_REPO = re.compile(r"(github\.com|gitlab\.com|bitbucket\.org)[:/]([^/]+)/([^/]+?)(?:\.git)?/?$", re.IGNORECASE)


class Platform(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    GENERIC = "generic"


@dataclass(frozen=True, slots=True)
class _PlatformPattern:
    platform: Platform
    host: str
    repo: re.Pattern[str]
    tree: re.Pattern[str]


PLATFORM_PATTERNS = (
    _PlatformPattern(
        Platform.GITHUB,
        "github.com",
        re.compile(r"^(https?://(?:www\.)?github\.com/([^/]+)/([^/?#]+?))(\.git)?(/|$|[?#])", re.IGNORECASE),
        re.compile(r"/tree/([^/]+)(?:/(.+))?$"),
    ),
    _PlatformPattern(
        Platform.GITLAB,
        "gitlab.com",
        re.compile(r"^(https?://(?:www\.)?gitlab\.com/([^/]+)/([^/?#]+?))(\.git)?(/|$|[?#])", re.IGNORECASE),
        re.compile(r"/-/tree/([^/]+)(?:/(.+))?$"),
    ),
    _PlatformPattern(
        Platform.BITBUCKET,
        "bitbucket.org",
        re.compile(r"^(https?://(?:www\.)?bitbucket\.org/([^/]+)/([^/?#]+?))(\.git)?(/|$|[?#])", re.IGNORECASE),
        re.compile(r"/src/([^/]+)(?:/(.+))?$"),
    ),
)
_HOST_PLATFORMS = {pattern.host: pattern.platform for pattern in PLATFORM_PATTERNS}


@dataclass(frozen=True, slots=True)
class RepoInfo:
    """What a repository URL points at."""

    platform: Platform
    repo_url: str
    owner: str = ""
    repo: str = ""
    branch: str = ""
    sub_path: str = ""

    @property
    def is_ssh(self) -> bool:
        return is_ssh_url(self.repo_url)


def is_ssh_url(url: str) -> bool:
    stripped = url.strip()
    return stripped.lower().startswith(("git+ssh://", "ssh://")) or bool(SSH_URL.match(stripped))


def is_source_repo_url(url: str) -> bool:
    """Repository-like URLs: known forge repos, ``.git`` URLs, SSH remotes."""

    stripped = url.strip()
    lower = stripped.lower()
    if not lower:
        return False
    if is_ssh_url(stripped):
        return True

    parsed = urlsplit(lower)
    if parsed.scheme not in {"http", "https"}:
        return False
    if parsed.path.rstrip("/").endswith(".git"):
        return True

    host = (parsed.hostname or "").removeprefix("www.")
    if host == "docs.github.com" or host.endswith("github.io"):
        return False
    segments = [segment for segment in parsed.path.split("/") if segment]
    if host not in _HOST_PLATFORMS or len(segments) < 2:
        return False
    if host == "github.com":
        return "/blob/" not in parsed.path
    if host == "gitlab.com":
        return "/-/blob/" not in parsed.path
    return True


def normalize_filter_path(path: str) -> str:
    """Repository-relative directory from a path or a forge tree URL."""

    if not path:
        return ""
    if path.startswith(("http://", "https://")):
        path = extract_path_from_tree_url(path)
    path = unquote(path).replace("\\", "/").strip("/")
    if not path:
        return ""
    normalized = posixpath.normpath(path)
    return "" if normalized == "." else normalized


def extract_path_from_tree_url(url: str) -> str:
    patterns = (
        r"github\.com/[^/]+/[^/]+/(?:tree|blob)/[^/]+/(.+)$",
        r"gitlab\.com/[^/]+/[^/]+/-/(?:tree|blob)/[^/]+/(.+)$",
        r"bitbucket\.org/[^/]+/[^/]+/src/[^/]+/(.+)$",
    )
    for pattern in patterns:
        match = re.search(pattern, url)
        if match:
            return match.group(1)
    return url


def parse_repo_url(url: str) -> RepoInfo:
    """Split a repository URL into platform, owner, repo, branch and subpath."""

    raw = url.strip()
    if is_ssh_url(raw):
        match = _SSH_REPO.search(raw)
        if match:
            platform = _HOST_PLATFORMS[match.group(1).lower()]
            return RepoInfo(platform, raw, match.group(2), match.group(3))
        return RepoInfo(Platform.GENERIC, raw)

    for pattern in PLATFORM_PATTERNS:
        if pattern.host not in raw.lower():
            continue
        match = pattern.repo.match(raw)
        if match is None:
            continue
        owner, repo = match.group(2), match.group(3)
        if repo.lower().endswith(".git"):
            repo = repo[:-4]
        branch = sub_path = ""
        tree = pattern.tree.search(urlsplit(raw).path)
        if tree:
            branch = tree.group(1)
            sub_path = normalize_filter_path(tree.group(2) or "")
        repo_url = f"https://{pattern.host}/{owner}/{repo}"
        return RepoInfo(pattern.platform, repo_url, owner, repo, branch, sub_path)

    if raw.lower().startswith(("http://", "https://")):
        return RepoInfo(Platform.GENERIC, raw.rstrip("/"))
    raise InvalidURLError(f"unsupported repository URL: {url}")


def archive_url(info: RepoInfo, branch: str) -> str:
    if info.platform == Platform.GITLAB:
        return f"https://gitlab.com/{info.owner}/{info.repo}/-/archive/{branch}/{info.repo}-{branch}.tar.gz"
    if info.platform == Platform.BITBUCKET:
        return f"https://bitbucket.org/{info.owner}/{info.repo}/get/{branch}.tar.gz"
    return f"https://github.com/{info.owner}/{info.repo}/archive/refs/heads/{branch}.tar.gz"


def extract_tar_gz(data: bytes, dest: Path) -> int:
    """Extract a forge archive, dropping its top-level directory.

    Members that would land outside ``dest`` and anything other than regular
    files and directories are skipped. Returns the number of files written.
    """

    root = dest.resolve()
    written = 0
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
        for member in archive:
            parts = member.name.split("/", 1)
            if len(parts) < 2 or not parts[1]:
                continue
            target = (root / parts[1]).resolve()
            if target != root and root not in target.parents:
                logger.debug("Skipping archive member outside destination: %s", member.name)
                continue

            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                source = archive.extractfile(member)
                if source is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with source, target.open("wb") as handle:
                    shutil.copyfileobj(source, handle)
                written += 1
    return written


def find_documentation_files(root: Path, filter_path: str = "") -> list[Path]:
    """Markdown files under ``root`` (or its ``filter_path``), sorted."""

    walk_root = root / filter_path if filter_path else root
    if filter_path:
        if not walk_root.exists():
            raise NotFoundError(f"filter path does not exist in repository: {filter_path}")
        if not walk_root.is_dir():
            raise NotFoundError(f"filter path is not a directory: {filter_path}")

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(walk_root):
        dirnames[:] = sorted(name for name in dirnames if name not in IGNORE_DIRS)
        for filename in filenames:
            if Path(filename).suffix.lower() in DOCUMENT_EXTENSIONS:
                found.append(Path(dirpath) / filename)
    return sorted(found)


def title_from_path(path: str) -> str:
    stem = Path(path).stem.replace("-", " ").replace("_", " ")
    return stem[:1].upper() + stem[1:]


class SourceArchiveStrategy(Strategy):
    """Download a repository and harvest its Markdown documentation."""

    name = "git"

    def can_handle(self, url: str) -> bool:
        return is_source_repo_url(url) and not is_wiki_url(url)

    def execute(self, ctx: Context, url: str, options: Options) -> None:
        ctx.raise_if_done()
        logger.info("Starting repository extraction of %s", url)

        info = parse_repo_url(url)
        filter_path = info.sub_path or normalize_filter_path(options.filter_url)
        if filter_path:
            logger.info("Only harvesting files under %s", filter_path)

        with tempfile.TemporaryDirectory(prefix="docharvest-git-") as tmp:
            workdir = Path(tmp) / "repo"
            workdir.mkdir()
            branch, method = self.acquire(ctx, info, workdir)
            logger.info("Repository acquired via %s (branch %s)", method, branch)

            files = find_documentation_files(workdir, filter_path)
            if not files and filter_path:
                raise NotFoundError(f"no documentation files found under path: {filter_path}")
            logger.info("Found %d documentation files", len(files))
            if options.limit:
                files = files[: options.limit]

            self.process_files(ctx, files, workdir, info, branch, options)

    def acquire(self, ctx: Context, info: RepoInfo, dest: Path) -> tuple[str, str]:
        """Fetch the repository into ``dest``; returns ``(branch, method)``."""

        if info.platform != Platform.GENERIC and not info.is_ssh:
            try:
                return self.download_archive(ctx, info, dest), "archive"
            except Exception as exc:
                cancelled = find_error(exc, Cancelled)
                if cancelled is not None:
                    raise cancelled
                logger.info("Archive download failed, falling back to git clone: %s", exc)

        ctx.raise_if_done()
        clone_url = info.repo_url if info.is_ssh or info.platform == Platform.GENERIC else info.repo_url + ".git"
        logger.info("Cloning %s", clone_url)
        shutil.rmtree(dest, ignore_errors=True)
        return clone_repository(clone_url, dest, branch=info.branch), "clone"

    def download_archive(self, ctx: Context, info: RepoInfo, dest: Path) -> str:
        headers: dict[str, str] = {}
        token = os.environ.get("GITHUB_TOKEN")
        if token and info.platform == Platform.GITHUB:
            headers["Authorization"] = f"token {token}"

        if info.branch:
            candidates = [info.branch]
        else:
            detected = detect_default_branch(info.repo_url + ".git")
            candidates = [detected] if detected else list(DEFAULT_BRANCHES)

        last_error: Exception | None = None
        for branch in candidates:
            url = archive_url(info, branch)
            logger.debug("Downloading archive %s", url)
            try:
                data = self.deps.fetcher.get_bytes(url, headers=headers, ctx=ctx)
            except FetchError as exc:
                last_error = exc
                continue
            try:
                extract_tar_gz(data, dest)
            except (tarfile.TarError, OSError, EOFError) as exc:
                raise HarvestError(f"cannot extract archive {url}: {exc}") from exc
            return branch
        raise last_error or HarvestError(f"no archive available for {info.repo_url}")

    def process_files(
        self,
        ctx: Context,
        files: list[Path],
        root: Path,
        info: RepoInfo,
        branch: str,
        options: Options,
    ) -> int:
        written = 0
        with self.deps.progress(total=len(files), desc="repository") as progress:
            for path in files:
                ctx.raise_if_done()
                try:
                    document = self.build_document(path, root, info, branch)
                    if document is not None:
                        self.deps.stats.record_converted(document)
                        if self.deps.write_document(document, options):
                            written += 1
                except (OSError, HarvestError) as exc:
                    logger.warning("Failed to process %s: %s", path, exc)
                progress.update(1)
        logger.info("Repository extraction completed: %d files written", written)
        return written

    def build_document(self, path: Path, root: Path, info: RepoInfo, branch: str) -> Document | None:
        if path.stat().st_size > MAX_FILE_BYTES:
            logger.debug("Skipping oversized file %s", path)
            return None

        relative = path.relative_to(root).as_posix()
        file_url = f"{info.repo_url}/blob/{branch}/{relative}"
        document = self.deps.markdown_reader.read(path.read_bytes(), file_url)
        return document.with_updates(
            title=document.title or title_from_path(relative),
            source_strategy=self.name,
            relative_path=relative,
        )


__all__ = [
    "DOCUMENT_EXTENSIONS",
    "IGNORE_DIRS",
    "Platform",
    "RepoInfo",
    "SourceArchiveStrategy",
    "archive_url",
    "extract_tar_gz",
    "find_documentation_files",
    "is_source_repo_url",
    "is_ssh_url",
    "normalize_filter_path",
    "parse_repo_url",
    "title_from_path",
]
