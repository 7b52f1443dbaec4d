"""Thin wrappers around the ``git`` command line."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from ..errors import HarvestError


logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 600


def run_git(args: list[str], *, cwd: Path | None = None, timeout: float = GIT_TIMEOUT_SECONDS) -> str:
    """Run a git command and return its stdout; failures raise `HarvestError`."""

    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except FileNotFoundError as exc:
        raise HarvestError("git executable not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise HarvestError(f"git {args[0]} timed out after {timeout}s") from exc
    except subprocess.CalledProcessError as exc:
        message = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise HarvestError(f"git {args[0]} failed: {message}") from exc
    return completed.stdout


def clone_repository(url: str, dest: Path, *, branch: str = "") -> str:
    """Shallow-clone ``url`` into ``dest`` and return the checked-out branch."""

    args = ["clone", "--depth", "1"]
    if branch:
        args += ["--branch", branch]
    run_git([*args, url, str(dest)])
    try:
        current = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=dest).strip()
    except HarvestError:
        current = ""
    return current if current and current != "HEAD" else (branch or "main")


def detect_default_branch(url: str) -> str | None:
    try:
        output = run_git(["ls-remote", "--symref", url, "HEAD"], timeout=60)
    except HarvestError as exc:
        logger.debug("Could not detect default branch of %s: %s", url, exc)
        return None
    for line in output.splitlines():
        if line.startswith("ref: refs/heads/"):
            return line[len("ref: refs/heads/"):].split("\t", 1)[0].strip() or None
    return None


__all__ = [
    "GIT_TIMEOUT_SECONDS",
    "clone_repository",
    "detect_default_branch",
    "run_git",
]
