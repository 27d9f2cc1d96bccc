"""Git helpers for workspace detection and repository summaries."""

import shutil
import subprocess
from pathlib import Path

from ..logging_config import get_logger

logger = get_logger(__name__)

GIT_TIMEOUT_SECONDS = 10


class GitError(RuntimeError):
    """A git command failed or git is unavailable."""


def _run_git(repo_root: str | Path, *args: str) -> str:
    """Run a git command in repo_root and return stripped stdout.

    Raises:
        GitError: git is missing, times out or exits non-zero
    """
    if not shutil.which("git"):
        raise GitError("git not found on PATH")
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise GitError(f"git {args[0]} failed: {e}") from e
    if result.returncode != 0:
        raise GitError(f"git {args[0]} exited {result.returncode}: {result.stderr.strip()}")
    return result.stdout.strip()


def is_git_workspace(repo_root: str | Path) -> bool:
    """Return True if repo_root is inside a git work tree and git is on PATH."""
    try:
        return _run_git(repo_root, "rev-parse", "--is-inside-work-tree") == "true"
    except GitError:
        return False


def get_current_branch(repo_root: str | Path) -> str:
    return _run_git(repo_root, "symbolic-ref", "--short", "HEAD")


def get_status_summary(repo_root: str | Path) -> str:
    """Return "clean" or "has uncommitted changes"."""
    porcelain = _run_git(repo_root, "status", "--porcelain")
    return "has uncommitted changes" if porcelain else "clean"


def get_recent_commits(repo_root: str | Path, count: int = 3) -> list[dict[str, str]]:
    """Return the last commits as {"hash", "message"} dicts, newest first."""
    output = _run_git(repo_root, "log", "--pretty=format:%h|%s", f"-{count}")
    commits = []
    for line in output.splitlines():
        if "|" not in line:
            continue
        commit_hash, message = line.split("|", 1)
        commits.append({"hash": commit_hash, "message": message})
    return commits
