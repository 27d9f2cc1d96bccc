"""Workspace root for the current process.

Set once at startup (e.g. by the CLI). The retrieval tool resolves its
ContextManager against this root so callers do not need to chdir.
"""

from pathlib import Path

_workspace_root: Path | None = None


def set_workspace_root(path: str | Path) -> None:
    """Set the workspace root for this process."""
    global _workspace_root
    _workspace_root = Path(path).resolve()


def get_workspace_root() -> Path:
    """Return the workspace root, or cwd if not set."""
    if _workspace_root is not None:
        return _workspace_root
    return Path.cwd()
