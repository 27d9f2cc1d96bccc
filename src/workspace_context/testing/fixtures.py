"""Test fixtures: a small sample workspace and a controllable clock."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

# Words the keyword embeddings understand in the sample workspace
SAMPLE_VOCABULARY = ["login", "password", "database", "query", "docs"]

SAMPLE_FILES = {
    "auth.py": (
        "def login(user, password):\n"
        "    # compare the login password\n"
        "    return verify(user, password)\n"
    ),
    "db.py": (
        "def connect(database):\n"
        "    # open the database and run a query\n"
        "    return open_handle(database)\n"
    ),
    "README.md": "Project docs and usage docs.\n",
    "node_modules/lib.js": "function login() {}\n",
}


def create_sample_workspace(root: Path) -> Path:
    """Write SAMPLE_FILES under root.

    node_modules/ is there to check that vendored directories are skipped.

    Returns:
        The workspace root
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel_path, content in SAMPLE_FILES.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


class FakeClock:
    """Manually advanced clock for cache expiry and index staleness."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)
