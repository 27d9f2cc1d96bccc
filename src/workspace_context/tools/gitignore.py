"""Ignore-file parsing for workspace file enumeration.

Patterns come from .gitignore and .context-ignore at the workspace root, in
that order, so .context-ignore can re-include paths with "!pattern".
"""

import re
from pathlib import Path
from typing import NamedTuple

from ..logging_config import get_logger

logger = get_logger(__name__)

IGNORE_FILES = (".gitignore", ".context-ignore")


class IgnoreRule(NamedTuple):
    pattern: re.Pattern
    directory_only: bool
    negated: bool


def parse_ignore_line(line: str) -> IgnoreRule | None:
    """Translate one gitignore-style line into a rule, or None for blanks/comments."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    negated = line.startswith("!")
    if negated:
        line = line[1:]

    directory_only = line.endswith("/")
    if directory_only:
        line = line[:-1]

    if not line:
        return None

    regex = re.escape(line)
    regex = regex.replace(r"\*\*", "\0")
    regex = regex.replace(r"\*", r"[^/]*")
    regex = regex.replace(r"\?", r"[^/]")
    regex = regex.replace("\0", r".*")

    # Leading slash anchors to the root; otherwise match at any depth
    if regex.startswith("/"):
        regex = "^" + regex[1:]
    else:
        regex = "(^|/)" + regex

    # A matching directory also covers everything beneath it
    regex += "(/|$)"

    try:
        return IgnoreRule(re.compile(regex), directory_only, negated)
    except re.error:
        logger.debug("Skipping invalid ignore pattern: %s", line)
        return None


def load_ignore_patterns(repo_root: Path, filenames: tuple[str, ...] = IGNORE_FILES) -> list[IgnoreRule]:
    """Load rules from each ignore file that exists under repo_root."""
    rules = []
    for name in filenames:
        path = repo_root / name
        if not path.is_file():
            continue
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Could not read %s: %s", path, e)
            continue
        for line in lines:
            rule = parse_ignore_line(line)
            if rule is not None:
                rules.append(rule)
    return rules


def should_ignore(path: Path, repo_root: Path, rules: list[IgnoreRule] | None = None) -> bool:
    """Check whether a path under repo_root is excluded.

    Dot-prefixed path components are always excluded and cannot be
    re-included by negation.
    """
    if rules is None:
        rules = load_ignore_patterns(repo_root)

    try:
        rel_path = path.relative_to(repo_root)
    except ValueError:
        return False

    if any(part.startswith(".") for part in rel_path.parts):
        return True

    rel_str = rel_path.as_posix()
    if path.is_dir():
        rel_str += "/"

    ignored = False
    for rule in rules:
        match = rule.pattern.search(rel_str)
        if match is None:
            continue
        # "dir/" patterns only match through a directory separator
        if rule.directory_only and not match.group().endswith("/"):
            continue
        ignored = not rule.negated
    return ignored
