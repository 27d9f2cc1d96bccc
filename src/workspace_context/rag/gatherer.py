"""Cheap, embedding-free workspace facts: layout, stats, git state, dependencies.

The gathered text is what the LLM-assisted fallback search reads to decide
which files are worth opening.
"""

import json
import os
import re
import tomllib
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

from ..logging_config import get_logger
from ..tools import git
from ..tools.gitignore import IgnoreRule, load_ignore_patterns, should_ignore

logger = get_logger(__name__)

SKIP_DIRS = frozenset({
    ".git", "node_modules", "vendor", "dist", "build", ".next", ".venv",
    "__pycache__", ".idea", ".vscode", "target",
})

ANALYSIS_EXTENSIONS = frozenset({
    ".go", ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c",
    ".h", ".hpp", ".rs", ".rb", ".php", ".swift",
})

GIT_UNAVAILABLE = "Not a Git repository or Git not available"
DEPENDENCIES_UNAVAILABLE = "No dependency files found or analysis failed"


@dataclass
class ContextInfo:
    """Text summaries of the workspace."""

    codebase_analysis: str
    file_structure: str
    git_info: str
    dependencies: str


def walk_workspace(
    root: Path,
    rules: list[IgnoreRule] | None = None,
    skipped_dirs: list[str] | None = None,
) -> Iterator[Path]:
    """Yield every non-ignored file under root in a deterministic order.

    Args:
        root: Workspace root
        rules: Ignore rules (loaded from root when None)
        skipped_dirs: If given, receives the relative paths of pruned directories

    Raises:
        OSError: root or a directory beneath it cannot be listed
    """
    if rules is None:
        rules = load_ignore_patterns(root)

    def _raise(error: OSError) -> None:
        raise error

    if not root.is_dir():
        raise NotADirectoryError(f"workspace root is not a directory: {root}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        current = Path(dirpath)
        kept = []
        for name in sorted(dirnames):
            sub = current / name
            if name in SKIP_DIRS or should_ignore(sub, root, rules):
                if skipped_dirs is not None:
                    skipped_dirs.append(sub.relative_to(root).as_posix())
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            path = current / name
            if not should_ignore(path, root, rules):
                yield path


@dataclass
class CodebaseStats:
    is_git_repo: bool = False
    file_count: int = 0
    total_lines: int = 0
    files_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    lines_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    skipped_dirs: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def format(self) -> str:
        lines = []
        if self.is_git_repo:
            lines.append("✓ Git repository detected")
        else:
            lines.append("⚠ Not a Git repository - version control recommended")
        lines.append("")

        lines.append("📊 Codebase Statistics:")
        lines.append(f"- Total source files: {self.file_count}")
        lines.append(f"- Total lines of code: {self.total_lines}")
        lines.append("")

        lines.append("📝 Files by type:")
        for ext in sorted(self.files_by_type):
            count = self.files_by_type[ext]
            ext_lines = self.lines_by_type[ext]
            lines.append(f"- {ext}: {count} files ({ext_lines} lines, avg {ext_lines / count:.1f} lines/file)")
        lines.append("")

        if self.skipped_dirs:
            lines.append("⏭️ Skipped directories:")
            lines.extend(f"- {d}" for d in self.skipped_dirs)
            lines.append("")

        if self.warnings:
            lines.append("⚠️ Analysis warnings:")
            lines.extend(f"- {w}" for w in self.warnings)
            lines.append("")

        return "\n".join(lines)


# Dependency manifest parsers: text -> {section: deps}

def _parse_json_sections(sections: tuple[str, ...]) -> Callable[[str], dict[str, Any]]:
    def parse(text: str) -> dict[str, Any]:
        data = json.loads(text)
        return {s: data[s] for s in sections if s in data}
    return parse


def _parse_go_mod(text: str) -> dict[str, Any]:
    result: dict[str, list[str]] = {}
    block = None
    for raw in text.splitlines():
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue
        if block:
            if line == ")":
                block = None
            else:
                result.setdefault(block, []).append(line)
            continue
        match = re.match(r"^(require|replace)\s*(\(|.+)$", line)
        if match:
            if match.group(2) == "(":
                block = match.group(1)
            else:
                result.setdefault(match.group(1), []).append(match.group(2).strip())
    return result


def _parse_requirements(text: str) -> dict[str, Any]:
    reqs = [
        line.strip() for line in text.splitlines()
        if line.strip() and not line.strip().startswith(("#", "-"))
    ]
    return {"requirements": reqs} if reqs else {}


def _parse_gemfile(text: str) -> dict[str, Any]:
    gems = re.findall(r"""^\s*gem\s+['"]([^'"]+)['"]""", text, flags=re.MULTILINE)
    return {"gems": gems} if gems else {}


def _parse_cargo(text: str) -> dict[str, Any]:
    data = tomllib.loads(text)
    return {s: data[s] for s in ("dependencies", "dev-dependencies") if s in data}


def _parse_pyproject(text: str) -> dict[str, Any]:
    data = tomllib.loads(text)
    project = data.get("project", {})
    result = {}
    if project.get("dependencies"):
        result["dependencies"] = project["dependencies"]
    if project.get("optional-dependencies"):
        result["optional-dependencies"] = project["optional-dependencies"]
    poetry = data.get("tool", {}).get("poetry", {})
    if poetry.get("dependencies"):
        result["poetry"] = poetry["dependencies"]
    return result


DEPENDENCY_MANIFESTS: dict[str, tuple[str, Callable[[str], dict[str, Any]]]] = {
    "package.json": ("npm", _parse_json_sections(
        ("dependencies", "devDependencies", "peerDependencies", "optionalDependencies"))),
    "composer.json": ("composer", _parse_json_sections(("require", "require-dev"))),
    "go.mod": ("go", _parse_go_mod),
    "requirements.txt": ("python", _parse_requirements),
    "pyproject.toml": ("python", _parse_pyproject),
    "Gemfile": ("ruby", _parse_gemfile),
    "Cargo.toml": ("cargo", _parse_cargo),
}


class Gatherer:
    """Collects workspace facts synchronously; no caching."""

    def __init__(self, workspace_root: str | Path) -> None:
        self.workspace_root = Path(workspace_root).resolve()

    def gather_context(self) -> ContextInfo:
        """Collect all workspace facts.

        Codebase analysis and file structure are required and propagate
        errors; git and dependency info degrade to placeholder text.
        """
        codebase_analysis = self.analyze_codebase().format()
        file_structure = self.gather_file_structure()

        try:
            git_info = self.gather_git_info()
        except Exception as e:
            logger.debug("Git info unavailable: %s", e)
            git_info = GIT_UNAVAILABLE

        try:
            dependencies = self.gather_dependencies()
        except Exception as e:
            logger.debug("Dependency analysis failed: %s", e)
            dependencies = DEPENDENCIES_UNAVAILABLE

        return ContextInfo(
            codebase_analysis=codebase_analysis,
            file_structure=file_structure,
            git_info=git_info,
            dependencies=dependencies,
        )

    def _source_files(self, skipped_dirs: list[str] | None = None) -> Iterator[Path]:
        for path in walk_workspace(self.workspace_root, skipped_dirs=skipped_dirs):
            if path.suffix.lower() in ANALYSIS_EXTENSIONS:
                yield path

    def analyze_codebase(self) -> CodebaseStats:
        stats = CodebaseStats(is_git_repo=git.is_git_workspace(self.workspace_root))

        for path in self._source_files(skipped_dirs=stats.skipped_dirs):
            rel = path.relative_to(self.workspace_root).as_posix()
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as f:
                    line_count = sum(1 for _ in f)
            except OSError as e:
                stats.warnings.append(f"Error reading {rel}: {e}")
                continue
            ext = path.suffix.lower()
            stats.file_count += 1
            stats.total_lines += line_count
            stats.files_by_type[ext] += 1
            stats.lines_by_type[ext] += line_count

        return stats

    def gather_file_structure(self) -> str:
        """Source files grouped by directory."""
        dir_files: dict[str, list[str]] = defaultdict(list)
        for path in self._source_files():
            rel = path.relative_to(self.workspace_root)
            directory = rel.parent.as_posix()
            dir_files["root" if directory == "." else directory].append(rel.name)

        lines = ["📁 Project Structure:"]
        for directory in sorted(dir_files):
            lines.append(f"\n📂 {directory}/")
            lines.extend(f"  📄 {name}" for name in dir_files[directory])
        return "\n".join(lines) + "\n"

    def gather_git_info(self) -> str:
        if not git.is_git_workspace(self.workspace_root):
            return "Not a Git repository"

        lines = ["🔄 Git Repository Information:"]
        try:
            lines.append(f"- Current branch: {git.get_current_branch(self.workspace_root)}")
        except git.GitError as e:
            logger.debug("Could not read branch: %s", e)
        try:
            lines.append(f"- Repository status: {git.get_status_summary(self.workspace_root)}")
        except git.GitError as e:
            logger.debug("Could not read status: %s", e)
        try:
            commits = git.get_recent_commits(self.workspace_root, 3)
            lines.append("- Recent commits:")
            lines.extend(f"  • {c['hash']}: {c['message']}" for c in commits)
        except git.GitError as e:
            logger.debug("Could not read commits: %s", e)
        return "\n".join(lines) + "\n"

    def gather_dependencies(self) -> str:
        """Parse every known dependency manifest in the workspace.

        Raises:
            OSError / ValueError: a manifest could not be read or parsed
        """
        found = []
        for path in walk_workspace(self.workspace_root):
            manifest = DEPENDENCY_MANIFESTS.get(path.name)
            if manifest is None:
                continue
            dep_type, parser = manifest
            deps = parser(path.read_text(encoding="utf-8"))
            found.append((path.relative_to(self.workspace_root).as_posix(), dep_type, deps))

        if not found:
            return "No dependency files found"

        lines = ["📦 Dependency Analysis:", ""]
        for rel_path, dep_type, deps in found:
            lines.append(f"📄 {rel_path} ({dep_type}):")
            for section, entries in deps.items():
                lines.append(f"  {section}:")
                if isinstance(entries, dict):
                    lines.extend(f"    - {name}: {version}" for name, version in entries.items())
                else:
                    lines.extend(f"    - {entry}" for entry in entries)
            lines.append("")
        return "\n".join(lines)
