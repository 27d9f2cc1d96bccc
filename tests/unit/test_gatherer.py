"""Unit tests for workspace fact gathering and ignore rules."""

import json

import pytest

from workspace_context.rag import gatherer as gatherer_module
from workspace_context.rag.gatherer import (
    DEPENDENCIES_UNAVAILABLE,
    GIT_UNAVAILABLE,
    Gatherer,
    walk_workspace,
)
from workspace_context.tools import git
from workspace_context.tools.gitignore import load_ignore_patterns, parse_ignore_line, should_ignore


@pytest.fixture
def no_git(monkeypatch):
    monkeypatch.setattr(git, "is_git_workspace", lambda root: False)


class TestWalkWorkspace:
    """Deterministic, ignore-aware file enumeration."""

    def test_skips_vendor_and_hidden(self, sample_workspace):
        (sample_workspace / ".env").write_text("SECRET=1\n", encoding="utf-8")
        skipped = []
        files = [p.relative_to(sample_workspace).as_posix() for p in walk_workspace(sample_workspace, skipped_dirs=skipped)]

        assert files == ["README.md", "auth.py", "db.py"]
        assert skipped == ["node_modules"]

    def test_honours_gitignore(self, sample_workspace):
        (sample_workspace / ".gitignore").write_text("db.py\n", encoding="utf-8")
        files = [p.name for p in walk_workspace(sample_workspace)]
        assert "db.py" not in files

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(NotADirectoryError):
            list(walk_workspace(tmp_path / "absent"))


class TestIgnoreRules:
    """gitignore-style pattern matching."""

    def test_blank_and_comment_lines(self):
        assert parse_ignore_line("") is None
        assert parse_ignore_line("# comment") is None

    def test_wildcard_matches_any_depth(self, tmp_path):
        rules = [parse_ignore_line("*.log")]
        assert should_ignore(tmp_path / "app.log", tmp_path, rules)
        assert should_ignore(tmp_path / "logs" / "app.log", tmp_path, rules)
        assert not should_ignore(tmp_path / "app.py", tmp_path, rules)

    def test_leading_slash_anchors_to_root(self, tmp_path):
        rules = [parse_ignore_line("/dist")]
        assert should_ignore(tmp_path / "dist" / "bundle.js", tmp_path, rules)
        assert not should_ignore(tmp_path / "src" / "dist" / "bundle.js", tmp_path, rules)

    def test_directory_pattern_covers_contents(self, tmp_path):
        (tmp_path / "cache").mkdir()
        rules = [parse_ignore_line("cache/")]
        assert should_ignore(tmp_path / "cache", tmp_path, rules)
        assert should_ignore(tmp_path / "cache" / "data.txt", tmp_path, rules)

    def test_directory_pattern_skips_files(self, tmp_path):
        (tmp_path / "notes.md").write_text("draft", encoding="utf-8")
        rules = [parse_ignore_line("notes.md/")]

        assert not should_ignore(tmp_path / "notes.md", tmp_path, rules)
        assert should_ignore(tmp_path / "notes.md" / "a.txt", tmp_path, rules)

    def test_double_star(self, tmp_path):
        rules = [parse_ignore_line("docs/**/draft.md")]
        assert should_ignore(tmp_path / "docs" / "a" / "b" / "draft.md", tmp_path, rules)

    def test_negation_last_match_wins(self, tmp_path):
        (tmp_path / ".gitignore").write_text("*.log\n", encoding="utf-8")
        (tmp_path / ".context-ignore").write_text("!keep.log\n", encoding="utf-8")
        rules = load_ignore_patterns(tmp_path)

        assert len(rules) == 2
        assert should_ignore(tmp_path / "drop.log", tmp_path, rules)
        assert not should_ignore(tmp_path / "keep.log", tmp_path, rules)

    def test_dot_paths_always_ignored(self, tmp_path):
        rules = [parse_ignore_line("!.github")]
        assert should_ignore(tmp_path / ".github" / "ci.yml", tmp_path, rules)

    def test_paths_outside_root_not_ignored(self, tmp_path):
        assert not should_ignore(tmp_path.parent / "other.py", tmp_path, [])


class TestGatherer:
    """Workspace facts for the fallback search prompt."""

    def test_file_structure(self, sample_workspace, no_git):
        (sample_workspace / "pkg").mkdir()
        (sample_workspace / "pkg" / "service.go").write_text("package pkg\n", encoding="utf-8")

        structure = Gatherer(sample_workspace).gather_file_structure()

        assert structure.startswith("📁 Project Structure:")
        assert "📂 root/\n  📄 auth.py\n  📄 db.py" in structure
        assert "📂 pkg/\n  📄 service.go" in structure
        assert "README.md" not in structure
        assert "lib.js" not in structure

    def test_codebase_analysis(self, sample_workspace, no_git):
        stats = Gatherer(sample_workspace).analyze_codebase()

        assert stats.file_count == 2
        assert stats.total_lines == 6
        assert stats.files_by_type[".py"] == 2
        assert stats.skipped_dirs == ["node_modules"]
        text = stats.format()
        assert "- Total source files: 2" in text
        assert "⚠ Not a Git repository" in text

    def test_git_placeholder_when_not_repo(self, sample_workspace, no_git):
        assert Gatherer(sample_workspace).gather_context().git_info == "Not a Git repository"

    def test_git_failure_degrades_to_placeholder(self, sample_workspace, no_git, monkeypatch):
        def broken(self):
            raise RuntimeError("git exploded")

        monkeypatch.setattr(Gatherer, "gather_git_info", broken)
        assert Gatherer(sample_workspace).gather_context().git_info == GIT_UNAVAILABLE

    def test_git_info(self, sample_workspace, monkeypatch):
        monkeypatch.setattr(git, "is_git_workspace", lambda root: True)
        monkeypatch.setattr(git, "get_current_branch", lambda root: "main")
        monkeypatch.setattr(git, "get_status_summary", lambda root: "clean")
        monkeypatch.setattr(
            git, "get_recent_commits",
            lambda root, count: [{"hash": "abc123", "message": "Add login"}],
        )

        info = Gatherer(sample_workspace).gather_git_info()

        assert "- Current branch: main" in info
        assert "- Repository status: clean" in info
        assert "abc123: Add login" in info

    def test_dependencies_parsed(self, sample_workspace, no_git):
        (sample_workspace / "requirements.txt").write_text("# deps\nnumpy>=1.24\npydantic\n", encoding="utf-8")
        (sample_workspace / "package.json").write_text(
            json.dumps({"name": "web", "dependencies": {"react": "^18.0.0"}}), encoding="utf-8"
        )

        deps = Gatherer(sample_workspace).gather_dependencies()

        assert "📄 package.json (npm):" in deps
        assert "    - react: ^18.0.0" in deps
        assert "📄 requirements.txt (python):" in deps
        assert "    - numpy>=1.24" in deps
        assert "# deps" not in deps

    def test_go_mod_and_pyproject(self, sample_workspace, no_git):
        (sample_workspace / "go.mod").write_text(
            "module example.com/app\n\nrequire (\n\tgithub.com/pkg/errors v0.9.1\n)\n", encoding="utf-8"
        )
        (sample_workspace / "pyproject.toml").write_text(
            '[project]\nname = "x"\ndependencies = ["httpx>=0.27"]\n', encoding="utf-8"
        )

        deps = Gatherer(sample_workspace).gather_dependencies()

        assert "github.com/pkg/errors v0.9.1" in deps
        assert "httpx>=0.27" in deps

    def test_no_manifests(self, sample_workspace, no_git):
        assert Gatherer(sample_workspace).gather_dependencies() == "No dependency files found"

    def test_broken_manifest_degrades_to_placeholder(self, sample_workspace, no_git):
        (sample_workspace / "package.json").write_text("{not json", encoding="utf-8")
        context = Gatherer(sample_workspace).gather_context()

        assert context.dependencies == DEPENDENCIES_UNAVAILABLE
        assert "auth.py" in context.file_structure

    def test_missing_root_propagates(self, tmp_path, no_git):
        with pytest.raises(OSError):
            Gatherer(tmp_path / "absent").gather_context()

    def test_manifest_registry(self):
        assert set(gatherer_module.DEPENDENCY_MANIFESTS) >= {"package.json", "go.mod", "Cargo.toml"}
