"""Unit tests for text chunking strategies."""

import pytest

from workspace_context.errors import ChunkConfigError, ConfigurationError
from workspace_context.rag.chunker import (
    Chunker,
    ChunkOptions,
    ChunkStrategy,
    estimate_token_count,
    find_semantic_boundaries,
)


def numbered_lines(count: int) -> str:
    return "\n".join(f"line {i}" for i in range(1, count + 1))


class TestChunkByLines:
    """Fixed-size line windows with overlap."""

    def test_overlapping_windows(self):
        chunker = Chunker(ChunkOptions(max_size=100, overlap_size=10))
        chunks = chunker.chunk_text(numbered_lines(220))

        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 100), (91, 190), (181, 220)]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]

    def test_chunk_content_matches_line_range(self):
        chunker = Chunker(ChunkOptions(max_size=100, overlap_size=10))
        chunks = chunker.chunk_text(numbered_lines(220))

        second = chunks[1].content.split("\n")
        assert second[0] == "line 91"
        assert second[-1] == "line 190"

    def test_short_text_is_single_chunk(self):
        chunks = Chunker(ChunkOptions(max_size=100, overlap_size=10)).chunk_text("a\nb\nc")
        assert len(chunks) == 1
        assert chunks[0].start_line == 1
        assert chunks[0].end_line == 3
        assert chunks[0].content == "a\nb\nc"

    def test_empty_text_yields_no_chunks(self):
        assert Chunker().chunk_text("") == []

    def test_chunking_is_deterministic(self):
        chunker = Chunker(ChunkOptions(max_size=7, overlap_size=2))
        text = numbered_lines(50)
        assert chunker.chunk_text(text) == chunker.chunk_text(text)

    def test_overlap_not_smaller_than_size_still_terminates(self):
        chunker = Chunker(ChunkOptions(max_size=5, overlap_size=5))
        chunks = chunker.chunk_text(numbered_lines(20))
        assert len(chunks) == 1
        assert chunks[0].end_line == 5

    def test_overlap_derived_from_ratio(self):
        chunker = Chunker(ChunkOptions(max_size=100, overlap_size=0, overlap_ratio=0.2))
        assert chunker.overlap_size == 20


class TestChunkByTokens:
    """Word-count windows."""

    def test_splits_when_word_limit_exceeded(self):
        text = "\n".join(["one two three"] * 6)
        chunker = Chunker(ChunkOptions(strategy=ChunkStrategy.BY_TOKENS, max_size=9, overlap_size=0, overlap_ratio=0))
        chunks = chunker.chunk_text(text)

        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 3), (4, 6)]

    def test_overlap_carries_lines_forward(self):
        text = "\n".join(["one two three"] * 6)
        chunker = Chunker(ChunkOptions(strategy=ChunkStrategy.BY_TOKENS, max_size=9, overlap_size=1))
        chunks = chunker.chunk_text(text)

        assert chunks[0].end_line == 3
        assert chunks[1].start_line == 3

    def test_estimate_token_count(self):
        assert estimate_token_count("abcdefgh") == 2
        assert estimate_token_count("") == 0


class TestSemanticBoundaries:
    """Boundary detection and boundary-aligned chunks."""

    def test_boundaries_detected(self):
        lines = [
            "def first():",
            "    return 1",
            "",
            "x = 2",
            "func second() {",
            "}",
            "y = 3",
        ]
        boundaries = find_semantic_boundaries(lines)

        assert 0 in boundaries  # declaration
        assert 2 in boundaries  # blank line between two non-blank lines
        assert 4 in boundaries  # declaration
        assert 6 in boundaries  # line after closing brace
        assert boundaries == sorted(set(boundaries))

    def test_long_comment_is_boundary(self):
        lines = ["x = 1", "# " + "explanation " * 6, "y = 2"]
        assert 1 in find_semantic_boundaries(lines)

    def test_chunks_end_at_declarations(self):
        lines = []
        for name in ("alpha", "beta", "gamma"):
            lines.append(f"def {name}():")
            lines.extend(f"    step_{i} = {i}" for i in range(9))
        chunker = Chunker(ChunkOptions(
            strategy=ChunkStrategy.BY_SEMANTIC_BOUNDARIES, max_size=10, overlap_size=2
        ))
        chunks = chunker.chunk_text("\n".join(lines))

        assert chunks[0].start_line == 1
        assert chunks[0].end_line == 10
        assert chunks[0].content.startswith("def alpha():")
        # Next chunk steps back by the overlap
        assert chunks[1].start_line == 9
        assert chunks[-1].end_line == 30

    def test_text_without_boundaries_is_one_chunk(self):
        chunker = Chunker(ChunkOptions(strategy=ChunkStrategy.BY_SEMANTIC_BOUNDARIES, max_size=5))
        chunks = chunker.chunk_text(numbered_lines(40))
        assert len(chunks) == 1
        assert chunks[0].end_line == 40


class TestChunkerConfig:
    """Option validation and file chunking."""

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ChunkConfigError):
            Chunker(ChunkOptions(strategy="paragraphs"))

    def test_non_positive_size_rejected(self):
        with pytest.raises(ChunkConfigError):
            Chunker(ChunkOptions(max_size=0))

    def test_negative_overlap_rejected(self):
        with pytest.raises(ConfigurationError):
            Chunker(ChunkOptions(overlap_size=-1))

    def test_chunk_file_tags_path(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text(numbered_lines(3), encoding="utf-8")
        chunks = Chunker().chunk_file(path)

        assert len(chunks) == 1
        assert chunks[0].metadata["file_path"] == str(path)

    def test_chunk_file_missing_raises(self, tmp_path):
        with pytest.raises(OSError):
            Chunker().chunk_file(tmp_path / "missing.txt")
