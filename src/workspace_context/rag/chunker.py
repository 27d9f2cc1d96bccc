"""Line-oriented text chunking with overlapping windows."""

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import ChunkConfigError


class ChunkStrategy(Enum):
    """How text is split into chunks."""

    BY_LINES = "lines"
    BY_TOKENS = "tokens"
    BY_SEMANTIC_BOUNDARIES = "semantic"


@dataclass(frozen=True)
class TextChunk:
    """A contiguous line range of a text with provenance metadata."""

    content: str
    start_line: int  # 1-indexed
    end_line: int  # last line included
    chunk_index: int
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return asdict(self)

    def with_metadata(self, **extra: str) -> "TextChunk":
        """Return a copy with extra metadata merged in."""
        return TextChunk(
            content=self.content,
            start_line=self.start_line,
            end_line=self.end_line,
            chunk_index=self.chunk_index,
            metadata={**self.metadata, **extra},
        )


@dataclass
class ChunkOptions:
    strategy: ChunkStrategy = ChunkStrategy.BY_LINES
    max_size: int = 100  # lines, or words for BY_TOKENS
    overlap_size: int = 10  # always measured in lines
    overlap_ratio: float = 0.1  # used only when overlap_size is 0


# Lines that are good places to start a new chunk
_DECLARATION_PATTERN = re.compile(r"^\s*(func|function|def|class|interface|type)\s+")
_BLOCK_END_PATTERN = re.compile(r"^\s*}\s*$")
_COMMENT_PATTERN = re.compile(r"^\s*(//|#|/\*|\*)")
_LONG_COMMENT_CHARS = 50
_MAX_SEMANTIC_OVERLAP = 5


def estimate_token_count(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return len(text) // 4


def find_semantic_boundaries(lines: list[str]) -> list[int]:
    """Return sorted, unique 0-based line indexes where a chunk may start.

    A boundary index means "a chunk may end just before this line".
    """
    boundaries = set()
    last = len(lines) - 1

    for i, line in enumerate(lines):
        stripped = line.strip()

        if _DECLARATION_PATTERN.match(line):
            boundaries.add(i)

        # Break after a closing brace, not before it
        if _BLOCK_END_PATTERN.match(line):
            boundaries.add(i + 1)

        if _COMMENT_PATTERN.match(line) and len(stripped) > _LONG_COMMENT_CHARS:
            boundaries.add(i)

        # Blank line between two non-blank lines
        if not stripped and 0 < i < last:
            if lines[i - 1].strip() and lines[i + 1].strip():
                boundaries.add(i)

    return sorted(boundaries)


class Chunker:
    """Splits text into TextChunks under one fixed strategy."""

    def __init__(self, options: ChunkOptions | None = None) -> None:
        options = options or ChunkOptions()

        if not isinstance(options.strategy, ChunkStrategy):
            raise ChunkConfigError(f"unsupported chunk strategy: {options.strategy!r}")
        if options.max_size < 1:
            raise ChunkConfigError(f"max_size must be positive, got {options.max_size}")
        if options.overlap_size < 0:
            raise ChunkConfigError(f"overlap_size must not be negative, got {options.overlap_size}")

        overlap = options.overlap_size
        if overlap == 0 and options.overlap_ratio > 0:
            overlap = int(options.max_size * options.overlap_ratio)

        self.strategy = options.strategy
        self.max_size = options.max_size
        self.overlap_size = overlap

    def chunk_text(self, text: str) -> list[TextChunk]:
        """Split text according to the configured strategy."""
        if not text:
            return []

        lines = text.split("\n")

        if self.strategy is ChunkStrategy.BY_LINES:
            return self._chunk_by_lines(lines)
        if self.strategy is ChunkStrategy.BY_TOKENS:
            return self._chunk_by_tokens(lines)
        if self.strategy is ChunkStrategy.BY_SEMANTIC_BOUNDARIES:
            return self._chunk_by_semantic_boundaries(lines)
        raise ChunkConfigError(f"unsupported chunk strategy: {self.strategy!r}")

    def chunk_file(self, file_path: str | Path) -> list[TextChunk]:
        """Read a file and chunk it, tagging each chunk with its path.

        Raises:
            OSError / UnicodeDecodeError if the file cannot be read as text
        """
        content = Path(file_path).read_text(encoding="utf-8")
        return [
            chunk.with_metadata(file_path=str(file_path))
            for chunk in self.chunk_text(content)
        ]

    def _chunk_by_lines(self, lines: list[str]) -> list[TextChunk]:
        chunks = []
        start = 0

        while start < len(lines):
            end = min(start + self.max_size, len(lines))
            chunks.append(TextChunk(
                content="\n".join(lines[start:end]),
                start_line=start + 1,
                end_line=end,
                chunk_index=len(chunks),
            ))

            next_start = end - self.overlap_size
            if next_start <= start or end >= len(lines):
                break
            start = next_start

        return chunks

    def _chunk_by_tokens(self, lines: list[str]) -> list[TextChunk]:
        chunks = []
        current: list[str] = []
        current_tokens = 0
        start_line = 1

        for line_num, line in enumerate(lines):
            line_tokens = len(line.split())

            if current and current_tokens + line_tokens > self.max_size:
                chunks.append(TextChunk(
                    content="\n".join(current),
                    start_line=start_line,
                    end_line=line_num,
                    chunk_index=len(chunks),
                ))

                overlap = min(self.overlap_size, len(current))
                if overlap > 0:
                    current = current[-overlap:]
                    start_line = line_num - overlap + 1
                    current_tokens = sum(len(l.split()) for l in current)
                else:
                    current = []
                    start_line = line_num + 1
                    current_tokens = 0

            current.append(line)
            current_tokens += line_tokens

        if current:
            chunks.append(TextChunk(
                content="\n".join(current),
                start_line=start_line,
                end_line=len(lines),
                chunk_index=len(chunks),
            ))

        return chunks

    def _chunk_by_semantic_boundaries(self, lines: list[str]) -> list[TextChunk]:
        chunks = []
        start = 0
        step_back = min(self.overlap_size, _MAX_SEMANTIC_OVERLAP)

        for boundary in find_semantic_boundaries(lines):
            if boundary - start < self.max_size:
                continue

            chunks.append(TextChunk(
                content="\n".join(lines[start:boundary]),
                start_line=start + 1,
                end_line=boundary,
                chunk_index=len(chunks),
            ))
            start = max(boundary - step_back, 0)

        if start < len(lines):
            chunks.append(TextChunk(
                content="\n".join(lines[start:]),
                start_line=start + 1,
                end_line=len(lines),
                chunk_index=len(chunks),
            ))

        return chunks
