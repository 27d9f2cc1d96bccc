"""Context manager: cache, indexing lifecycle and search strategy selection.

ContextManager is the entry point callers use to fetch workspace context for
a query. Each call goes through the same stages:

1. exact-match cache lookup,
2. index freshness check (re-index when never built or older than 24h),
3. vector search, or LLM-assisted file selection when embeddings are
   unavailable or the vector search fails,
4. formatting and caching of the result.

The cache and the indexing state are guarded by two independent locks so a
long re-index never blocks cache hits.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..cancellation import CallContext
from ..config import config
from ..errors import (
    ConfigurationError,
    EmbeddingsUnsupportedError,
    IndexingError,
    OperationCancelledError,
    RetrievalError,
)
from ..llm import LLMClient
from ..locks import ReadWriteLock
from ..logging_config import get_logger
from .chunker import Chunker, ChunkOptions, ChunkStrategy, TextChunk
from .gatherer import ContextInfo, Gatherer, walk_workspace
from .summarizer import Summarizer, SummaryOptions
from .vectorstore import VectorStore

logger = get_logger(__name__)

STALENESS_WINDOW = timedelta(hours=24)

# Fallback search chunks files above this many characters and keeps the best chunk
FALLBACK_CHUNK_THRESHOLD = 5000
# Default relevance of a whole file picked by the LLM
FALLBACK_FILE_RELEVANCE = 0.8

MAX_INDEX_FILE_CHARS = 100_000
DISPLAY_CONTENT_LIMIT = 1500
TRUNCATION_MARKER = "\n... [Content truncated]"

SOURCE_EXTENSIONS = frozenset({
    ".go", ".py", ".js", ".ts", ".java", ".cpp", ".c", ".h", ".rs", ".rb",
    ".php", ".cs", ".md", ".txt", ".yaml", ".yml", ".json", ".toml",
})

FALLBACK_SYSTEM_PROMPT = (
    "You are an expert at analyzing codebases and identifying relevant files "
    "and content areas based on queries."
)

FALLBACK_PROMPT = """Based on the following query and codebase information, identify the most relevant files and content areas that would help answer the query.

Query: {query}

Codebase Structure:
{file_structure}

Please respond with a list of file paths and brief explanations of why they're relevant, one per line in the format:
filepath: explanation"""


class ContextOptions(BaseModel):
    """Tunables for a ContextManager. Invalid values raise ConfigurationError."""

    model_config = ConfigDict(frozen=True)

    max_cache_size: int = Field(default=100, ge=1)
    cache_timeout: timedelta = timedelta(minutes=30)
    chunk_size: int = Field(default=150, ge=1)  # lines
    chunk_overlap: int = Field(default=15, ge=0)  # lines
    summary_max_length: int = Field(default=500, ge=1)  # characters
    vector_dimension: int = Field(default=0, ge=0)  # 0 = adopt the first embedding's length

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid context options: {e}") from e

    @field_validator("cache_timeout")
    @classmethod
    def _positive_timeout(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("cache_timeout must be positive")
        return value

    @classmethod
    def from_config(cls, cfg: Optional[dict] = None) -> "ContextOptions":
        """Build options from the "context" section of the app config."""
        section = dict((cfg or config).get("context", {}))
        if "cache_timeout_seconds" in section:
            section["cache_timeout"] = timedelta(seconds=section.pop("cache_timeout_seconds"))
        return cls(**section)


@dataclass
class ContextPiece:
    """A unit of retrieved context."""

    file_path: str
    content: str
    start_line: int = 0
    end_line: int = 0
    relevance: float = 0.0
    kind: str = "chunk"  # "chunk", "file" or "summary"
    summary: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


def _copy_piece(piece: ContextPiece) -> ContextPiece:
    return replace(piece, metadata=dict(piece.metadata))


@dataclass(frozen=True)
class CachedContext:
    content: str
    timestamp: datetime
    query: str
    result_count: int
    pieces: tuple[ContextPiece, ...] = ()


@dataclass
class ContextResponse:
    query: str
    content: str
    pieces: list[ContextPiece]
    cached: bool
    timestamp: datetime


def calculate_relevance(content: str, explanation: str) -> float:
    """Fraction of explanation words that occur as substrings of content."""
    words = explanation.lower().split()
    if not words:
        return 0.5
    lowered = content.lower()
    matches = sum(1 for word in words if word in lowered)
    return matches / len(words)


def format_context_pieces(pieces: list[ContextPiece]) -> str:
    """Render pieces as a markdown transcript for an LLM prompt."""
    parts = [f"Retrieved {len(pieces)} relevant context pieces:\n\n"]

    for i, piece in enumerate(pieces, 1):
        parts.append(f"## Context {i} (Relevance: {piece.relevance:.2f})\n")
        parts.append(f"**File:** {piece.file_path}\n")
        if piece.start_line > 0:
            parts.append(f"**Lines:** {piece.start_line}-{piece.end_line}\n")
        parts.append(f"**Type:** {piece.kind}\n")
        if piece.summary:
            parts.append(f"**Summary:** {piece.summary}\n")

        content = piece.content
        if len(content) > DISPLAY_CONTENT_LIMIT:
            content = content[:DISPLAY_CONTENT_LIMIT] + TRUNCATION_MARKER

        parts.append("\n```\n")
        parts.append(content)
        parts.append("\n```\n\n")

        if i < len(pieces):
            parts.append("---\n\n")

    return "".join(parts)


def _parse_file_selection(line: str) -> tuple[str, str]:
    """Split an LLM "path: explanation" line, tolerating list markers and backticks."""
    line = line.strip()
    for marker in ("- ", "* ", "• "):
        if line.startswith(marker):
            line = line[len(marker):]
            break
    else:
        head, _, rest = line.partition(". ")
        if head.isdigit() and rest:
            line = rest

    path, _, explanation = line.partition(":")
    return path.strip().strip("`*\"'"), explanation.strip()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextManager:
    """Retrieves workspace context for natural-language queries.

    Args:
        workspace_root: Root directory to index and search
        llm_client: Client used for embeddings and generation
        model_name: Model passed to generate() calls ("" = client default)
        options: Cache, chunking and summarization settings
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        workspace_root: str | Path,
        llm_client: LLMClient,
        model_name: str = "",
        options: Optional[ContextOptions] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        options = options or ContextOptions()

        self.workspace_root = Path(workspace_root).resolve()
        self.llm_client = llm_client
        self.model_name = model_name
        self.options = options
        self._clock = clock

        self.gatherer = Gatherer(self.workspace_root)
        self.vector_store = VectorStore(options.vector_dimension)
        self.chunker = Chunker(ChunkOptions(
            strategy=ChunkStrategy.BY_SEMANTIC_BOUNDARIES,
            max_size=options.chunk_size,
            overlap_size=options.chunk_overlap,
            overlap_ratio=0.0,
        ))
        self.summarizer = Summarizer(
            llm_client, model_name, SummaryOptions(max_length=options.summary_max_length)
        )

        self._cache: dict[str, CachedContext] = {}
        self._cache_lock = ReadWriteLock()

        self._indexed = False
        self._last_index_time: Optional[datetime] = None
        self._index_lock = ReadWriteLock()

    # Public API

    def get_basic_context(self) -> ContextInfo:
        return self.gatherer.gather_context()

    def retrieve_context(
        self,
        query: str,
        max_results: int = 5,
        ctx: Optional[CallContext] = None,
    ) -> ContextResponse:
        """Return context relevant to query, from cache when possible.

        Raises:
            RetrievalError: indexing could not list files, or both vector
                search and the LLM-assisted fallback failed
            OperationCancelledError: ctx was cancelled or hit its deadline
        """
        ctx = ctx or CallContext.background()

        cached = self._get_cached_context(query)
        if cached is not None:
            logger.debug("Cache hit for query %r", query)
            return ContextResponse(
                query=query,
                content=cached.content,
                pieces=[_copy_piece(p) for p in cached.pieces],
                cached=True,
                timestamp=cached.timestamp,
            )

        supports_embeddings = self.llm_client.supports_embeddings()

        if supports_embeddings:
            try:
                self._ensure_indexed(ctx)
            except OperationCancelledError:
                raise
            except IndexingError as e:
                raise RetrievalError(f"failed to ensure workspace is indexed: {e}") from e

        pieces = None
        if supports_embeddings and self.vector_store.count() > 0:
            try:
                pieces = self._vector_search(query, max_results)
            except Exception as e:
                logger.warning("Vector search failed, using LLM-assisted search: %s", e)

        if pieces is None:
            try:
                pieces = self._llm_assisted_search(query, max_results, ctx)
            except OperationCancelledError:
                raise
            except Exception as e:
                raise RetrievalError(f"failed to retrieve context: {e}") from e

        content = format_context_pieces(pieces)
        self._cache_context(query, content, pieces)

        return ContextResponse(
            query=query,
            content=content,
            pieces=pieces,
            cached=False,
            timestamp=self._clock(),
        )

    def index_workspace(self, ctx: Optional[CallContext] = None) -> dict:
        """Clear the vector store and index every source file.

        Returns:
            Stats dictionary with files_indexed, chunks_indexed, time_taken

        Raises:
            EmbeddingsUnsupportedError: the LLM client cannot embed
            IndexingError: the workspace file list could not be read
            OperationCancelledError: ctx was cancelled; inserted chunks stay
        """
        ctx = ctx or CallContext.background()
        with self._index_lock.write_locked():
            return self._reindex(ctx)

    def invalidate_index(self) -> None:
        """Mark the index stale so the next query re-indexes."""
        with self._index_lock.write_locked():
            self._indexed = False

    def clear_cache(self) -> None:
        with self._cache_lock.write_locked():
            self._cache = {}

    def get_stats(self) -> dict:
        with self._cache_lock.read_locked():
            cache_size = len(self._cache)
        with self._index_lock.read_locked():
            indexed = self._indexed
            last_index_time = self._last_index_time

        return {
            "cache_size": cache_size,
            "max_cache_size": self.options.max_cache_size,
            "indexed": indexed,
            "last_index_time": last_index_time,
            "vector_store_size": self.vector_store.count(),
        }

    def summarize_piece(self, piece: ContextPiece) -> ContextPiece:
        """Replace oversized piece content with an LLM summary.

        Pieces within summary_max_length are returned unchanged.
        """
        if len(piece.content) <= self.options.summary_max_length:
            return piece
        summary = self.summarizer.summarize_text(piece.content)
        return replace(
            piece,
            content=summary,
            kind="summary",
            metadata={**piece.metadata, "original_length": len(piece.content)},
        )

    def export_index(self, path: str | Path) -> None:
        """Write the vector store snapshot to a JSON file."""
        Path(path).write_text(self.vector_store.export(), encoding="utf-8")

    def load_index(self, path: str | Path) -> int:
        """Replace the vector store with a snapshot file.

        The index counts as fresh from the newest document timestamp, so an
        old snapshot still goes stale on schedule.

        Returns:
            Number of documents loaded
        """
        data = Path(path).read_text(encoding="utf-8")
        with self._index_lock.write_locked():
            self.vector_store.import_(data)
            ids = self.vector_store.list()
            if ids:
                newest = max(self.vector_store.get(doc_id).timestamp for doc_id in ids)
                self._indexed = True
                self._last_index_time = newest
            else:
                self._indexed = False
                self._last_index_time = None
        logger.info("Loaded %s documents from %s", len(ids), path)
        return len(ids)

    # Indexing

    def _needs_indexing(self) -> bool:
        if not self._indexed or self._last_index_time is None:
            return True
        return self._clock() - self._last_index_time > STALENESS_WINDOW

    def _ensure_indexed(self, ctx: CallContext) -> None:
        with self._index_lock.read_locked():
            needs_indexing = self._needs_indexing()
        if not needs_indexing:
            return

        with self._index_lock.write_locked():
            # Another caller may have re-indexed while we waited
            if self._needs_indexing():
                self._reindex(ctx)

    def _reindex(self, ctx: CallContext) -> dict:
        if not self.llm_client.supports_embeddings():
            raise EmbeddingsUnsupportedError("LLM client does not support embeddings")

        start = time.time()
        logger.info("Indexing workspace %s", self.workspace_root)

        self.vector_store.clear()
        files = self._get_source_files()

        files_indexed = 0
        chunks_indexed = 0
        for file_path in files:
            ctx.check("indexing")
            try:
                added = self._index_file(file_path, ctx)
            except OperationCancelledError:
                raise
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Skipping unreadable file %s: %s", file_path, e)
                continue
            if added:
                files_indexed += 1
                chunks_indexed += added

        self._indexed = True
        self._last_index_time = self._clock()

        elapsed = time.time() - start
        logger.info("Index built: %s files, %s chunks in %.1fs", files_indexed, chunks_indexed, elapsed)
        return {
            "files_indexed": files_indexed,
            "chunks_indexed": chunks_indexed,
            "time_taken": elapsed,
        }

    def _get_source_files(self) -> list[Path]:
        try:
            return [
                path for path in walk_workspace(self.workspace_root)
                if path.suffix.lower() in SOURCE_EXTENSIONS
            ]
        except OSError as e:
            raise IndexingError(f"failed to get source files: {e}") from e

    def _index_file(self, file_path: Path, ctx: CallContext) -> int:
        """Chunk and embed one file; returns the number of chunks stored."""
        content = file_path.read_text(encoding="utf-8")
        if len(content) > MAX_INDEX_FILE_CHARS:
            logger.debug("Skipping large file %s (%s chars)", file_path, len(content))
            return 0

        rel_path = file_path.relative_to(self.workspace_root).as_posix()
        stored = 0
        for chunk in self.chunker.chunk_text(content):
            ctx.check("indexing")
            chunk = chunk.with_metadata(file_path=rel_path)
            try:
                embedding = self.llm_client.embed(chunk.content)
                self.vector_store.add_chunk(chunk, embedding)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.debug("Skipping chunk %s of %s: %s", chunk.chunk_index, rel_path, e)
                continue
            stored += 1
        return stored

    # Search strategies

    def _vector_search(self, query: str, max_results: int) -> list[ContextPiece]:
        query_embedding = self.llm_client.embed(query)
        results = self.vector_store.search(query_embedding, max_results * 2)

        pieces = []
        for result in results[:max_results]:
            metadata = result.document.metadata
            pieces.append(ContextPiece(
                file_path=str(metadata.get("file_path", "")),
                content=result.document.content,
                start_line=int(metadata.get("start_line", 0)),
                end_line=int(metadata.get("end_line", 0)),
                relevance=result.similarity,
                kind="chunk",
                metadata=dict(metadata),
            ))
        return pieces

    def _llm_assisted_search(self, query: str, max_results: int, ctx: CallContext) -> list[ContextPiece]:
        basic_context = self.get_basic_context()
        ctx.check("fallback search")

        prompt = FALLBACK_PROMPT.format(query=query, file_structure=basic_context.file_structure)
        response = self.llm_client.generate(self.model_name, prompt, FALLBACK_SYSTEM_PROMPT)

        selections = [line for line in response.strip().splitlines() if line.strip()]
        pieces = []
        for line in selections[:max_results]:
            ctx.check("fallback search")
            file_path, explanation = _parse_file_selection(line)
            if not file_path:
                continue
            piece = self._read_selected_file(file_path, explanation)
            if piece is not None:
                pieces.append(piece)
        return pieces

    def _read_selected_file(self, file_path: str, explanation: str) -> Optional[ContextPiece]:
        full_path = (self.workspace_root / file_path).resolve()
        if not full_path.is_relative_to(self.workspace_root):
            logger.debug("Ignoring path outside workspace: %s", file_path)
            return None
        try:
            content = full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable file %s: %s", file_path, e)
            return None

        if len(content) > FALLBACK_CHUNK_THRESHOLD:
            chunks = self.chunker.chunk_text(content)
            if chunks:
                best_chunk, best_score = self._best_chunk(chunks, explanation)
                return ContextPiece(
                    file_path=file_path,
                    content=best_chunk.content,
                    start_line=best_chunk.start_line,
                    end_line=best_chunk.end_line,
                    relevance=best_score,
                    kind="chunk",
                    summary=explanation,
                )

        return ContextPiece(
            file_path=file_path,
            content=content,
            relevance=FALLBACK_FILE_RELEVANCE,
            kind="file",
            summary=explanation,
        )

    @staticmethod
    def _best_chunk(chunks: list[TextChunk], explanation: str) -> tuple[TextChunk, float]:
        best_chunk, best_score = chunks[0], 0.0
        for chunk in chunks:
            score = calculate_relevance(chunk.content, explanation)
            if score > best_score:
                best_chunk, best_score = chunk, score
        return best_chunk, best_score

    # Cache

    def _get_cached_context(self, query: str) -> Optional[CachedContext]:
        with self._cache_lock.read_locked():
            cached = self._cache.get(query)
            if cached is None:
                return None
            if self._clock() - cached.timestamp <= self.options.cache_timeout:
                return cached

        # Expired: purge under the exclusive lock unless it was replaced meanwhile
        with self._cache_lock.write_locked():
            if self._cache.get(query) is cached:
                del self._cache[query]
        return None

    def _cache_context(self, query: str, content: str, pieces: list[ContextPiece]) -> None:
        entry = CachedContext(
            content=content,
            timestamp=self._clock(),
            query=query,
            result_count=len(pieces),
            pieces=tuple(_copy_piece(p) for p in pieces),
        )
        with self._cache_lock.write_locked():
            if len(self._cache) >= self.options.max_cache_size:
                self._evict_oldest_entry()
            self._cache[query] = entry

    def _evict_oldest_entry(self) -> None:
        # Oldest by insertion time; lookups do not refresh entries
        if not self._cache:
            return
        oldest_key = min(self._cache, key=lambda key: self._cache[key].timestamp)
        del self._cache[oldest_key]
