"""Workspace context retrieval: chunking, vector search, caching and fallback search.

ContextManager is the entry point; the other modules are its building blocks.
"""

from .chunker import Chunker, ChunkOptions, ChunkStrategy, TextChunk
from .vectorstore import Document, SearchResult, VectorStore
from .summarizer import Summarizer, SummaryOptions
from .gatherer import ContextInfo, Gatherer
from .manager import (
    ContextManager,
    ContextOptions,
    ContextPiece,
    ContextResponse,
    format_context_pieces,
)

__all__ = [
    "Chunker",
    "ChunkOptions",
    "ChunkStrategy",
    "TextChunk",
    "Document",
    "SearchResult",
    "VectorStore",
    "Summarizer",
    "SummaryOptions",
    "ContextInfo",
    "Gatherer",
    "ContextManager",
    "ContextOptions",
    "ContextPiece",
    "ContextResponse",
    "format_context_pieces",
]
