"""In-memory vector store with cosine-similarity search."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

import numpy as np

from ..errors import DimensionMismatchError, SnapshotError
from ..locks import ReadWriteLock
from .chunker import TextChunk


@dataclass
class Document:
    """A stored text with its normalized embedding."""

    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": self.embedding,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            id=data["id"],
            content=data["content"],
            embedding=[float(v) for v in data["embedding"]],
            metadata=dict(data.get("metadata") or {}),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class SearchResult:
    document: Document
    similarity: float


def normalize_vector(vector: Sequence[float]) -> np.ndarray:
    """Scale a vector to unit L2 norm; a zero vector is returned as-is."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr
    return arr / norm


def matches_metadata(metadata: dict[str, Any], criteria: dict[str, Any]) -> bool:
    """True when every criteria key is present in metadata with an equal value."""
    for key, expected in criteria.items():
        if key not in metadata or metadata[key] != expected:
            return False
    return True


class VectorStore:
    """Stores (content, embedding, metadata) and answers nearest-neighbour queries.

    Search is an exhaustive scan over all documents, which is fine for a single
    workspace held for the lifetime of one process. The dimension is fixed by
    the constructor or, when 0, by the first insert.
    """

    def __init__(self, dimension: int = 0) -> None:
        if dimension < 0:
            raise ValueError(f"dimension must not be negative, got {dimension}")
        self._documents: dict[str, Document] = {}
        self._dimension = dimension
        self._lock = ReadWriteLock()

    @property
    def dimension(self) -> int:
        with self._lock.read_locked():
            return self._dimension

    def add(
        self,
        id: str,
        content: str,
        embedding: Sequence[float],
        metadata: Optional[dict[str, Any]] = None,
    ) -> Document:
        """Store a document, replacing any document with the same id.

        Raises:
            DimensionMismatchError: embedding length differs from the store dimension
        """
        if len(embedding) == 0:
            raise DimensionMismatchError(self._dimension, 0)

        normalized = normalize_vector(embedding)

        with self._lock.write_locked():
            if self._dimension and len(embedding) != self._dimension:
                raise DimensionMismatchError(self._dimension, len(embedding))
            if not self._dimension:
                self._dimension = len(embedding)

            doc = Document(
                id=id,
                content=content,
                embedding=normalized.tolist(),
                metadata=dict(metadata or {}),
            )
            self._documents[id] = doc
            return doc

    def add_chunk(self, chunk: TextChunk, embedding: Sequence[float]) -> Document:
        """Store a text chunk; its id is derived from chunk index and file path."""
        metadata: dict[str, Any] = {
            "start_line": chunk.start_line,
            "end_line": chunk.end_line,
            "chunk_index": chunk.chunk_index,
        }
        metadata.update(chunk.metadata)

        doc_id = f"chunk_{chunk.chunk_index}_{chunk.metadata.get('file_path', '')}"
        return self.add(doc_id, chunk.content, embedding, metadata)

    def search(self, query_embedding: Sequence[float], limit: int = 10) -> list[SearchResult]:
        """Rank every document by cosine similarity to the query.

        Args:
            query_embedding: Query vector (need not be normalized)
            limit: Maximum number of results; <= 0 means all

        Returns:
            Results in descending similarity order
        """
        return self.search_with_filter(query_embedding, limit, None)

    def search_with_filter(
        self,
        query_embedding: Sequence[float],
        limit: int = 10,
        metadata_filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """Like search, restricted to documents matching metadata_filter."""
        with self._lock.read_locked():
            if not self._documents:
                return []

            if len(query_embedding) != self._dimension:
                raise DimensionMismatchError(
                    self._dimension, len(query_embedding), operation="query embedding"
                )

            candidates = [
                doc for doc in self._documents.values()
                if not metadata_filter or matches_metadata(doc.metadata, metadata_filter)
            ]
            if not candidates:
                return []

            query = normalize_vector(query_embedding)
            matrix = np.asarray([doc.embedding for doc in candidates], dtype=np.float64)

        similarities = np.clip(matrix @ query, -1.0, 1.0)
        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-similarities, kind="stable")
        if limit > 0:
            order = order[:limit]

        return [
            SearchResult(document=candidates[i], similarity=float(similarities[i]))
            for i in order
        ]

    def search_by_text(
        self,
        text: str,
        embed_fn: Callable[[str], Sequence[float]],
        limit: int = 10,
    ) -> list[SearchResult]:
        """Embed text with embed_fn and search with the result."""
        return self.search(embed_fn(text), limit)

    def filter_by_metadata(self, criteria: dict[str, Any]) -> list[Document]:
        with self._lock.read_locked():
            return [
                doc for doc in self._documents.values()
                if matches_metadata(doc.metadata, criteria)
            ]

    def get(self, id: str) -> Optional[Document]:
        with self._lock.read_locked():
            return self._documents.get(id)

    def delete(self, id: str) -> bool:
        """Remove a document; returns whether it existed."""
        with self._lock.write_locked():
            return self._documents.pop(id, None) is not None

    def list(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._documents)

    def count(self) -> int:
        with self._lock.read_locked():
            return len(self._documents)

    def clear(self) -> None:
        """Remove all documents. The dimension stays fixed."""
        with self._lock.write_locked():
            self._documents = {}

    def export(self) -> str:
        """Serialize the whole store as JSON: {"documents": {...}, "dimension": n}."""
        with self._lock.read_locked():
            data = {
                "documents": {doc_id: doc.to_dict() for doc_id, doc in self._documents.items()},
                "dimension": self._dimension,
            }
        return json.dumps(data)

    def import_(self, data: str | bytes) -> None:
        """Replace the store contents with a snapshot produced by export().

        Raises:
            SnapshotError: data is not a valid snapshot; the store is unchanged
        """
        try:
            raw = json.loads(data)
            dimension = int(raw["dimension"])
            documents = {
                doc_id: Document.from_dict(doc)
                for doc_id, doc in raw["documents"].items()
            }
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise SnapshotError(f"failed to decode vector store snapshot: {e}") from e

        for doc in documents.values():
            if len(doc.embedding) != dimension:
                raise SnapshotError(
                    f"document {doc.id!r} has dimension {len(doc.embedding)}, snapshot says {dimension}"
                )
            norm = np.linalg.norm(doc.embedding)
            # Exported vectors are already unit length and must round-trip unchanged
            if norm and not np.isclose(norm, 1.0):
                doc.embedding = (np.asarray(doc.embedding) / norm).tolist()

        with self._lock.write_locked():
            self._documents = documents
            self._dimension = dimension
