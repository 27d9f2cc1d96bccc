"""Exceptions raised by the context engine."""


class ContextError(Exception):
    """Base class for all context engine errors."""


class ConfigurationError(ContextError):
    """Invalid options or unsupported settings."""


class ChunkConfigError(ConfigurationError):
    """Unsupported chunk strategy or chunk sizes."""


class DimensionMismatchError(ContextError):
    """Embedding length does not match the vector store dimension."""

    def __init__(self, expected: int, actual: int, operation: str = "embedding") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{operation} dimension mismatch: expected {expected}, got {actual}"
        )


class SnapshotError(ContextError):
    """Vector store snapshot could not be decoded."""


class SummarizationError(ContextError):
    """Text could not be summarized."""


class IndexingError(ContextError):
    """Workspace indexing failed as a whole."""


class EmbeddingsUnsupportedError(IndexingError):
    """The LLM client cannot produce embeddings."""


class RetrievalError(ContextError):
    """Every search strategy failed for a query."""


class OperationCancelledError(ContextError):
    """The call context was cancelled or its deadline passed."""
