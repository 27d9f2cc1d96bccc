"""Cancellable, deadline-bearing call context for long-running operations.

Indexing and fallback search poll the context between units of work
(files, chunks) and stop with OperationCancelledError once it is done.
"""

import threading
import time
from typing import Optional

from .errors import OperationCancelledError


class CallContext:
    """Cancellation flag plus an optional monotonic deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def background(cls) -> "CallContext":
        """A context that is never cancelled and has no deadline."""
        return cls()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self._cancelled.is_set() or self.deadline_exceeded

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, stage: str = "operation") -> None:
        """Raise OperationCancelledError if the context is done."""
        if self._cancelled.is_set():
            raise OperationCancelledError(f"{stage} cancelled")
        if self.deadline_exceeded:
            raise OperationCancelledError(f"{stage} deadline exceeded")
