"""Context retrieval tool for agents.

This module provides both:
1. A library function `perform_context_retrieval()` that can be called directly
2. A LangChain tool `retrieve_context` that wraps it for agent use

One ContextManager is kept per workspace root so the index and cache survive
across tool calls.
"""

import fnmatch
import threading
from pathlib import Path

from langchain_core.tools import tool

from ..config import config
from ..logging_config import get_logger
from ..llm import get_llm_client
from ..rag.manager import ContextManager, ContextOptions, format_context_pieces
from ..workspace import get_workspace_root

logger = get_logger(__name__)

_managers: dict[Path, ContextManager] = {}
_managers_lock = threading.Lock()


def get_context_manager(repo_root: Path | str | None = None) -> ContextManager:
    """Return the shared ContextManager for a workspace, creating it on first use."""
    root = Path(repo_root or get_workspace_root()).resolve()
    with _managers_lock:
        manager = _managers.get(root)
        if manager is None:
            manager = ContextManager(
                workspace_root=root,
                llm_client=get_llm_client(),
                model_name=config["llm"]["model"],
                options=ContextOptions.from_config(),
            )
            _managers[root] = manager
        return manager


def set_context_manager(manager: ContextManager) -> None:
    """Register a pre-built manager for its workspace root."""
    with _managers_lock:
        _managers[manager.workspace_root] = manager


def reset_context_managers() -> None:
    with _managers_lock:
        _managers.clear()


def perform_context_retrieval(
    query: str,
    max_results: int = 5,
    file_filter: str | None = None,
    include_summaries: bool = False,
    repo_root: Path | str | None = None,
) -> str:
    """Retrieve context and return it formatted for a prompt.

    Args:
        query: Natural language description of what to find
        max_results: Maximum number of context pieces
        file_filter: Optional glob applied to piece paths (e.g. "*.py", "internal/*")
        include_summaries: Summarize pieces too large to show in full
        repo_root: Workspace root (defaults to the process workspace root)

    Returns:
        Formatted context, or an error message
    """
    try:
        manager = get_context_manager(repo_root)
        response = manager.retrieve_context(query, max_results)

        if not file_filter and not include_summaries:
            return response.content

        pieces = response.pieces
        if file_filter:
            pieces = [p for p in pieces if fnmatch.fnmatch(p.file_path, file_filter)]
            if not pieces:
                return f"No context matching {file_filter} found for query: {query}"
        if include_summaries:
            pieces = [manager.summarize_piece(p) for p in pieces]
        return format_context_pieces(pieces)
    except Exception as e:
        logger.warning("Context retrieval failed: %s", e)
        return f"Context retrieval error: {e}"


@tool
def retrieve_context(
    query: str,
    max_results: int = 5,
    file_filter: str | None = None,
    include_summaries: bool = False,
) -> str:
    """Fetch relevant context from the codebase (code chunks or whole files) for a natural language query.

    Use this before answering questions about how the codebase works, or to find
    existing patterns to follow.

    Args:
        query: Natural language query describing what context to retrieve
        max_results: Maximum number of context pieces to return
        file_filter: Optional file path pattern to filter results (e.g. "*.go", "internal/*")
        include_summaries: Replace very long pieces with summaries

    Returns:
        Markdown transcript with file paths, line ranges and content
    """
    return perform_context_retrieval(
        query=query,
        max_results=max_results,
        file_filter=file_filter,
        include_summaries=include_summaries,
    )
