"""Pytest configuration and fixtures for context engine testing."""

from pathlib import Path

import pytest

from workspace_context import workspace
from workspace_context.rag.manager import ContextManager, ContextOptions
from workspace_context.testing.fixtures import FakeClock, create_sample_workspace
from workspace_context.testing.mock_llm import create_mock_llm
from workspace_context.tools.rag import reset_context_managers


@pytest.fixture
def mock_llm_factory():
    """Factory for creating mock chat models with scripted responses.

    Example:
        >>> def test_generate(mock_llm_factory):
        ...     chat = mock_llm_factory(["a reply"])
    """
    def _factory(responses):
        return create_mock_llm(responses)
    return _factory


@pytest.fixture
def sample_workspace(tmp_path):
    """Small workspace with two source files, docs and a node_modules directory.

    Returns:
        Path to the workspace root
    """
    return create_sample_workspace(tmp_path / "workspace")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager_factory(sample_workspace, clock):
    """Factory for ContextManagers over sample_workspace using the fake clock.

    Extra keyword arguments become ContextOptions fields.
    """
    def _factory(llm_client, workspace_root: Path | None = None, **options):
        return ContextManager(
            workspace_root=workspace_root or sample_workspace,
            llm_client=llm_client,
            model_name="test-model",
            options=ContextOptions(**options),
            clock=clock,
        )
    return _factory


@pytest.fixture(autouse=True)
def isolated_workspace_state(monkeypatch):
    """Reset the process workspace root and the shared manager registry."""
    monkeypatch.setattr(workspace, "_workspace_root", None)
    reset_context_managers()
    yield
    reset_context_managers()
