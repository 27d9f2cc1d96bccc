"""Agent-facing tools and workspace helpers.

Import submodules directly (e.g. ``from workspace_context.tools.rag import
retrieve_context``); the rag tool depends on the rag package, which itself
uses the git and ignore helpers here.
"""
