"""Conversation state: todos plus the shared virtual file map."""

from core.state.types import AgentState, FileData, merge_subagent_files

__all__ = ["AgentState", "FileData", "merge_subagent_files"]
