"""Conversation memory: tool-call patching and summarization."""

from core.memory.middleware import MemoryMiddleware
from core.memory.patch import has_dangling_tool_calls, patch_tool_calls
from core.memory.summarization import (
    SummarizationResult,
    asummarize_if_needed,
    estimate_messages_tokens,
    needs_summarization,
    summarize_if_needed,
)

__all__ = [
    "MemoryMiddleware",
    "SummarizationResult",
    "asummarize_if_needed",
    "estimate_messages_tokens",
    "has_dangling_tool_calls",
    "needs_summarization",
    "patch_tool_calls",
    "summarize_if_needed",
]
