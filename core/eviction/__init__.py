"""Eviction - moves oversized tool outputs into backend storage, leaves a placeholder."""

from core.eviction.evict import EvictResult, estimate_tokens, evict_tool_result, sanitize_tool_call_id
from core.eviction.middleware import TOOLS_EXCLUDED_FROM_EVICTION, EvictionMiddleware

__all__ = [
    "EvictResult",
    "EvictionMiddleware",
    "TOOLS_EXCLUDED_FROM_EVICTION",
    "estimate_tokens",
    "evict_tool_result",
    "sanitize_tool_call_id",
]
