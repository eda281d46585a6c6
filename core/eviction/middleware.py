"""Eviction middleware - intercepts oversized tool outputs."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
    ToolCallRequest,
)
from langchain_core.messages import ToolMessage

from core.backends.protocol import BackendProtocol
from core.events import EventCallback
from core.eviction.evict import DEFAULT_TOKEN_LIMIT, evict_tool_result

# Tools that already bound their own output.
TOOLS_EXCLUDED_FROM_EVICTION: frozenset[str] = frozenset(
    {"ls", "glob", "grep", "read_file", "edit_file", "write_file"}
)


class EvictionMiddleware(AgentMiddleware):
    """Replaces tool results above ``token_limit`` with a placeholder.

    The full result is written to ``/large_tool_results/{tool_call_id}`` on
    the given backend so the model can page through it with ``read_file``.
    """

    def __init__(
        self,
        backend: BackendProtocol,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        excluded_tools: Iterable[str] | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self.backend = backend
        self.token_limit = token_limit
        self.excluded_tools = (
            frozenset(excluded_tools) if excluded_tools is not None else TOOLS_EXCLUDED_FROM_EVICTION
        )
        self.on_event = on_event

    # -- model call: pass-through ------------------------------------------

    def wrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], ModelResponse],
    ) -> ModelResponse:
        return handler(request)

    async def awrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        return await handler(request)

    # -- tool call: evict if needed ----------------------------------------

    def process_result(self, tool_call: dict, result: ToolMessage) -> ToolMessage:
        """Shared logic for sync/async tool-call wrappers."""
        tool_name = tool_call.get("name", "")
        if tool_name in self.excluded_tools:
            return result

        outcome = evict_tool_result(
            result.content,
            tool_call_id=result.tool_call_id or tool_call.get("id", "unknown"),
            backend=self.backend,
            token_limit=self.token_limit,
            tool_name=tool_name,
            on_event=self.on_event,
        )
        if not outcome.evicted:
            return result
        return ToolMessage(
            content=outcome.content,
            tool_call_id=result.tool_call_id,
            name=result.name,
            status=result.status,
        )

    def wrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], ToolMessage],
    ) -> ToolMessage:
        result = handler(request)
        if isinstance(result, ToolMessage):
            return self.process_result(request.tool_call, result)
        return result

    async def awrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Awaitable[ToolMessage]],
    ) -> ToolMessage:
        result = await handler(request)
        if isinstance(result, ToolMessage):
            return self.process_result(request.tool_call, result)
        return result
