"""
Approval Middleware - Human-in-the-loop gate for selected tools

interrupt_on maps tool names to either a bool or a predicate over the call
arguments. When a gated call comes in:
- with an approver callback, the callback decides and the call runs or is rejected
- without one, ApprovalRequiredError stops the turn so it can be checkpointed
  and resumed later with an approve or deny decision
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
    ToolCallRequest,
)
from langchain_core.messages import ToolMessage

from core.errors import ApprovalRequiredError
from core.events import APPROVAL_REQUESTED, APPROVAL_RESPONSE, EventCallback, emit

logger = logging.getLogger(__name__)

ApprovalRule = bool | Callable[[dict[str, Any]], bool]
ApprovalCallback = Callable[[dict[str, Any]], bool]

REJECTED_TOOL_RESULT = "Tool call {name} was rejected by the user."


def rejection_message(tool_call: dict) -> ToolMessage:
    name = tool_call.get("name", "")
    return ToolMessage(
        content=REJECTED_TOOL_RESULT.format(name=name),
        tool_call_id=tool_call.get("id", ""),
        name=name,
        status="error",
    )


class ApprovalMiddleware(AgentMiddleware):
    """Gate tool calls listed in ``interrupt_on`` behind an approval decision."""

    def __init__(
        self,
        interrupt_on: Mapping[str, ApprovalRule] | None = None,
        on_approval_request: ApprovalCallback | None = None,
        on_event: EventCallback | None = None,
    ):
        self.interrupt_on = {name: rule for name, rule in (interrupt_on or {}).items() if rule is not False}
        self.on_approval_request = on_approval_request
        self.on_event = on_event

    def requires_approval(self, tool_call: dict) -> bool:
        rule = self.interrupt_on.get(tool_call.get("name", ""))
        if rule is None:
            return False
        if callable(rule):
            return bool(rule(tool_call.get("args", {})))
        return bool(rule)

    def _check(self, tool_call: dict) -> ToolMessage | None:
        """None means the call may run; a ToolMessage is the rejection result."""
        if not self.requires_approval(tool_call):
            return None

        approval_id = uuid.uuid4().hex[:12]
        emit(
            self.on_event,
            APPROVAL_REQUESTED,
            approval_id=approval_id,
            tool_call_id=tool_call.get("id", ""),
            tool_name=tool_call.get("name", ""),
            args=tool_call.get("args", {}),
        )
        if self.on_approval_request is None:
            raise ApprovalRequiredError(tool_call)

        approved = bool(self.on_approval_request(tool_call))
        emit(self.on_event, APPROVAL_RESPONSE, approval_id=approval_id, approved=approved)
        if approved:
            return None
        logger.info("Tool call %s rejected", tool_call.get("name"))
        return rejection_message(tool_call)

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

    def wrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Any],
    ) -> Any:
        rejected = self._check(request.tool_call)
        return rejected if rejected is not None else handler(request)

    async def awrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Awaitable[Any]],
    ) -> Any:
        rejected = self._check(request.tool_call)
        return rejected if rejected is not None else await handler(request)


__all__ = ["ApprovalMiddleware", "rejection_message", "REJECTED_TOOL_RESULT"]
