"""
Task Middleware - Sub-agent orchestration

Tools:
- task: Run a subagent to completion on a fork of the current state

Subagents are configured in code or in .md files with YAML frontmatter
(see config.loader.AgentLoader).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
    ToolCallRequest,
)
from langchain_core.messages import ToolMessage

from core.prompts import get_task_tool_description

from .subagent import SubagentRunner
from .types import TaskParams, TaskResult

if TYPE_CHECKING:
    from core.state.types import AgentState


class TaskMiddleware(AgentMiddleware):
    """
    Task Middleware - one blocking tool that delegates to SubagentRunner

    Subagents run one at a time. Files they write land in the shared state
    immediately; their todos stay private.
    """

    TOOL_TASK = "task"

    def __init__(self, runner: SubagentRunner, state: AgentState):
        self.runner = runner
        self.state = state

    def _get_tool_schemas(self) -> list[dict]:
        agent_names = sorted(self.runner.agents)
        if not agent_names:
            return []
        return [
            {
                "type": "function",
                "function": {
                    "name": self.TOOL_TASK,
                    "description": get_task_tool_description(self.runner.descriptions()),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "description": {
                                "type": "string",
                                "description": "Detailed, self-contained task for the subagent",
                            },
                            "subagent_type": {
                                "type": "string",
                                "enum": agent_names,
                                "description": "The type of subagent to launch",
                            },
                        },
                        "required": ["description", "subagent_type"],
                    },
                },
            },
        ]

    def run_task(self, params: TaskParams, tool_call_id: str | None = None) -> TaskResult:
        return self.runner.run(
            self.state,
            params.get("subagent_type", ""),
            params.get("description", ""),
            tool_call_id=tool_call_id,
            max_steps=params.get("max_steps"),
        )

    def wrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], ModelResponse],
    ) -> ModelResponse:
        tools = list(request.tools or [])
        tools.extend(self._get_tool_schemas())
        return handler(request.override(tools=tools))

    async def awrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        tools = list(request.tools or [])
        tools.extend(self._get_tool_schemas())
        return await handler(request.override(tools=tools))

    def _handle_tool_call(self, tool_call: dict) -> ToolMessage | None:
        if tool_call.get("name") != self.TOOL_TASK:
            return None
        args = tool_call.get("args", {})
        tool_call_id = tool_call.get("id", "")
        if not args.get("description"):
            return ToolMessage(
                content="Error: description is required",
                tool_call_id=tool_call_id,
                name=self.TOOL_TASK,
            )
        result = self.run_task(args, tool_call_id=tool_call_id)
        return ToolMessage(
            content=result.to_tool_content(),
            tool_call_id=tool_call_id,
            name=self.TOOL_TASK,
        )

    def wrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Any],
    ) -> Any:
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else handler(request)

    async def awrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Awaitable[Any]],
    ) -> Any:
        # Subagents run synchronously even on the async path
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else await handler(request)


__all__ = ["TaskMiddleware"]
