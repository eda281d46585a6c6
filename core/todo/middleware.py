"""
Todo Middleware - Planning and progress tracking

Tools:
- write_todos: Replace the todo list with the given items

Status flow: pending → in_progress → completed (or cancelled)
The list lives in AgentState.todos so it is checkpointed with the thread.
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
from pydantic import ValidationError as PydanticValidationError

from core.events import TODOS_CHANGED, EventCallback, emit

from .types import TodoItem, TodoStatus

if TYPE_CHECKING:
    from core.state.types import AgentState


class TodoMiddleware(AgentMiddleware):
    """
    Todo Middleware - one tool that rewrites the whole plan

    Items without an id get a sequential one. Statuses outside
    pending/in_progress/completed/cancelled are rejected.
    """

    TOOL_WRITE_TODOS = "write_todos"

    def __init__(self, state: AgentState, on_event: EventCallback | None = None):
        self.state = state
        self.on_event = on_event

    def _get_tool_schemas(self) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {
                    "name": self.TOOL_WRITE_TODOS,
                    "description": """Create or update the todo list for the current work.

Use this when:
- Starting a complex multi-step task
- The user provides multiple items to work on
- Progress changes (mark an item in_progress BEFORE starting it, completed only when FULLY done)

The given list replaces the previous one entirely.""",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "todos": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "id": {"type": "string", "description": "Stable identifier"},
                                        "content": {"type": "string", "description": "What needs to be done"},
                                        "status": {
                                            "type": "string",
                                            "enum": [s.value for s in TodoStatus],
                                        },
                                    },
                                    "required": ["content", "status"],
                                },
                            },
                        },
                        "required": ["todos"],
                    },
                },
            },
        ]

    def write_todos(self, todos: list[dict[str, Any]]) -> str:
        items: list[TodoItem] = []
        for i, raw in enumerate(todos, 1):
            if not isinstance(raw, dict):
                return f"Error: todo #{i} must be an object"
            data = {"id": str(i), **raw}
            data["id"] = str(data["id"])
            try:
                items.append(TodoItem.model_validate(data))
            except PydanticValidationError as e:
                return f"Error: invalid todo #{i}: {e.errors()[0].get('msg', e)}"

        self.state.todos = items
        emit(self.on_event, TODOS_CHANGED, todos=[item.model_dump(mode="json") for item in items])

        if not items:
            return "Todo list cleared"
        lines = [item.to_summary() for item in items]
        return "Updated todo list:\n" + "\n".join(lines)

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
        if tool_call.get("name") != self.TOOL_WRITE_TODOS:
            return None
        todos = tool_call.get("args", {}).get("todos", [])
        if not isinstance(todos, list):
            content = "Error: todos must be a list"
        else:
            content = self.write_todos(todos)
        return ToolMessage(content=content, tool_call_id=tool_call.get("id", ""), name=self.TOOL_WRITE_TODOS)

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
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else await handler(request)
