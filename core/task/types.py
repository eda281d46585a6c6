"""Type definitions for Task middleware.

Subagent configuration lives in config.types and is re-exported here.
"""

from typing import Literal, NotRequired, TypedDict

from pydantic import BaseModel

from config.types import AgentConfig


class TaskParams(TypedDict):
    """Parameters for task tool call."""

    description: str
    subagent_type: str
    max_steps: NotRequired[int]


class TaskResult(BaseModel):
    """Result from task execution."""

    task_id: str
    subagent_type: str
    status: Literal["completed", "error", "timeout"]
    result: str | None = None
    error: str | None = None
    description: str | None = None
    steps_used: int = 0

    def to_tool_content(self) -> str:
        if self.status == "completed":
            return self.result or "Task completed successfully."
        if self.status == "timeout":
            return f"Error: subagent {self.subagent_type} stopped before finishing: {self.error}"
        return f"Error executing subagent: {self.error}"


__all__ = ["AgentConfig", "TaskParams", "TaskResult"]
