"""Shared conversation state threaded through a turn.

``AgentState.files`` is the shared-ownership handle for the virtual
filesystem: a forked subagent state holds the *same* dict object, so writes
made by the subagent are visible to the parent while it runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.todo.types import TodoItem


class FileData(BaseModel):
    """File content stored as lines, plus ISO-8601 timestamps."""

    content: list[str] = Field(default_factory=list)
    created_at: str = ""
    modified_at: str = ""

    @property
    def size(self) -> int:
        return len("\n".join(self.content))


@dataclass
class AgentState:
    todos: list[TodoItem] = field(default_factory=list)
    files: dict[str, FileData] = field(default_factory=dict)

    def fork(self) -> AgentState:
        """State for a nested subagent: shared files, independent empty todos."""
        return AgentState(todos=[], files=self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "todos": [todo.model_dump(mode="json") for todo in self.todos],
            "files": {path: fd.model_dump(mode="json") for path, fd in self.files.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> AgentState:
        if not isinstance(data, dict):
            raise ValidationError(f"State must be an object, got {type(data).__name__}")
        missing = [key for key in ("todos", "files") if key not in data]
        if missing:
            raise ValidationError(f"State is missing required fields: {', '.join(missing)}")
        try:
            todos = [TodoItem.model_validate(item) for item in data["todos"]]
            files = {path: FileData.model_validate(fd) for path, fd in data["files"].items()}
        except (PydanticValidationError, AttributeError, TypeError) as e:
            raise ValidationError(f"Invalid state: {e}") from e
        return cls(todos=todos, files=files)


def merge_subagent_files(parent: AgentState, child: AgentState) -> AgentState:
    """Shallow-overwrite the parent's files with the child's (last writer wins per path)."""
    if child.files is not parent.files:
        parent.files.update(child.files)
    return parent
