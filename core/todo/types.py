"""Type definitions for the todo list."""

from enum import Enum

from pydantic import BaseModel


class TodoStatus(str, Enum):
    """Todo status enum."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TodoItem(BaseModel):
    """One planned unit of work."""

    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING

    def to_summary(self) -> str:
        marker = {
            TodoStatus.PENDING: "[ ]",
            TodoStatus.IN_PROGRESS: "[~]",
            TodoStatus.COMPLETED: "[x]",
            TodoStatus.CANCELLED: "[-]",
        }[self.status]
        return f"{marker} {self.id}: {self.content}"
