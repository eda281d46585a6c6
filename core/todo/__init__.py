"""Todo middleware - planning and progress tracking."""

from .middleware import TodoMiddleware
from .types import TodoItem, TodoStatus

__all__ = ["TodoItem", "TodoMiddleware", "TodoStatus"]
