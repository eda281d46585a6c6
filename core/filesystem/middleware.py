"""
FileSystem Middleware - File operations over a pluggable backend

Tools (pure Middleware implementation):
- ls: List directory
- read_file: Read file (numbered lines, offset/limit paging)
- write_file: Create or overwrite file
- edit_file: Edit file (str_replace mode)
- glob: Find files by pattern
- grep: Search file contents by regex

Backend errors come back to the model as "Error: ..." tool results.
Sandbox violations are never converted and always propagate.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
    ToolCallRequest,
)
from langchain_core.messages import ToolMessage

from core.backends.protocol import BackendProtocol
from core.backends.utils import DEFAULT_READ_LIMIT
from core.errors import DeepStateError, SandboxViolationError
from core.events import (
    FILE_EDITED,
    FILE_READ,
    FILE_WRITE_START,
    FILE_WRITTEN,
    GLOB,
    GREP,
    LS,
    EventCallback,
    emit,
)

logger = logging.getLogger(__name__)

MAX_GREP_LINE_CHARS = 500


class FileSystemMiddleware(AgentMiddleware):
    """FileSystem Middleware - file tools backed by any BackendProtocol."""

    TOOL_LS = "ls"
    TOOL_READ_FILE = "read_file"
    TOOL_WRITE_FILE = "write_file"
    TOOL_EDIT_FILE = "edit_file"
    TOOL_GLOB = "glob"
    TOOL_GREP = "grep"

    ALL_TOOLS = (TOOL_LS, TOOL_READ_FILE, TOOL_WRITE_FILE, TOOL_EDIT_FILE, TOOL_GLOB, TOOL_GREP)

    def __init__(
        self,
        backend: BackendProtocol,
        *,
        enabled_tools: dict[str, bool] | None = None,
        on_event: EventCallback | None = None,
    ):
        """Initialize filesystem middleware.

        Args:
            backend: Storage the tools operate on
            enabled_tools: Per-tool switches (missing tools default to enabled)
            on_event: Optional observer for file events
        """
        self.backend = backend
        self.enabled_tools = {name: True for name in self.ALL_TOOLS}
        if enabled_tools:
            self.enabled_tools.update(enabled_tools)
        self.on_event = on_event

    def _run(self, operation: str, fn: Callable[[], str]) -> str:
        try:
            return fn()
        except SandboxViolationError:
            raise
        except DeepStateError as e:
            logger.debug("%s failed: %s", operation, e)
            return f"Error: {e}"

    # ------------------------------------------------------------------
    # Tool implementations
    # ------------------------------------------------------------------

    def _ls_impl(self, path: str = "/") -> str:
        def op() -> str:
            infos = self.backend.ls_info(path)
            emit(self.on_event, LS, path=path, count=len(infos))
            if not infos:
                return f"No files found in {path}"
            lines = []
            for info in infos:
                if info.is_dir:
                    lines.append(info.path)
                else:
                    lines.append(f"{info.path} ({info.size} bytes)")
            return "\n".join(lines)

        return self._run(self.TOOL_LS, op)

    def _read_file_impl(self, file_path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        def op() -> str:
            content = self.backend.read(file_path, offset, limit)
            emit(self.on_event, FILE_READ, path=file_path, offset=offset, limit=limit)
            return content

        return self._run(self.TOOL_READ_FILE, op)

    def _write_file_impl(self, file_path: str, content: str) -> str:
        def op() -> str:
            emit(self.on_event, FILE_WRITE_START, path=file_path, content=content)
            self.backend.write(file_path, content)
            emit(self.on_event, FILE_WRITTEN, path=file_path, content=content)
            return f"Successfully wrote to {file_path}"

        return self._run(self.TOOL_WRITE_FILE, op)

    def _edit_file_impl(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> str:
        def op() -> str:
            result = self.backend.edit(file_path, old_string, new_string, replace_all)
            emit(self.on_event, FILE_EDITED, path=file_path, occurrences=result.occurrences)
            return f"Successfully replaced {result.occurrences} occurrence(s) in {file_path}"

        return self._run(self.TOOL_EDIT_FILE, op)

    def _glob_impl(self, pattern: str, path: str = "/") -> str:
        def op() -> str:
            paths = self.backend.glob(pattern, path)
            emit(self.on_event, GLOB, pattern=pattern, path=path, count=len(paths))
            if not paths:
                return f"No files found matching pattern '{pattern}'"
            return "\n".join(paths)

        return self._run(self.TOOL_GLOB, op)

    def _grep_impl(self, pattern: str, path: str = "/", glob: str | None = None) -> str:
        def op() -> str:
            matches = self.backend.grep(pattern, path, glob)
            emit(self.on_event, GREP, pattern=pattern, path=path, count=len(matches))
            if not matches:
                return f"No matches found for pattern '{pattern}'"
            return "\n".join(f"{m.path}:{m.line}: {m.text[:MAX_GREP_LINE_CHARS]}" for m in matches)

        return self._run(self.TOOL_GREP, op)

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def _get_tool_schemas(self) -> list[dict]:
        """Tool schemas for the enabled tools (sync/async shared)."""
        schemas = {
            self.TOOL_LS: {
                "description": "List files and directories directly under a path. Directories end with '/'.",
                "properties": {
                    "path": {"type": "string", "description": "Directory path (default '/')"},
                },
                "required": [],
            },
            self.TOOL_READ_FILE: {
                "description": (
                    "Read a file. Returns lines prefixed with line numbers. "
                    "Use offset and limit to page through large files."
                ),
                "properties": {
                    "file_path": {"type": "string", "description": "Absolute file path (e.g. /notes.md)"},
                    "offset": {"type": "integer", "description": "Line to start from (0-indexed, default 0)"},
                    "limit": {"type": "integer", "description": f"Max lines to read (default {DEFAULT_READ_LIMIT})"},
                },
                "required": ["file_path"],
            },
            self.TOOL_WRITE_FILE: {
                "description": "Create a file, or overwrite it if it already exists.",
                "properties": {
                    "file_path": {"type": "string", "description": "Absolute file path (e.g. /notes.md)"},
                    "content": {"type": "string", "description": "Full file content"},
                },
                "required": ["file_path", "content"],
            },
            self.TOOL_EDIT_FILE: {
                "description": (
                    "Edit an existing file using exact string replacement. "
                    "old_string must match the file content exactly and be unique, "
                    "unless replace_all is true."
                ),
                "properties": {
                    "file_path": {"type": "string", "description": "Absolute file path (e.g. /notes.md)"},
                    "old_string": {"type": "string", "description": "Exact text to replace"},
                    "new_string": {"type": "string", "description": "Replacement text"},
                    "replace_all": {"type": "boolean", "description": "Replace every occurrence (default false)"},
                },
                "required": ["file_path", "old_string", "new_string"],
            },
            self.TOOL_GLOB: {
                "description": "Find files whose path (relative to 'path') matches a glob pattern, e.g. '**/*.py'.",
                "properties": {
                    "pattern": {"type": "string", "description": "Glob pattern"},
                    "path": {"type": "string", "description": "Directory to search (default '/')"},
                },
                "required": ["pattern"],
            },
            self.TOOL_GREP: {
                "description": "Search file contents with a regular expression. Returns path:line: text for each match.",
                "properties": {
                    "pattern": {"type": "string", "description": "Regular expression"},
                    "path": {"type": "string", "description": "Directory or file to search (default '/')"},
                    "glob": {"type": "string", "description": "Only search files matching this glob (e.g. '*.py')"},
                },
                "required": ["pattern"],
            },
        }
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": spec["description"],
                    "parameters": {
                        "type": "object",
                        "properties": spec["properties"],
                        "required": spec["required"],
                    },
                },
            }
            for name, spec in schemas.items()
            if self.enabled_tools.get(name)
        ]

    def wrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], ModelResponse],
    ) -> ModelResponse:
        """Inject filesystem tool definitions."""
        tools = list(request.tools or [])
        tools.extend(self._get_tool_schemas())
        return handler(request.override(tools=tools))

    async def awrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        """Inject filesystem tool definitions (async)."""
        tools = list(request.tools or [])
        tools.extend(self._get_tool_schemas())
        return await handler(request.override(tools=tools))

    def _handle_tool_call(self, tool_call: dict) -> ToolMessage | None:
        """Handle filesystem tool calls. Returns ToolMessage if handled, None otherwise."""
        tool_name = tool_call.get("name")
        if tool_name not in self.ALL_TOOLS or not self.enabled_tools.get(tool_name):
            return None

        args = tool_call.get("args", {})
        tool_call_id = tool_call.get("id", "")

        if tool_name == self.TOOL_LS:
            result = self._ls_impl(path=args.get("path") or "/")
        elif tool_name == self.TOOL_READ_FILE:
            result = self._read_file_impl(
                file_path=args.get("file_path", ""),
                offset=args.get("offset") or 0,
                limit=args.get("limit") or DEFAULT_READ_LIMIT,
            )
        elif tool_name == self.TOOL_WRITE_FILE:
            result = self._write_file_impl(file_path=args.get("file_path", ""), content=args.get("content", ""))
        elif tool_name == self.TOOL_EDIT_FILE:
            result = self._edit_file_impl(
                file_path=args.get("file_path", ""),
                old_string=args.get("old_string", ""),
                new_string=args.get("new_string", ""),
                replace_all=bool(args.get("replace_all", False)),
            )
        elif tool_name == self.TOOL_GLOB:
            result = self._glob_impl(pattern=args.get("pattern", ""), path=args.get("path") or "/")
        else:
            result = self._grep_impl(
                pattern=args.get("pattern", ""),
                path=args.get("path") or "/",
                glob=args.get("glob"),
            )

        return ToolMessage(content=result, tool_call_id=tool_call_id, name=tool_name)

    def wrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Any],
    ) -> Any:
        """Intercept and handle filesystem tool calls."""
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else handler(request)

    async def awrap_tool_call(
        self,
        request: ToolCallRequest,
        handler: Callable[[ToolCallRequest], Awaitable[Any]],
    ) -> Any:
        """Intercept and handle filesystem tool calls (async)."""
        result = self._handle_tool_call(request.tool_call)
        return result if result is not None else await handler(request)


__all__ = ["FileSystemMiddleware"]
