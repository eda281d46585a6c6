"""Backend contract for the virtual filesystem.

Separates storage mechanism (agent state, local disk, key-value store,
prefix routing) from the tools that consume it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from core.state.types import AgentState, FileData


@dataclass
class FileInfo:
    """Single listing entry."""

    path: str
    is_dir: bool = False
    size: int = 0
    modified_at: str = ""


@dataclass
class GrepMatch:
    """One matching line (1-indexed)."""

    path: str
    line: int
    text: str


@dataclass
class WriteResult:
    path: str


@dataclass
class EditResult:
    path: str
    occurrences: int = 1


@runtime_checkable
class BackendProtocol(Protocol):
    """Uniform file-store operations.

    Implementations:
    - StateBackend: files held in AgentState (ephemeral)
    - FilesystemBackend: real files under a sandboxed root
    - PersistentBackend: files in a KeyValueStore (cross-session)
    - CompositeBackend: longest-prefix routing over other backends

    Errors are raised, not returned: NotFoundError, ConflictError,
    ValidationError, SandboxViolationError.
    """

    def read(self, path: str, offset: int = 0, limit: int = 2000) -> str:
        """Return file content with numbered lines."""
        ...

    def read_raw(self, path: str) -> FileData:
        """Return stored FileData without any formatting."""
        ...

    def write(self, path: str, content: str) -> WriteResult:
        """Create or overwrite a file."""
        ...

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        """Replace the unique occurrence of *old_string* (or every one with replace_all)."""
        ...

    def ls(self, path: str = "/") -> list[str]:
        """Sorted names directly under *path*; directories end with ``/``."""
        ...

    def ls_info(self, path: str = "/") -> list[FileInfo]:
        """Entries directly under *path*, with metadata."""
        ...

    def glob(self, pattern: str, path: str = "/") -> list[str]:
        """Sorted file paths matching *pattern* relative to *path*."""
        ...

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        ...

    def grep(self, pattern: str, path: str = "/", glob: str | None = None) -> list[GrepMatch]:
        """Regex search over file contents."""
        ...


BackendFactory = Callable[["AgentState"], BackendProtocol]


def resolve_backend(backend: BackendProtocol | BackendFactory, state: AgentState) -> BackendProtocol:
    """Return *backend* itself, or build one from *state* if it is a factory."""
    if isinstance(backend, BackendProtocol):
        return backend
    return backend(state)
