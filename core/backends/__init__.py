"""Pluggable storage backends for the virtual filesystem."""

from core.backends.composite_backend import CompositeBackend
from core.backends.filesystem_backend import FilesystemBackend
from core.backends.persistent_backend import InMemoryStore, KeyValueStore, PersistentBackend
from core.backends.protocol import (
    BackendFactory,
    BackendProtocol,
    EditResult,
    FileInfo,
    GrepMatch,
    WriteResult,
    resolve_backend,
)
from core.backends.state_backend import StateBackend

__all__ = [
    "BackendFactory",
    "BackendProtocol",
    "CompositeBackend",
    "EditResult",
    "FileInfo",
    "FilesystemBackend",
    "GrepMatch",
    "InMemoryStore",
    "KeyValueStore",
    "PersistentBackend",
    "StateBackend",
    "WriteResult",
    "resolve_backend",
]
