"""Storage providers for persistent files and checkpoints."""

from .providers.sqlite import SQLiteKeyValueStore

__all__ = ["SQLiteKeyValueStore"]
