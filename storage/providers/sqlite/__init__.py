"""SQLite storage provider implementations."""

from .kv_store import SQLiteKeyValueStore

__all__ = ["SQLiteKeyValueStore"]
