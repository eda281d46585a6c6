"""Checkpoint store - save/restore a thread's history, state and step counter."""

from core.checkpoint.base import BaseCheckpointSaver
from core.checkpoint.file_saver import FileSaver
from core.checkpoint.kv_saver import KeyValueSaver
from core.checkpoint.memory_saver import MemorySaver
from core.checkpoint.types import Checkpoint, InterruptData

__all__ = [
    "BaseCheckpointSaver",
    "Checkpoint",
    "FileSaver",
    "InterruptData",
    "KeyValueSaver",
    "MemorySaver",
]
