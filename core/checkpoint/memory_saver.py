"""In-process checkpoint saver."""

from __future__ import annotations

import logging
from typing import Any

from core.checkpoint.base import BaseCheckpointSaver
from core.checkpoint.serde import from_document, to_document
from core.checkpoint.types import Checkpoint

logger = logging.getLogger(__name__)


class MemorySaver(BaseCheckpointSaver):
    """Keeps serialized documents in a dict for the lifetime of the process.

    Storing documents rather than the Checkpoint objects means a later
    mutation of the caller's messages or state cannot leak into the saved copy.
    """

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}

    def save(self, checkpoint: Checkpoint) -> None:
        self._documents[checkpoint.thread_id] = to_document(checkpoint)
        logger.debug("Saved checkpoint %s (step %d) in memory", checkpoint.thread_id, checkpoint.step)

    def load(self, thread_id: str) -> Checkpoint | None:
        doc = self._documents.get(thread_id)
        if doc is None:
            return None
        return self._decode(thread_id, doc, from_document)

    def list(self) -> list[str]:
        return sorted(self._documents)

    def delete(self, thread_id: str) -> None:
        self._documents.pop(thread_id, None)

    def exists(self, thread_id: str) -> bool:
        return thread_id in self._documents

    def clear(self) -> None:
        self._documents.clear()
