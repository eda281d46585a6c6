"""Checkpoint saver interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from core.checkpoint.types import Checkpoint
from core.errors import ValidationError

logger = logging.getLogger(__name__)


class BaseCheckpointSaver(ABC):
    """Persists one Checkpoint per thread id.

    ``load`` never raises for bad data: a malformed or unreadable checkpoint
    is logged and reported as absent so the caller starts fresh.
    """

    @abstractmethod
    def save(self, checkpoint: Checkpoint) -> None:
        """Create or overwrite the checkpoint for ``checkpoint.thread_id``."""

    @abstractmethod
    def load(self, thread_id: str) -> Checkpoint | None:
        """Return the last saved checkpoint, or None."""

    @abstractmethod
    def list(self) -> list[str]:
        """Sorted thread ids that have a checkpoint."""

    @abstractmethod
    def delete(self, thread_id: str) -> None:
        """Remove the checkpoint; missing threads are ignored."""

    def exists(self, thread_id: str) -> bool:
        return thread_id in self.list()

    @staticmethod
    def _decode(thread_id: str, raw: Any, decoder: Callable[[Any], Checkpoint]) -> Checkpoint | None:
        try:
            checkpoint = decoder(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed checkpoint for thread %s: %s", thread_id, e)
            return None
        if checkpoint.thread_id != thread_id:
            logger.warning("Checkpoint for thread %s belongs to %s, ignoring", thread_id, checkpoint.thread_id)
            return None
        return checkpoint
