"""KeyValueSaver - checkpoints in any KeyValueStore."""

from __future__ import annotations

import logging

from core.backends.persistent_backend import KeyValueStore
from core.checkpoint.base import BaseCheckpointSaver
from core.checkpoint.serde import from_document, to_document
from core.checkpoint.types import Checkpoint

logger = logging.getLogger(__name__)


class KeyValueSaver(BaseCheckpointSaver):
    """Stores each checkpoint document under ``{namespace}:checkpoint:{thread_id}``.

    Without a namespace the key is ``checkpoint:{thread_id}``. Distinct
    namespaces never see each other's threads.
    """

    def __init__(self, store: KeyValueStore, namespace: str | None = None):
        self.store = store
        self.namespace = namespace

    @property
    def prefix(self) -> str:
        return f"{self.namespace}:checkpoint:" if self.namespace else "checkpoint:"

    def _key(self, thread_id: str) -> str:
        return self.prefix + thread_id

    def save(self, checkpoint: Checkpoint) -> None:
        self.store.set(self._key(checkpoint.thread_id), to_document(checkpoint))
        logger.debug("Saved checkpoint %s (step %d) to key-value store", checkpoint.thread_id, checkpoint.step)

    def load(self, thread_id: str) -> Checkpoint | None:
        doc = self.store.get(self._key(thread_id))
        if doc is None:
            return None
        return self._decode(thread_id, doc, from_document)

    def list(self) -> list[str]:
        return sorted(key[len(self.prefix) :] for key in self.store.list(self.prefix))

    def delete(self, thread_id: str) -> None:
        self.store.delete(self._key(thread_id))

    def exists(self, thread_id: str) -> bool:
        return self.store.get(self._key(thread_id)) is not None
