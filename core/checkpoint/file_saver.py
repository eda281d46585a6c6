"""FileSaver - one JSON document per thread on local disk."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from urllib.parse import quote

from core.checkpoint.base import BaseCheckpointSaver
from core.checkpoint.serde import dumps, loads
from core.checkpoint.types import Checkpoint
from core.errors import ValidationError

logger = logging.getLogger(__name__)


def thread_filename(thread_id: str) -> str:
    """Percent-encode *thread_id* into a filename; distinct ids never share a file."""
    safe = quote(thread_id, safe="")
    # No hidden files and no "." or ".." names
    if safe.startswith("."):
        safe = "%2E" + safe[1:]
    return f"{safe}.json"


class FileSaver(BaseCheckpointSaver):
    """Checkpoints as ``{directory}/{thread_id}.json``.

    Writes go to a temp file in the same directory and are moved into place
    with ``os.replace``, so a crash mid-write leaves the previous checkpoint
    intact. Thread ids are recovered from the document, not the filename.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, thread_id: str) -> Path:
        return self.directory / thread_filename(thread_id)

    def save(self, checkpoint: Checkpoint) -> None:
        target = self._path(checkpoint.thread_id)
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            tmp.write_text(dumps(checkpoint), encoding="utf-8")
            os.replace(tmp, target)
        finally:
            tmp.unlink(missing_ok=True)
        logger.debug("Saved checkpoint %s (step %d) to %s", checkpoint.thread_id, checkpoint.step, target)

    def load(self, thread_id: str) -> Checkpoint | None:
        path = self._path(thread_id)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read checkpoint %s: %s", path, e)
            return None
        return self._decode(thread_id, raw, loads)

    def list(self) -> list[str]:
        thread_ids = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                checkpoint = loads(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValidationError) as e:
                logger.warning("Skipping unreadable checkpoint %s: %s", path, e)
                continue
            thread_ids.append(checkpoint.thread_id)
        return sorted(thread_ids)

    def delete(self, thread_id: str) -> None:
        self._path(thread_id).unlink(missing_ok=True)

    def exists(self, thread_id: str) -> bool:
        return self.load(thread_id) is not None
