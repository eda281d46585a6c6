"""Optional observer sink for runtime events.

Events are plain dicts with a ``type`` key, e.g.::

    {"type": "file-written", "path": "/notes.md"}

The callback is optional everywhere. A missing callback and a failing callback
behave identically from the caller's point of view.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]

FILE_WRITE_START = "file-write-start"
FILE_WRITTEN = "file-written"
FILE_EDITED = "file-edited"
FILE_READ = "file-read"
LS = "ls"
GLOB = "glob"
GREP = "grep"
TODOS_CHANGED = "todos-changed"
SUBAGENT_START = "subagent-start"
SUBAGENT_FINISH = "subagent-finish"
TOOL_RESULT_EVICTED = "tool-result-evicted"
CHECKPOINT_SAVED = "checkpoint-saved"
CHECKPOINT_LOADED = "checkpoint-loaded"
APPROVAL_REQUESTED = "approval-requested"
APPROVAL_RESPONSE = "approval-response"
SKILL_LOADED = "skill-loaded"


def emit(callback: EventCallback | None, event_type: str, **fields: Any) -> None:
    """Deliver one event to *callback* if set. Observer errors are logged, not raised."""
    if callback is None:
        return
    event = {"type": event_type, **fields}
    try:
        callback(event)
    except Exception as exc:
        logger.error("Event observer failed on %s: %s", event_type, exc)
