"""Core eviction logic: move oversized tool results into backend storage."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from core.backends.protocol import BackendProtocol
from core.backends.utils import format_content_with_line_numbers
from core.errors import SandboxViolationError
from core.events import TOOL_RESULT_EVICTED, EventCallback, emit

logger = logging.getLogger(__name__)

# Approximation only; thresholds are tuned against it.
NUM_CHARS_PER_TOKEN = 4

DEFAULT_TOKEN_LIMIT = 20_000

EVICTION_DIR = "/large_tool_results"

PREVIEW_HEAD_LINES = 5
PREVIEW_TAIL_LINES = 5
PREVIEW_LINE_CHARS = 200

EVICTED_MARKER = "Tool result too large"

TOO_LARGE_TOOL_MSG = """{marker}, the result of tool call {tool_call_id} was saved in the filesystem at this path: {file_path}

Read it with the read_file tool, a slice at a time, using offset and limit (e.g. offset=0, limit=100 for the first 100 lines).
{preview}"""

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")


@dataclass
class EvictResult:
    """Outcome of one eviction attempt.

    ``content`` is what should go into the conversation: the placeholder when
    ``evicted`` is True, otherwise the original result. ``error`` is set when
    eviction was needed but the backend write failed.
    """

    evicted: bool
    content: str
    path: str | None = None
    error: str | None = None


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / NUM_CHARS_PER_TOKEN)


def sanitize_tool_call_id(tool_call_id: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return _UNSAFE_ID_CHARS.sub("_", tool_call_id) or "unknown"


def eviction_path(tool_call_id: str) -> str:
    return f"{EVICTION_DIR}/{sanitize_tool_call_id(tool_call_id)}"


def content_to_text(content: Any) -> str:
    """Flatten ToolMessage content (str or content blocks) to plain text."""
    if isinstance(content, str):
        return content
    if (
        isinstance(content, list)
        and len(content) == 1
        and isinstance(content[0], dict)
        and content[0].get("type") == "text"
    ):
        return str(content[0].get("text", ""))
    return str(content)


def create_content_preview(text: str) -> str:
    """Numbered head and tail of *text*, middle replaced by a truncation marker."""
    lines = [line[:PREVIEW_LINE_CHARS] for line in text.split("\n")]
    if len(lines) <= PREVIEW_HEAD_LINES + PREVIEW_TAIL_LINES:
        return format_content_with_line_numbers(lines)

    head = format_content_with_line_numbers(lines[:PREVIEW_HEAD_LINES])
    omitted = len(lines) - PREVIEW_HEAD_LINES - PREVIEW_TAIL_LINES
    tail = format_content_with_line_numbers(
        lines[-PREVIEW_TAIL_LINES:], start_line=len(lines) - PREVIEW_TAIL_LINES + 1
    )
    return f"{head}\n... [{omitted} lines truncated] ...\n{tail}"


def build_placeholder(tool_call_id: str, file_path: str, text: str, token_limit: int) -> str:
    preview = f"\nPreview (head and tail):\n{create_content_preview(text)}\n"
    placeholder = TOO_LARGE_TOOL_MSG.format(
        marker=EVICTED_MARKER, tool_call_id=tool_call_id, file_path=file_path, preview=preview
    )
    if estimate_tokens(placeholder) < token_limit:
        return placeholder
    return TOO_LARGE_TOOL_MSG.format(marker=EVICTED_MARKER, tool_call_id=tool_call_id, file_path=file_path, preview="")


def is_evicted_placeholder(text: str) -> bool:
    return text.startswith(EVICTED_MARKER) and f"{EVICTION_DIR}/" in text


def evict_tool_result(
    result: Any,
    tool_call_id: str,
    backend: BackendProtocol,
    token_limit: int = DEFAULT_TOKEN_LIMIT,
    tool_name: str | None = None,
    on_event: EventCallback | None = None,
) -> EvictResult:
    """Evict *result* to ``/large_tool_results/{id}`` if it is over *token_limit*.

    The stored file holds the result text exactly, so reading the path back
    re-inflates the placeholder. Evicting a placeholder again is a no-op.

    Args:
        result: Tool output (string or content blocks).
        tool_call_id: Id of the originating tool call; names the stored file.
        backend: Where the full result is written.
        token_limit: Estimated-token size above which the result is evicted.
        tool_name: Only used in the emitted event.
        on_event: Optional observer.

    Returns:
        EvictResult. On write failure the original text is kept and ``error`` set.
    """
    text = content_to_text(result)
    tokens = estimate_tokens(text)
    if tokens <= token_limit or is_evicted_placeholder(text):
        return EvictResult(evicted=False, content=text)

    file_path = eviction_path(tool_call_id)
    try:
        backend.write(file_path, text)
    except SandboxViolationError:
        raise
    except Exception as exc:
        logger.warning("Failed to evict result of %s to %s: %s", tool_call_id, file_path, exc)
        return EvictResult(evicted=False, content=text, error=str(exc))

    logger.debug("Evicted %d estimated tokens from %s to %s", tokens, tool_call_id, file_path)
    emit(
        on_event,
        TOOL_RESULT_EVICTED,
        tool_call_id=tool_call_id,
        tool_name=tool_name,
        path=file_path,
        estimated_tokens=tokens,
    )
    return EvictResult(
        evicted=True,
        content=build_placeholder(tool_call_id, file_path, text, token_limit),
        path=file_path,
    )
