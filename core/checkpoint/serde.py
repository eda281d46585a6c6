"""Checkpoint <-> JSON document conversion."""

from __future__ import annotations

import json
from typing import Any

from langchain_core.messages import messages_from_dict, messages_to_dict
from pydantic import ValidationError as PydanticValidationError

from core.checkpoint.types import Checkpoint, CheckpointDocument
from core.errors import ValidationError
from core.state.types import AgentState


def to_document(checkpoint: Checkpoint) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "threadId": checkpoint.thread_id,
        "messages": messages_to_dict(checkpoint.messages),
        "state": checkpoint.state.to_dict(),
        "step": checkpoint.step,
        "savedAt": checkpoint.saved_at,
    }
    if checkpoint.interrupt is not None:
        doc["interruptData"] = checkpoint.interrupt.model_dump(mode="json", by_alias=True)
    return doc


def from_document(data: Any) -> Checkpoint:
    """Rebuild a Checkpoint.

    Raises:
        ValidationError: the document is not a well-formed checkpoint.
    """
    try:
        doc = CheckpointDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed checkpoint document: {e}") from e

    try:
        messages = messages_from_dict(doc.messages)
    except (KeyError, ValueError, TypeError) as e:
        raise ValidationError(f"Malformed checkpoint messages: {e}") from e

    return Checkpoint(
        thread_id=doc.thread_id,
        messages=messages,
        state=AgentState.from_dict(doc.state),
        step=doc.step,
        interrupt=doc.interrupt_data,
        saved_at=doc.saved_at,
    )


def dumps(checkpoint: Checkpoint) -> str:
    return json.dumps(to_document(checkpoint), ensure_ascii=False, indent=2)


def loads(raw: str | bytes) -> Checkpoint:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Checkpoint is not valid JSON: {e}") from e
    return from_document(data)
