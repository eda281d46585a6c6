"""Checkpoint data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, ConfigDict, Field

from core.state.types import AgentState


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InterruptData(BaseModel):
    """A tool call waiting for human approval when the turn stopped."""

    model_config = ConfigDict(populate_by_name=True)

    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    args: dict[str, Any] = Field(default_factory=dict)
    step: int = 0


@dataclass
class Checkpoint:
    """Snapshot of one thread: history, state, step counter, pending interrupt."""

    thread_id: str
    messages: list[BaseMessage] = field(default_factory=list)
    state: AgentState = field(default_factory=AgentState)
    step: int = 0
    interrupt: InterruptData | None = None
    saved_at: str = field(default_factory=_now_iso)


class CheckpointDocument(BaseModel):
    """On-disk / in-store layout: ``{threadId, messages, state, step, interruptData?, savedAt}``."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId", min_length=1)
    messages: list[dict[str, Any]]
    state: dict[str, Any]
    step: int = Field(ge=0)
    interrupt_data: InterruptData | None = Field(default=None, alias="interruptData")
    saved_at: str = Field(alias="savedAt")
