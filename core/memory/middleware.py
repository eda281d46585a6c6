"""MemoryMiddleware - tool-call patching + summarization on outgoing model requests.

Both passes rewrite the request sent to the model only. The persisted history
(agent state, checkpoints) keeps every message.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from langchain.agents.middleware.types import (
    AgentMiddleware,
    ModelRequest,
    ModelResponse,
)
from langchain_core.messages import BaseMessage

from core.memory.patch import patch_tool_calls
from core.memory.summarization import (
    DEFAULT_KEEP_MESSAGES,
    DEFAULT_SUMMARIZATION_THRESHOLD,
    SummarizationResult,
    asummarize_if_needed,
    estimate_messages_tokens,
    summarize_if_needed,
)

logger = logging.getLogger(__name__)


class MemoryMiddleware(AgentMiddleware):
    """Context memory management middleware.

    Pass 1 (patch): synthesize results for dangling tool calls
    Pass 2 (summarize): replace older turns with one summary message once the
    estimated size reaches ``token_threshold``

    The last summary is cached together with how many leading messages it
    covers, so later calls in the same run reuse it instead of re-summarizing.
    """

    tools = []

    def __init__(
        self,
        model: Any = None,
        token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD,
        keep_messages: int = DEFAULT_KEEP_MESSAGES,
        summarization_enabled: bool = True,
    ):
        self._model = model
        self.token_threshold = token_threshold
        self.keep_messages = keep_messages
        self.summarization_enabled = summarization_enabled

        self._cached_summary: BaseMessage | None = None
        self._compact_up_to_index: int = 0
        self.last_result: SummarizationResult | None = None

    def set_model(self, model: Any) -> None:
        """Inject the model used for summaries (called by agent.py)."""
        self._model = model

    def reset(self) -> None:
        """Drop the cached summary (new thread or restored checkpoint)."""
        self._cached_summary = None
        self._compact_up_to_index = 0

    def _apply_cache(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        if self._cached_summary is None or self._compact_up_to_index > len(messages):
            return messages
        return [self._cached_summary, *messages[self._compact_up_to_index :]]

    def _record(self, messages: list[BaseMessage], compacted: list[BaseMessage], result: SummarizationResult) -> list[BaseMessage]:
        self.last_result = result
        if not result.summarized:
            return compacted
        kept = len(result.messages) - 1
        self._cached_summary = result.messages[0]
        self._compact_up_to_index = len(messages) - kept
        return result.messages

    def _prepare(self, messages: list[BaseMessage]) -> tuple[list[BaseMessage], list[BaseMessage], bool]:
        patched = patch_tool_calls(list(messages))
        compacted = self._apply_cache(patched)
        run_summary = self.summarization_enabled and self._model is not None
        if run_summary:
            logger.debug(
                "Context: ~%d tokens in %d messages (threshold %d)",
                estimate_messages_tokens(compacted),
                len(compacted),
                self.token_threshold,
            )
        return patched, compacted, run_summary

    def process_messages(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        """Patched, possibly summarized copy of *messages* for one model call."""
        patched, compacted, run_summary = self._prepare(messages)
        if not run_summary:
            return compacted
        result = summarize_if_needed(compacted, self._model, self.token_threshold, self.keep_messages)
        return self._record(patched, compacted, result)

    async def aprocess_messages(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        patched, compacted, run_summary = self._prepare(messages)
        if not run_summary:
            return compacted
        result = await asummarize_if_needed(compacted, self._model, self.token_threshold, self.keep_messages)
        return self._record(patched, compacted, result)

    # ========== AgentMiddleware interface ==========

    def wrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], ModelResponse],
    ) -> ModelResponse:
        messages = self.process_messages(request.messages)
        return handler(request.override(messages=messages))

    async def awrap_model_call(
        self,
        request: ModelRequest,
        handler: Callable[[ModelRequest], Awaitable[ModelResponse]],
    ) -> ModelResponse:
        messages = await self.aprocess_messages(request.messages)
        return await handler(request.override(messages=messages))


__all__ = ["MemoryMiddleware"]
