"""Summarization engine - compacts older turns into one synthetic summary message.

The newest ``keep_messages`` messages are never altered. Everything before
them is sent to the model once and replaced with a single SystemMessage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from core.eviction.evict import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_SUMMARIZATION_THRESHOLD = 170_000
DEFAULT_KEEP_MESSAGES = 6

SUMMARY_HEADER = "[Previous conversation summary]"
SUMMARY_FOOTER = "[End of summary - recent messages follow]"

SUMMARY_PROMPT = """\
You are a conversation summarizer. Create a concise but comprehensive summary of the conversation that preserves:
1. Key decisions and conclusions
2. Important context and background information
3. Any tasks or todos mentioned, and which are still pending
4. Technical details that may be referenced later (file paths, commands, errors)
5. The overall flow and progression of the conversation

Keep the summary focused and avoid redundancy. The summary should allow someone to continue the work without reading the full history."""

MAX_FORMATTED_CHARS = 2000


@dataclass
class SummarizationResult:
    summarized: bool
    messages: list[BaseMessage]
    tokens_before: int = 0
    tokens_after: int = 0
    error: str | None = None


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and "text" in block:
                parts.append(str(block["text"]))
            elif isinstance(block, str):
                parts.append(block)
        return "".join(parts)
    return ""


def estimate_messages_tokens(messages: list[BaseMessage]) -> int:
    """Approximate size of *messages*: string content and text blocks only."""
    total = 0
    for msg in messages:
        content = getattr(msg, "content", "")
        if isinstance(content, str):
            total += estimate_tokens(content)
        elif isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and "text" in block:
                    total += estimate_tokens(str(block["text"]))
                elif isinstance(block, str):
                    total += estimate_tokens(block)
    return total


def needs_summarization(
    messages: list[BaseMessage],
    token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD,
    keep_messages: int = DEFAULT_KEEP_MESSAGES,
) -> bool:
    if len(messages) <= keep_messages:
        return False
    return estimate_messages_tokens(messages) >= token_threshold


def is_summary_message(msg: BaseMessage) -> bool:
    return isinstance(msg, SystemMessage) and isinstance(msg.content, str) and msg.content.startswith(SUMMARY_HEADER)


def format_summary_message(summary: str) -> SystemMessage:
    return SystemMessage(content=f"{SUMMARY_HEADER}\n{summary}\n\n{SUMMARY_FOOTER}")


def _format_messages_for_summary(messages: list[BaseMessage]) -> str:
    parts = []
    for msg in messages:
        if isinstance(msg, HumanMessage):
            role = "User"
        elif isinstance(msg, AIMessage):
            role = "Assistant"
        elif isinstance(msg, ToolMessage):
            role = f"Tool result ({msg.name or msg.tool_call_id})"
        else:
            role = "System"

        text = _content_text(msg.content)
        if len(text) > MAX_FORMATTED_CHARS:
            text = text[:1000] + "\n[...truncated...]\n" + text[-500:]

        if isinstance(msg, AIMessage) and msg.tool_calls:
            calls = ", ".join(call.get("name", "unknown") for call in msg.tool_calls)
            text = f"{text}\n[Tool calls: {calls}]" if text else f"[Tool calls: {calls}]"

        parts.append(f"{role}: {text}")
    return "\n\n".join(parts)


def _summary_request(messages: list[BaseMessage]) -> list[BaseMessage]:
    formatted = _format_messages_for_summary(messages)
    return [
        SystemMessage(content=SUMMARY_PROMPT),
        HumanMessage(content=f"Please summarize the following conversation:\n\n{formatted}"),
    ]


def _response_text(response: Any) -> str:
    if hasattr(response, "content"):
        return _content_text(response.content)
    return str(response)


def _split(messages: list[BaseMessage], keep_messages: int) -> tuple[list[BaseMessage], list[BaseMessage]]:
    if keep_messages <= 0:
        return list(messages), []
    start = len(messages) - keep_messages
    # Kept part must not open with tool results cut off from their AIMessage
    while start > 0 and isinstance(messages[start], ToolMessage):
        start -= 1
    return list(messages[:start]), list(messages[start:])


def _build_result(
    messages: list[BaseMessage],
    to_keep: list[BaseMessage],
    summary: str,
    tokens_before: int,
) -> SummarizationResult:
    new_messages = [format_summary_message(summary), *to_keep]
    tokens_after = estimate_messages_tokens(new_messages)
    if tokens_after >= tokens_before:
        logger.warning("Summary did not shrink history (%d -> %d tokens); keeping original", tokens_before, tokens_after)
        return SummarizationResult(
            summarized=False,
            messages=messages,
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            error="Summary did not reduce conversation size",
        )

    logger.info("Summarized %d messages: %d -> %d estimated tokens", len(messages) - len(to_keep), tokens_before, tokens_after)
    return SummarizationResult(
        summarized=True,
        messages=new_messages,
        tokens_before=tokens_before,
        tokens_after=tokens_after,
    )


def summarize_if_needed(
    messages: list[BaseMessage],
    model: Any,
    token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD,
    keep_messages: int = DEFAULT_KEEP_MESSAGES,
) -> SummarizationResult:
    """Summarize the older part of *messages* when over *token_threshold*.

    Args:
        messages: Full conversation history (not modified).
        model: Chat model exposing ``invoke(messages)``.
        token_threshold: Estimated tokens at which summarization starts.
        keep_messages: Newest messages kept verbatim.

    Returns:
        SummarizationResult. If the model call fails, ``messages`` is the
        original list, ``summarized`` is False and ``error`` is set.
    """
    tokens_before = estimate_messages_tokens(messages)
    if len(messages) <= keep_messages or tokens_before < token_threshold:
        return SummarizationResult(
            summarized=False, messages=messages, tokens_before=tokens_before, tokens_after=tokens_before
        )

    to_summarize, to_keep = _split(messages, keep_messages)
    if not to_summarize:
        return SummarizationResult(
            summarized=False, messages=messages, tokens_before=tokens_before, tokens_after=tokens_before
        )
    try:
        summary = _response_text(model.invoke(_summary_request(to_summarize)))
    except Exception as exc:
        logger.error("Summarization failed, keeping full history: %s", exc)
        return SummarizationResult(
            summarized=False,
            messages=messages,
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            error=str(exc),
        )
    return _build_result(messages, to_keep, summary, tokens_before)


async def asummarize_if_needed(
    messages: list[BaseMessage],
    model: Any,
    token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD,
    keep_messages: int = DEFAULT_KEEP_MESSAGES,
) -> SummarizationResult:
    """Async variant of :func:`summarize_if_needed` using ``model.ainvoke``."""
    tokens_before = estimate_messages_tokens(messages)
    if len(messages) <= keep_messages or tokens_before < token_threshold:
        return SummarizationResult(
            summarized=False, messages=messages, tokens_before=tokens_before, tokens_after=tokens_before
        )

    to_summarize, to_keep = _split(messages, keep_messages)
    if not to_summarize:
        return SummarizationResult(
            summarized=False, messages=messages, tokens_before=tokens_before, tokens_after=tokens_before
        )
    try:
        response = await model.ainvoke(_summary_request(to_summarize))
    except Exception as exc:
        logger.error("Summarization failed, keeping full history: %s", exc)
        return SummarizationResult(
            summarized=False,
            messages=messages,
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            error=str(exc),
        )
    return _build_result(messages, to_keep, _response_text(response), tokens_before)
