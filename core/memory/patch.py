"""Tool-call integrity patcher.

After an interruption, history can hold an AIMessage whose tool calls never
got a ToolMessage back. Chat models reject such histories, so every dangling
call gets a synthetic error result before the history is sent again.
"""

from __future__ import annotations

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

INTERRUPTED_TOOL_RESULT = (
    "Tool call {name} with id {id} was interrupted before it completed and produced no result."
)


def _turn_results(messages: list[BaseMessage], start: int) -> tuple[int, set[str]]:
    """Index of the next Human/AI boundary after *start*, and the tool_call_ids answered before it."""
    answered: set[str] = set()
    end = start
    while end < len(messages) and not isinstance(messages[end], (HumanMessage, AIMessage)):
        msg = messages[end]
        if isinstance(msg, ToolMessage):
            answered.add(msg.tool_call_id)
        end += 1
    return end, answered


def _dangling_calls(msg: AIMessage, answered: set[str]) -> list[dict]:
    dangling = []
    seen: set[str] = set()
    for call in msg.tool_calls:
        call_id = call.get("id")
        if not call_id or call_id in answered or call_id in seen:
            continue
        seen.add(call_id)
        dangling.append(call)
    return dangling


def interrupted_tool_message(tool_call: dict) -> ToolMessage:
    name = tool_call.get("name", "unknown")
    return ToolMessage(
        content=INTERRUPTED_TOOL_RESULT.format(name=name, id=tool_call["id"]),
        tool_call_id=tool_call["id"],
        name=name,
        status="error",
    )


def has_dangling_tool_calls(messages: list[BaseMessage]) -> bool:
    for i, msg in enumerate(messages):
        if isinstance(msg, AIMessage) and msg.tool_calls:
            _, answered = _turn_results(messages, i + 1)
            if _dangling_calls(msg, answered):
                return True
    return False


def patch_tool_calls(messages: list[BaseMessage]) -> list[BaseMessage]:
    """Return *messages* with a synthetic result for every unanswered tool call.

    Results for an AIMessage are looked for in the messages after it, up to the
    next HumanMessage or AIMessage. Synthetic results go after the existing
    results of that turn. A history with nothing to patch is returned as is.
    """
    if not has_dangling_tool_calls(messages):
        return messages

    patched: list[BaseMessage] = []
    i = 0
    while i < len(messages):
        msg = messages[i]
        patched.append(msg)
        i += 1
        if not (isinstance(msg, AIMessage) and msg.tool_calls):
            continue

        end, answered = _turn_results(messages, i)
        patched.extend(messages[i:end])
        patched.extend(interrupted_tool_message(call) for call in _dangling_calls(msg, answered))
        i = end

    return patched
