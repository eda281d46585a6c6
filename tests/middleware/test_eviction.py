from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import ToolMessage

from core.backends import StateBackend
from core.errors import SandboxViolationError
from core.eviction import EvictionMiddleware, estimate_tokens, evict_tool_result, sanitize_tool_call_id
from core.eviction.evict import EVICTED_MARKER, is_evicted_placeholder


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_sanitize_tool_call_id():
    assert sanitize_tool_call_id("toolu_01:abc/def.x") == "toolu_01_abc_def_x"
    assert sanitize_tool_call_id("call-1_OK") == "call-1_OK"


def test_small_result_passes_through(state):
    result = evict_tool_result("short", "call_1", StateBackend(state), token_limit=100)

    assert not result.evicted
    assert result.content == "short"
    assert state.files == {}


def test_large_result_is_evicted_and_reinflatable(state, on_event, events):
    backend = StateBackend(state)
    text = "\n".join(f"row {i}: " + "x" * 50 for i in range(200))

    result = evict_tool_result(text, "call/42", backend, token_limit=100, tool_name="search", on_event=on_event)

    assert result.evicted
    assert result.path == "/large_tool_results/call_42"
    assert result.content.startswith(EVICTED_MARKER)
    assert "/large_tool_results/call_42" in result.content
    assert "call/42" in result.content
    assert estimate_tokens(result.content) < 100 * 10
    assert "\n".join(backend.read_raw(result.path).content) == text
    assert events == [
        {
            "type": "tool-result-evicted",
            "tool_call_id": "call/42",
            "tool_name": "search",
            "path": "/large_tool_results/call_42",
            "estimated_tokens": estimate_tokens(text),
        }
    ]


def test_eviction_is_idempotent(state):
    backend = StateBackend(state)
    first = evict_tool_result("y" * 2000, "call_1", backend, token_limit=10)

    second = evict_tool_result(first.content, "call_1", backend, token_limit=10)

    assert is_evicted_placeholder(first.content)
    assert not second.evicted
    assert second.content == first.content
    assert "\n".join(backend.read_raw("/large_tool_results/call_1").content) == "y" * 2000


def test_write_failure_keeps_original():
    backend = MagicMock()
    backend.write.side_effect = OSError("disk full")

    result = evict_tool_result("z" * 1000, "call_1", backend, token_limit=10)

    assert not result.evicted
    assert result.content == "z" * 1000
    assert "disk full" in result.error


def test_sandbox_violation_is_not_swallowed():
    backend = MagicMock()
    backend.write.side_effect = SandboxViolationError("outside root")

    with pytest.raises(SandboxViolationError):
        evict_tool_result("z" * 1000, "call_1", backend, token_limit=10)


def test_middleware_replaces_large_results(state):
    middleware = EvictionMiddleware(StateBackend(state), token_limit=10)
    tool_call = {"name": "web_fetch", "args": {}, "id": "call_9"}
    handler = MagicMock(return_value=ToolMessage(content="w" * 500, tool_call_id="call_9", name="web_fetch"))

    result = middleware.wrap_tool_call(SimpleNamespace(tool_call=tool_call), handler)

    assert result.tool_call_id == "call_9"
    assert is_evicted_placeholder(result.content)
    assert "/large_tool_results/call_9" in state.files


def test_middleware_skips_excluded_tools(state):
    middleware = EvictionMiddleware(StateBackend(state), token_limit=10)
    big = ToolMessage(content="r" * 500, tool_call_id="call_1", name="read_file")

    result = middleware.process_result({"name": "read_file", "id": "call_1"}, big)

    assert result is big
    assert state.files == {}


@pytest.mark.asyncio
async def test_middleware_async_path(state):
    middleware = EvictionMiddleware(StateBackend(state), token_limit=10)

    async def handler(request):
        return ToolMessage(content="a" * 500, tool_call_id="call_2", name="task")

    result = await middleware.awrap_tool_call(
        SimpleNamespace(tool_call={"name": "task", "args": {}, "id": "call_2"}), handler
    )

    assert is_evicted_placeholder(result.content)
