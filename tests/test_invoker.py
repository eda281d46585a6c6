import itertools

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from agent import DeepStateAgent
from config import DeepStateSettings
from core.approval import ApprovalMiddleware
from core.backends import StateBackend
from core.checkpoint import MemorySaver
from core.errors import ApprovalRequiredError, StepLimitExceededError
from core.filesystem import FileSystemMiddleware
from core.task import LangChainInvoker
from core.todo import TodoMiddleware


class ToolCallingFakeModel(GenericFakeChatModel):
    """Fake chat model that accepts tool binding and replays queued replies."""

    def bind_tools(self, tools, **kwargs):
        return self


def _fake(*replies):
    return ToolCallingFakeModel(messages=iter(replies))


def _call(name, call_id, **args):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def test_tool_turn_reports_each_step(state):
    model = _fake(_call("write_file", "c1", file_path="/a.md", content="hello"), AIMessage(content="written"))
    invoker = LangChainInvoker(model)
    middleware = [FileSystemMiddleware(StateBackend(state)), TodoMiddleware(state)]
    seen = []

    messages = invoker.invoke(
        [HumanMessage(content="write a")],
        middleware,
        "You are a test agent.",
        max_steps=5,
        on_step=lambda snapshot, steps: seen.append((len(snapshot), steps)),
    )

    assert [type(m).__name__ for m in messages] == ["HumanMessage", "AIMessage", "ToolMessage", "AIMessage"]
    assert messages[2].content == "Successfully wrote to /a.md"
    assert messages[-1].content == "written"
    assert state.files["/a.md"].content == ["hello"]
    assert seen == [(2, 1), (3, 1), (4, 2)]
    assert invoker.chat_model is model


def test_endless_tool_loop_hits_step_limit(state):
    calls = (_call("ls", f"c{i}", path="/") for i in itertools.count())
    invoker = LangChainInvoker(ToolCallingFakeModel(messages=calls))
    steps = []

    with pytest.raises(StepLimitExceededError) as excinfo:
        invoker.invoke(
            [HumanMessage(content="loop")],
            [FileSystemMiddleware(StateBackend(state))],
            "",
            max_steps=3,
            on_step=lambda snapshot, n: steps.append(n),
        )

    assert excinfo.value.max_steps == 3
    assert max(steps) == 3


def test_approval_error_passes_through_tool_node(state):
    invoker = LangChainInvoker(_fake(_call("write_file", "c1", file_path="/a.md", content="x")))
    middleware = [ApprovalMiddleware({"write_file": True}), FileSystemMiddleware(StateBackend(state))]

    with pytest.raises(ApprovalRequiredError) as excinfo:
        invoker.invoke([HumanMessage(content="write")], middleware, "", max_steps=5)

    assert excinfo.value.tool_call["id"] == "c1"
    assert state.files == {}


def _agent(model, **kwargs):
    return DeepStateAgent(
        settings=DeepStateSettings(),
        invoker=LangChainInvoker(model),
        checkpointer=MemorySaver(),
        **kwargs,
    )


def test_agent_turn_with_subagent():
    model = _fake(
        _call("task", "t1", description="Write /report.md saying done", subagent_type="general-purpose"),
        _call("write_file", "s1", file_path="/report.md", content="done"),
        AIMessage(content="sub done"),
        AIMessage(content="all done"),
    )
    agent = _agent(model)

    result = agent.run("delegate the report", thread_id="t1")

    assert result.response == "all done"
    assert agent.state.files["/report.md"].content == ["done"]
    task_result = next(m for m in result.messages if isinstance(m, ToolMessage))
    assert task_result.tool_call_id == "t1"
    assert "sub done" in task_result.content
    assert result.step == 2
    assert agent.checkpointer.load("t1").step == 2


def test_agent_approval_interrupt_and_resume():
    model = _fake(_call("write_file", "c1", file_path="/note.md", content="hi"), AIMessage(content="saved"))
    agent = _agent(model, interrupt_on={"write_file": True})

    paused = agent.run("save a note", thread_id="t1")

    assert paused.interrupted
    assert paused.interrupt.tool_call_id == "c1"
    assert agent.state.files == {}

    resumed = agent.run(thread_id="t1", resume="approve")

    assert not resumed.interrupted
    assert resumed.response == "saved"
    assert agent.state.files["/note.md"].content == ["hi"]
    assert agent.checkpointer.load("t1").interrupt is None
