import pytest

from core.errors import ValidationError
from core.state.types import AgentState, FileData, merge_subagent_files
from core.todo.types import TodoItem


def test_fork_shares_files_not_todos():
    parent = AgentState(todos=[TodoItem(id="1", content="x")])

    child = parent.fork()
    child.files["/a"] = FileData(content=["a"])
    child.todos.append(TodoItem(id="2", content="y"))

    assert child.files is parent.files
    assert "/a" in parent.files
    assert [t.id for t in parent.todos] == ["1"]


def test_merge_last_writer_wins():
    parent = AgentState(files={"/a": FileData(content=["old"]), "/b": FileData(content=["b"])})
    child = AgentState(files={"/a": FileData(content=["new"])})

    merge_subagent_files(parent, child)

    assert parent.files["/a"].content == ["new"]
    assert parent.files["/b"].content == ["b"]


def test_file_size():
    assert FileData(content=["ab", "c"]).size == 4
    assert FileData().size == 0


def test_dict_round_trip():
    state = AgentState(todos=[TodoItem(id="1", content="x")], files={"/a": FileData(content=["1"])})

    restored = AgentState.from_dict(state.to_dict())

    assert restored.todos == state.todos
    assert restored.files == state.files


@pytest.mark.parametrize(
    "data",
    [
        None,
        {"todos": []},
        {"todos": [{"content": "no id"}], "files": {}},
        {"todos": [], "files": {"/a": {"content": "not a list"}}},
        {"todos": [], "files": []},
    ],
)
def test_from_dict_rejects_bad_data(data):
    with pytest.raises(ValidationError):
        AgentState.from_dict(data)
