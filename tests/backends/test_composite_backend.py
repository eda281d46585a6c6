import pytest

from core.backends import CompositeBackend, InMemoryStore, PersistentBackend, StateBackend
from core.errors import NotFoundError
from core.state.types import FileData


@pytest.fixture
def default(state):
    return StateBackend(state)


@pytest.fixture
def memories():
    return PersistentBackend(InMemoryStore(), namespace="memories")


@pytest.fixture
def composite(default, memories):
    return CompositeBackend(default, {"/memories/": memories})


def test_routed_write_strips_prefix(composite, memories, state):
    result = composite.write("/memories/user.md", "prefers short answers")

    assert result.path == "/memories/user.md"
    assert memories.read_raw("/user.md").content == ["prefers short answers"]
    assert "/memories/user.md" not in state.files


def test_unrouted_paths_go_to_default(composite, state):
    composite.write("/scratch.txt", "tmp")

    assert "/scratch.txt" in state.files
    assert composite.read("/scratch.txt") == "     1\ttmp"


def test_longest_prefix_wins(default):
    outer = PersistentBackend(InMemoryStore(), namespace="outer")
    inner = PersistentBackend(InMemoryStore(), namespace="inner")
    composite = CompositeBackend(default, [("/data", outer), ("/data/cache", inner)])

    composite.write("/data/cache/x.json", "{}")
    composite.write("/data/y.json", "[]")

    assert inner.read_raw("/x.json").content == ["{}"]
    assert outer.read_raw("/y.json").content == ["[]"]
    with pytest.raises(NotFoundError):
        outer.read_raw("/cache/x.json")


def test_route_returns_backend_and_stripped_path(composite, memories, default):
    assert composite.route("/memories/a/b.md") == (memories, "/a/b.md")
    assert composite.route("/memories") == (memories, "/")
    assert composite.route("/memoriesx/a.md") == (default, "/memoriesx/a.md")


def test_ls_root_shows_routes_as_dirs(composite):
    composite.write("/a.txt", "a")
    composite.write("/memories/user.md", "u")

    assert composite.ls("/") == ["a.txt", "memories/"]
    assert [info.path for info in composite.ls_info("/memories/")] == ["/memories/user.md"]


def test_glob_fans_out_with_prefixes(composite):
    composite.write("/notes.md", "n")
    composite.write("/memories/user.md", "u")
    composite.write("/code.py", "c")

    assert composite.glob("**/*.md") == ["/memories/user.md", "/notes.md"]
    assert composite.glob("*.md", "/memories") == ["/memories/user.md"]


def test_grep_fans_out_default_first(composite):
    composite.write("/a.md", "needle here")
    composite.write("/memories/b.md", "another needle")

    matches = composite.grep("needle")

    assert [m.path for m in matches] == ["/a.md", "/memories/b.md"]


def test_edit_routed(composite, memories):
    composite.write("/memories/user.md", "name: Sam")

    result = composite.edit("/memories/user.md", "Sam", "Alex")

    assert result.path == "/memories/user.md"
    assert memories.read_raw("/user.md").content == ["name: Alex"]


def test_glob_deduplicates_with_default_first(composite, memories, state):
    state.files["/memories/user.md"] = FileData(content=["shadow"])
    memories.write("/user.md", "routed content")

    infos = composite.glob_info("**/*.md")

    assert [info.path for info in infos] == ["/memories/user.md"]
    assert infos[0].size == len("shadow")
