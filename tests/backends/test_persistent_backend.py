import pytest

from core.backends import InMemoryStore, KeyValueStore, PersistentBackend
from core.errors import NotFoundError


@pytest.fixture
def store():
    return InMemoryStore()


def test_in_memory_store_satisfies_protocol(store):
    assert isinstance(store, KeyValueStore)


def test_files_are_namespaced_in_store(store):
    backend = PersistentBackend(store, namespace="team")

    backend.write("/notes.md", "hello")

    assert store.list("team:filesystem:") == ["team:filesystem:/notes.md"]
    assert store.get("team:filesystem:/notes.md")["content"] == ["hello"]


def test_namespaces_are_isolated(store):
    a = PersistentBackend(store, namespace="a")
    b = PersistentBackend(store, namespace="b")

    a.write("/x.txt", "from a")

    assert a.read_raw("/x.txt").content == ["from a"]
    with pytest.raises(NotFoundError):
        b.read("/x.txt")
    assert b.ls("/") == []


def test_survives_new_backend_instance(store):
    PersistentBackend(store).write("/memories/user.md", "likes tea")

    again = PersistentBackend(store)

    assert again.read("/memories/user.md") == "     1\tlikes tea"


def test_malformed_entries_are_skipped_in_listings(store):
    backend = PersistentBackend(store)
    backend.write("/good.md", "ok")
    store.set("default:filesystem:/bad.md", {"content": "not a list"})

    assert backend.ls("/") == ["good.md"]
    assert backend.glob("*.md") == ["/good.md"]
    with pytest.raises(NotFoundError):
        backend.read("/bad.md")


def test_edit_grep_and_delete(store):
    backend = PersistentBackend(store)
    backend.write("/todo.md", "- buy milk\n- buy eggs")

    backend.edit("/todo.md", "milk", "oat milk")
    matches = backend.grep("buy")

    assert [m.text for m in matches] == ["- buy oat milk", "- buy eggs"]

    backend.delete("/todo.md")
    assert store.size() == 0
    with pytest.raises(NotFoundError):
        backend.delete("/todo.md")


def test_store_clear(store):
    store.set("k1", 1)
    store.set("k2", 2)

    store.clear()

    assert store.size() == 0
    assert store.get("k1") is None
