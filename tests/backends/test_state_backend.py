import pytest

from core.backends import StateBackend
from core.backends.utils import EMPTY_CONTENT_WARNING
from core.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def backend(state):
    return StateBackend(state)


def test_write_then_read_numbers_lines(backend):
    backend.write("/notes.md", "alpha\nbeta\ngamma")

    output = backend.read("/notes.md")

    assert output.splitlines() == ["     1\talpha", "     2\tbeta", "     3\tgamma"]


def test_read_offset_and_limit(backend):
    backend.write("/big.txt", "\n".join(f"line {i}" for i in range(10)))

    output = backend.read("/big.txt", offset=3, limit=2)

    assert output.splitlines() == ["     4\tline 3", "     5\tline 4"]


def test_read_offset_past_end_is_validation_error(backend):
    backend.write("/a.txt", "one\ntwo")

    with pytest.raises(ValidationError):
        backend.read("/a.txt", offset=5)


def test_read_empty_file_returns_reminder(backend):
    backend.write("/empty.txt", "")

    assert backend.read("/empty.txt") == EMPTY_CONTENT_WARNING


def test_read_missing_file(backend):
    with pytest.raises(NotFoundError):
        backend.read("/missing.txt")


def test_overwrite_keeps_created_at(backend, state):
    backend.write("/a.txt", "v1")
    created = state.files["/a.txt"].created_at

    backend.write("/a.txt", "v2")

    assert state.files["/a.txt"].content == ["v2"]
    assert state.files["/a.txt"].created_at == created
    assert len(state.files) == 1


def test_edit_unique_occurrence(backend):
    backend.write("/a.py", "x = 1\ny = 2\n")

    result = backend.edit("/a.py", "y = 2", "y = 3")

    assert result.occurrences == 1
    assert "y = 3" in backend.read("/a.py")


def test_edit_ambiguous_without_replace_all_conflicts(backend):
    backend.write("/a.py", "foo\nfoo\n")

    with pytest.raises(ConflictError):
        backend.edit("/a.py", "foo", "bar")

    result = backend.edit("/a.py", "foo", "bar", replace_all=True)
    assert result.occurrences == 2
    assert backend.read_raw("/a.py").content == ["bar", "bar", ""]


def test_edit_missing_string_or_file(backend):
    backend.write("/a.py", "content")

    with pytest.raises(NotFoundError):
        backend.edit("/a.py", "absent", "x")
    with pytest.raises(NotFoundError):
        backend.edit("/nope.py", "content", "x")


def test_ls_lists_direct_children_with_dirs(backend):
    backend.write("/a.txt", "a")
    backend.write("/src/main.py", "print()")
    backend.write("/src/pkg/mod.py", "")

    assert backend.ls("/") == ["a.txt", "src/"]
    assert backend.ls("/src") == ["main.py", "pkg/"]
    infos = backend.ls_info("/src/")
    assert [info.path for info in infos] == ["/src/main.py", "/src/pkg/"]
    assert infos[1].is_dir


def test_glob_relative_to_path(backend):
    backend.write("/src/a.py", "")
    backend.write("/src/pkg/b.py", "")
    backend.write("/docs/c.md", "")

    assert backend.glob("**/*.py") == ["/src/a.py", "/src/pkg/b.py"]
    assert backend.glob("*.md", "/docs") == ["/docs/c.md"]


def test_grep_reports_path_line_and_text(backend):
    backend.write("/a.py", "import os\nprint('hi')\n")
    backend.write("/b.txt", "print me")

    matches = backend.grep(r"print")
    assert [(m.path, m.line) for m in matches] == [("/a.py", 2), ("/b.txt", 1)]

    only_py = backend.grep(r"print", glob="*.py")
    assert [m.path for m in only_py] == ["/a.py"]


def test_grep_invalid_regex(backend):
    with pytest.raises(ValidationError):
        backend.grep("(unclosed")


def test_delete(backend, state):
    backend.write("/a.txt", "a")
    backend.delete("/a.txt")

    assert "/a.txt" not in state.files
    with pytest.raises(NotFoundError):
        backend.delete("/a.txt")
