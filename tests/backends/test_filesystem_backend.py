import os

import pytest

from core.backends import FilesystemBackend
from core.errors import FileAccessError, NotFoundError, SandboxViolationError, ValidationError


@pytest.fixture
def root(tmp_path):
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def backend(root):
    return FilesystemBackend(root_dir=root, virtual_mode=True)


def test_virtual_paths_map_under_root(backend, root):
    backend.write("/src/main.py", "print('hi')")

    assert (root / "src" / "main.py").read_text() == "print('hi')"
    assert backend.read("/src/main.py") == "     1\tprint('hi')"


def test_write_leaves_no_temp_files(backend, root):
    backend.write("/a.txt", "one")
    backend.write("/a.txt", "two")

    assert sorted(p.name for p in root.iterdir()) == ["a.txt"]
    assert (root / "a.txt").read_text() == "two"


def test_parent_traversal_is_sandbox_violation(backend):
    with pytest.raises(SandboxViolationError):
        backend.read("/../outside.txt")
    with pytest.raises(SandboxViolationError):
        backend.write("/../../etc/evil", "x")


def test_non_virtual_mode_rejects_paths_outside_root(root, tmp_path):
    backend = FilesystemBackend(root_dir=root, virtual_mode=False)
    outside = tmp_path / "outside.txt"
    outside.write_text("secret")

    with pytest.raises(SandboxViolationError):
        backend.read(str(outside))

    backend.write(str(root / "in.txt"), "ok")
    assert backend.read_raw(str(root / "in.txt")).content == ["ok"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinks_are_refused(backend, root, tmp_path):
    outside = tmp_path / "target.txt"
    outside.write_text("secret")
    (root / "link.txt").symlink_to(outside)
    (root / "inner.txt").write_text("inner")
    (root / "inner_link.txt").symlink_to(root / "inner.txt")

    with pytest.raises(SandboxViolationError):
        backend.read("/link.txt")
    with pytest.raises(SandboxViolationError):
        backend.read("/inner_link.txt")


def test_missing_file_and_size_limit(root):
    backend = FilesystemBackend(root_dir=root, max_file_size_mb=1)
    (root / "huge.bin").write_text("x" * (1024 * 1024 + 1))

    with pytest.raises(NotFoundError):
        backend.read("/nope.txt")
    with pytest.raises(ValidationError):
        backend.read("/huge.bin")


def test_edit_writes_through(backend, root):
    (root / "cfg.ini").write_text("debug = false\n")

    result = backend.edit("/cfg.ini", "false", "true")

    assert result.occurrences == 1
    assert (root / "cfg.ini").read_text() == "debug = true\n"


def test_ls_and_glob_use_virtual_paths(backend, root):
    (root / "pkg").mkdir()
    (root / "pkg" / "a.py").write_text("")
    (root / "pkg" / "b.txt").write_text("")
    (root / "top.py").write_text("")

    assert backend.ls("/") == ["pkg/", "top.py"]
    assert [info.path for info in backend.ls_info("/pkg")] == ["/pkg/a.py", "/pkg/b.txt"]
    assert backend.glob("**/*.py") == ["/pkg/a.py", "/top.py"]
    assert backend.glob("*.py", "/pkg") == ["/pkg/a.py"]


def test_grep_python_fallback(backend, root):
    backend.has_ripgrep = False
    (root / "a.py").write_text("def main():\n    return 1\n")
    (root / "b.md").write_text("main docs\n")

    matches = backend.grep(r"main")
    assert [(m.path, m.line) for m in matches] == [("/a.py", 1), ("/b.md", 1)]

    assert [m.path for m in backend.grep(r"main", glob="*.py")] == ["/a.py"]


def test_grep_invalid_regex(backend):
    with pytest.raises(ValidationError):
        backend.grep("[unclosed")


def test_non_utf8_file_is_validation_error(backend, root):
    (root / "blob.bin").write_bytes(b"\xff\xfe\x00binary")

    with pytest.raises(ValidationError, match="UTF-8"):
        backend.read("/blob.bin")


def test_write_below_a_file_is_file_access_error(backend, root):
    (root / "f").write_text("plain file")

    with pytest.raises(FileAccessError):
        backend.write("/f/g.txt", "x")

    assert (root / "f").read_text() == "plain file"
    assert sorted(p.name for p in root.iterdir()) == ["f"]
