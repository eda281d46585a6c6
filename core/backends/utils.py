"""Helpers shared by the backend implementations."""

from __future__ import annotations

import fnmatch
import posixpath
import re
from datetime import datetime, timezone

from core.backends.protocol import FileInfo, GrepMatch
from core.errors import ConflictError, NotFoundError, ValidationError
from core.state.types import FileData

EMPTY_CONTENT_WARNING = "System reminder: File exists but has empty contents"

# Width of the right-aligned line number column (cat -n style).
LINE_NUMBER_WIDTH = 6

DEFAULT_READ_LIMIT = 2000


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_file_data(content: str, created_at: str | None = None) -> FileData:
    now = now_iso()
    return FileData(content=content.split("\n"), created_at=created_at or now, modified_at=now)


def update_file_data(file_data: FileData, content: str) -> FileData:
    return create_file_data(content, created_at=file_data.created_at)


def file_data_to_string(file_data: FileData) -> str:
    return "\n".join(file_data.content)


def format_content_with_line_numbers(lines: list[str], start_line: int = 1) -> str:
    return "\n".join(f"{i:>{LINE_NUMBER_WIDTH}}\t{line}" for i, line in enumerate(lines, start_line))


def format_read_response(file_data: FileData, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
    """Numbered slice of a file. Empty files yield a reminder instead of nothing."""
    content = file_data_to_string(file_data)
    if not content.strip():
        return EMPTY_CONTENT_WARNING

    lines = content.split("\n")
    if offset < 0 or offset >= len(lines):
        raise ValidationError(f"Line offset {offset} exceeds file length ({len(lines)} lines)")

    selected = lines[offset : offset + limit]
    return format_content_with_line_numbers(selected, offset + 1)


def perform_string_replacement(
    content: str,
    old_string: str,
    new_string: str,
    replace_all: bool = False,
) -> tuple[str, int]:
    """Return ``(new_content, occurrences)``.

    Raises:
        ValidationError: empty old_string
        NotFoundError: old_string not in content
        ConflictError: old_string occurs more than once and replace_all is False
    """
    if not old_string:
        raise ValidationError("old_string must not be empty")

    occurrences = content.count(old_string)
    if occurrences == 0:
        raise NotFoundError(f"String not found in file: '{old_string}'")
    if occurrences > 1 and not replace_all:
        raise ConflictError(
            f"String '{old_string}' appears {occurrences} times in file. "
            "Use replace_all=True to replace all instances, or provide a more specific string with surrounding context."
        )

    if replace_all:
        return content.replace(old_string, new_string), occurrences
    return content.replace(old_string, new_string, 1), 1


def normalize_dir(path: str) -> str:
    """``"/a/b"`` -> ``"/a/b/"``; empty path means root."""
    if not path:
        return "/"
    return path if path.endswith("/") else path + "/"


def relative_to(path: str, base: str) -> str | None:
    """Path of *path* below directory *base*, or None if outside it.

    A *base* naming the file itself yields the file's basename.
    """
    if base and base != "/" and path == base.rstrip("/"):
        return posixpath.basename(path)
    base = normalize_dir(base)
    if base == "/":
        return path.lstrip("/")
    if not path.startswith(base):
        return None
    return path[len(base) :]


def glob_match(relative_path: str, pattern: str) -> bool:
    """fnmatch-style matching; ``*`` also crosses ``/`` and a leading ``**/`` may match nothing."""
    pattern = pattern.lstrip("/")
    if fnmatch.fnmatchcase(relative_path, pattern):
        return True
    if pattern.startswith("**/"):
        return fnmatch.fnmatchcase(relative_path, pattern[3:])
    return False


def ls_info_from_files(files: dict[str, FileData], path: str) -> list[FileInfo]:
    """Non-recursive listing over a flat path -> FileData map."""
    normalized = normalize_dir(path)
    infos: list[FileInfo] = []
    subdirs: set[str] = set()

    for key, fd in files.items():
        if not key.startswith(normalized):
            continue
        relative = key[len(normalized) :]
        if "/" in relative:
            subdirs.add(normalized + relative.split("/", 1)[0] + "/")
            continue
        infos.append(FileInfo(path=key, is_dir=False, size=fd.size, modified_at=fd.modified_at))

    for subdir in subdirs:
        infos.append(FileInfo(path=subdir, is_dir=True))

    infos.sort(key=lambda info: info.path)
    return infos


def names_from_infos(infos: list[FileInfo]) -> list[str]:
    names = []
    for info in infos:
        name = posixpath.basename(info.path.rstrip("/"))
        names.append(name + "/" if info.is_dir else name)
    return names


def glob_search_files(files: dict[str, FileData], pattern: str, path: str = "/") -> list[FileInfo]:
    infos = []
    for key, fd in files.items():
        relative = relative_to(key, path)
        if relative is None or not glob_match(relative, pattern):
            continue
        infos.append(FileInfo(path=key, is_dir=False, size=fd.size, modified_at=fd.modified_at))
    infos.sort(key=lambda info: info.path)
    return infos


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"Invalid regex pattern: {e}") from e


def grep_matches_from_files(
    files: dict[str, FileData],
    pattern: str,
    path: str = "/",
    glob: str | None = None,
) -> list[GrepMatch]:
    regex = compile_pattern(pattern)
    matches: list[GrepMatch] = []
    for key in sorted(files):
        relative = relative_to(key, path)
        if relative is None:
            continue
        if glob and not (fnmatch.fnmatchcase(posixpath.basename(key), glob) or glob_match(relative, glob)):
            continue
        for i, line in enumerate(files[key].content, 1):
            if regex.search(line):
                matches.append(GrepMatch(path=key, line=i, text=line))
    return matches
