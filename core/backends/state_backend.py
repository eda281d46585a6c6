"""StateBackend - files held directly in AgentState (ephemeral, in-memory)."""

from __future__ import annotations

from core.backends.protocol import EditResult, FileInfo, GrepMatch, WriteResult
from core.backends.utils import (
    create_file_data,
    file_data_to_string,
    format_read_response,
    glob_search_files,
    grep_matches_from_files,
    ls_info_from_files,
    names_from_infos,
    perform_string_replacement,
    update_file_data,
)
from core.errors import NotFoundError
from core.state.types import AgentState, FileData


class StateBackend:
    """Backend over ``state.files``.

    Files live as long as the AgentState does. Because a forked subagent state
    shares the same ``files`` dict, a StateBackend built on either state sees
    the other's writes immediately.
    """

    def __init__(self, state: AgentState):
        self.state = state

    @property
    def files(self) -> dict[str, FileData]:
        return self.state.files

    def read(self, path: str, offset: int = 0, limit: int = 2000) -> str:
        return format_read_response(self.read_raw(path), offset, limit)

    def read_raw(self, path: str) -> FileData:
        file_data = self.files.get(path)
        if file_data is None:
            raise NotFoundError(f"File '{path}' not found")
        return file_data

    def write(self, path: str, content: str) -> WriteResult:
        existing = self.files.get(path)
        if existing is not None:
            self.files[path] = update_file_data(existing, content)
        else:
            self.files[path] = create_file_data(content)
        return WriteResult(path=path)

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        file_data = self.read_raw(path)
        new_content, occurrences = perform_string_replacement(
            file_data_to_string(file_data), old_string, new_string, replace_all
        )
        self.files[path] = update_file_data(file_data, new_content)
        return EditResult(path=path, occurrences=occurrences)

    def delete(self, path: str) -> None:
        if self.files.pop(path, None) is None:
            raise NotFoundError(f"File '{path}' not found")

    def ls(self, path: str = "/") -> list[str]:
        return names_from_infos(self.ls_info(path))

    def ls_info(self, path: str = "/") -> list[FileInfo]:
        return ls_info_from_files(self.files, path)

    def glob(self, pattern: str, path: str = "/") -> list[str]:
        return [info.path for info in self.glob_info(pattern, path)]

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        return glob_search_files(self.files, pattern, path)

    def grep(self, pattern: str, path: str = "/", glob: str | None = None) -> list[GrepMatch]:
        return grep_matches_from_files(self.files, pattern, path, glob)
