"""PersistentBackend - files stored in an external key-value store.

Unlike StateBackend, files written here outlive the conversation that wrote
them: any agent sharing the same store and namespace sees them.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError as PydanticValidationError

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
from core.state.types import FileData

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal key-value collaborator. Values are JSON-compatible."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def list(self, prefix: str) -> list[str]: ...


class InMemoryStore:
    """Dict-backed KeyValueStore for tests and single-process use."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def list(self, prefix: str) -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))

    def clear(self) -> None:
        self._data.clear()

    def size(self) -> int:
        return len(self._data)


class PersistentBackend:
    """Backend over a KeyValueStore.

    File ``/notes.md`` in namespace ``default`` is stored under the key
    ``default:filesystem:/notes.md``.
    """

    def __init__(self, store: KeyValueStore, namespace: str = "default"):
        self.store = store
        self.namespace = namespace

    @property
    def prefix(self) -> str:
        return f"{self.namespace}:filesystem:"

    def _key(self, path: str) -> str:
        return self.prefix + path

    def _parse(self, key: str, value: Any) -> FileData | None:
        if value is None:
            return None
        try:
            return FileData.model_validate(value)
        except PydanticValidationError as e:
            logger.warning("Skipping malformed file entry %s: %s", key, e)
            return None

    def _load_all(self) -> dict[str, FileData]:
        files: dict[str, FileData] = {}
        for key in self.store.list(self.prefix):
            file_data = self._parse(key, self.store.get(key))
            if file_data is not None:
                files[key[len(self.prefix) :]] = file_data
        return files

    def read(self, path: str, offset: int = 0, limit: int = 2000) -> str:
        return format_read_response(self.read_raw(path), offset, limit)

    def read_raw(self, path: str) -> FileData:
        key = self._key(path)
        file_data = self._parse(key, self.store.get(key))
        if file_data is None:
            raise NotFoundError(f"File '{path}' not found")
        return file_data

    def write(self, path: str, content: str) -> WriteResult:
        key = self._key(path)
        existing = self._parse(key, self.store.get(key))
        file_data = update_file_data(existing, content) if existing else create_file_data(content)
        self.store.set(key, file_data.model_dump(mode="json"))
        return WriteResult(path=path)

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        file_data = self.read_raw(path)
        new_content, occurrences = perform_string_replacement(
            file_data_to_string(file_data), old_string, new_string, replace_all
        )
        self.store.set(self._key(path), update_file_data(file_data, new_content).model_dump(mode="json"))
        return EditResult(path=path, occurrences=occurrences)

    def delete(self, path: str) -> None:
        key = self._key(path)
        if self.store.get(key) is None:
            raise NotFoundError(f"File '{path}' not found")
        self.store.delete(key)

    def ls(self, path: str = "/") -> list[str]:
        return names_from_infos(self.ls_info(path))

    def ls_info(self, path: str = "/") -> list[FileInfo]:
        return ls_info_from_files(self._load_all(), path)

    def glob(self, pattern: str, path: str = "/") -> list[str]:
        return [info.path for info in self.glob_info(pattern, path)]

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        return glob_search_files(self._load_all(), pattern, path)

    def grep(self, pattern: str, path: str = "/", glob: str | None = None) -> list[GrepMatch]:
        return grep_matches_from_files(self._load_all(), pattern, path, glob)
