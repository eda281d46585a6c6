"""CompositeBackend - route file operations to backends by path prefix.

Example: keep scratch files in agent state but persist long-term notes::

    backend = CompositeBackend(
        StateBackend(state),
        {"/memories/": PersistentBackend(store)},
    )
    backend.write("/memories/user.md", "...")  # -> store key default:filesystem:/user.md
    backend.write("/scratch.txt", "...")       # -> state.files["/scratch.txt"]
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace

from core.backends.protocol import BackendProtocol, EditResult, FileInfo, GrepMatch, WriteResult
from core.backends.utils import names_from_infos
from core.state.types import FileData


class CompositeBackend:
    """Longest-prefix router over one default backend and any number of routes.

    Route prefixes are normalized to end with ``/``. A routed backend sees
    paths with the prefix stripped (``/memories/a.md`` -> ``/a.md``) and its
    results are re-prefixed on the way out.
    """

    def __init__(
        self,
        default: BackendProtocol,
        routes: Mapping[str, BackendProtocol] | Iterable[tuple[str, BackendProtocol]] | None = None,
    ):
        self.default = default
        pairs = routes.items() if isinstance(routes, Mapping) else (routes or [])
        # Declaration order, used for fan-out priority
        self.routes: list[tuple[str, BackendProtocol]] = [
            (prefix if prefix.endswith("/") else prefix + "/", backend) for prefix, backend in pairs
        ]
        # Longest first, used for routing
        self._sorted_routes = sorted(self.routes, key=lambda route: len(route[0]), reverse=True)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @staticmethod
    def _strip(path: str, prefix: str) -> str:
        suffix = path[len(prefix) :]
        return "/" + suffix if suffix else "/"

    def _match_route(self, path: str) -> tuple[str, BackendProtocol] | None:
        for prefix, backend in self._sorted_routes:
            if path.startswith(prefix) or path == prefix.rstrip("/"):
                return prefix, backend
        return None

    def route(self, path: str) -> tuple[BackendProtocol, str]:
        """Backend responsible for *path* and the path as that backend sees it."""
        match = self._match_route(path)
        if match is None:
            return self.default, path
        prefix, backend = match
        return backend, self._strip(path, prefix)

    @staticmethod
    def _reprefix(prefix: str, path: str) -> str:
        return prefix[:-1] + path

    # ------------------------------------------------------------------
    # Single-path operations
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int = 0, limit: int = 2000) -> str:
        backend, key = self.route(path)
        return backend.read(key, offset, limit)

    def read_raw(self, path: str) -> FileData:
        backend, key = self.route(path)
        return backend.read_raw(key)

    def write(self, path: str, content: str) -> WriteResult:
        backend, key = self.route(path)
        backend.write(key, content)
        return WriteResult(path=path)

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        backend, key = self.route(path)
        result = backend.edit(key, old_string, new_string, replace_all)
        return EditResult(path=path, occurrences=result.occurrences)

    # ------------------------------------------------------------------
    # Listing and search
    # ------------------------------------------------------------------

    def ls(self, path: str = "/") -> list[str]:
        return names_from_infos(self.ls_info(path))

    def ls_info(self, path: str = "/") -> list[FileInfo]:
        match = self._match_route(path)
        if match is not None:
            prefix, backend = match
            infos = backend.ls_info(self._strip(path, prefix))
            return [replace(info, path=self._reprefix(prefix, info.path)) for info in infos]

        infos = list(self.default.ls_info(path))
        if path in ("", "/"):
            seen = {info.path for info in infos}
            for prefix, _ in self.routes:
                top = "/" + prefix.strip("/").split("/", 1)[0] + "/"
                if top not in seen:
                    seen.add(top)
                    infos.append(FileInfo(path=top, is_dir=True))
            infos.sort(key=lambda info: info.path)
        return infos

    def glob(self, pattern: str, path: str = "/") -> list[str]:
        return [info.path for info in self.glob_info(pattern, path)]

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        match = self._match_route(path)
        if match is not None:
            prefix, backend = match
            infos = backend.glob_info(pattern, self._strip(path, prefix))
            return [replace(info, path=self._reprefix(prefix, info.path)) for info in infos]

        merged: dict[str, FileInfo] = {}
        for info in self.default.glob_info(pattern, path):
            merged.setdefault(info.path, info)
        for prefix, backend in self.routes:
            for info in backend.glob_info(pattern, "/"):
                full = self._reprefix(prefix, info.path)
                merged.setdefault(full, replace(info, path=full))
        return sorted(merged.values(), key=lambda info: info.path)

    def grep(self, pattern: str, path: str = "/", glob: str | None = None) -> list[GrepMatch]:
        match = self._match_route(path)
        if match is not None:
            prefix, backend = match
            matches = backend.grep(pattern, self._strip(path, prefix), glob)
            return [replace(m, path=self._reprefix(prefix, m.path)) for m in matches]

        # A path answered by an earlier backend is not searched again in later ones
        results: list[GrepMatch] = []
        owned: set[str] = set()
        sources: list[tuple[str | None, BackendProtocol, str]] = [(None, self.default, path)]
        sources.extend((prefix, backend, "/") for prefix, backend in self.routes)
        for prefix, backend, search_path in sources:
            found: set[str] = set()
            for m in backend.grep(pattern, search_path, glob):
                full = m.path if prefix is None else self._reprefix(prefix, m.path)
                if full in owned:
                    continue
                found.add(full)
                results.append(m if prefix is None else replace(m, path=full))
            owned |= found
        return results
