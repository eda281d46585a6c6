"""FilesystemBackend - real files under a sandboxed root directory."""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import shutil
import subprocess
import uuid
from datetime import datetime, timezone
from pathlib import Path

from core.backends.protocol import EditResult, FileInfo, GrepMatch, WriteResult
from core.backends.utils import (
    compile_pattern,
    file_data_to_string,
    format_read_response,
    glob_match,
    names_from_infos,
    perform_string_replacement,
)
from core.errors import FileAccessError, NotFoundError, SandboxViolationError, ValidationError
from core.state.types import FileData

logger = logging.getLogger(__name__)

RIPGREP_TIMEOUT = 30


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class FilesystemBackend:
    """Backend that reads and writes files on the local disk.

    Every path is resolved (symlinks included) and must stay inside
    ``root_dir``; anything else raises SandboxViolationError.

    In virtual mode, paths are root-relative (``/src/main.py`` means
    ``{root_dir}/src/main.py``) and results use the same form. Otherwise
    paths are absolute host paths, still confined to ``root_dir``.
    """

    def __init__(
        self,
        root_dir: str | Path | None = None,
        virtual_mode: bool = True,
        max_file_size_mb: int = 10,
    ):
        self.root = Path(root_dir).resolve() if root_dir else Path.cwd().resolve()
        self.virtual_mode = virtual_mode
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        self.has_ripgrep = shutil.which("rg") is not None

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        if self.virtual_mode:
            candidate = self.root / path.lstrip("/")
        else:
            candidate = Path(path) if Path(path).is_absolute() else self.root / path

        if candidate.is_symlink():
            raise SandboxViolationError(f"Refusing to follow symlink '{path}'")

        resolved = candidate.resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise SandboxViolationError(f"Path '{path}' resolves outside root directory {self.root}") from None
        return resolved

    def _to_external(self, p: Path) -> str:
        if not self.virtual_mode:
            return str(p)
        relative = p.relative_to(self.root).as_posix()
        return "/" if relative == "." else "/" + relative

    def _inside_root(self, p: Path) -> bool:
        try:
            p.resolve().relative_to(self.root)
        except (ValueError, OSError):
            return False
        return True

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int = 0, limit: int = 2000) -> str:
        return format_read_response(self.read_raw(path), offset, limit)

    def read_raw(self, path: str) -> FileData:
        resolved = self._resolve(path)
        if not resolved.is_file():
            raise NotFoundError(f"File '{path}' not found")

        try:
            stat = resolved.stat()
            if stat.st_size > self.max_file_size_bytes:
                raise ValidationError(f"File '{path}' is {stat.st_size} bytes, above the {self.max_file_size_bytes} byte limit")
            content = resolved.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise ValidationError(f"File '{path}' is not valid UTF-8 text") from None
        except OSError as e:
            raise FileAccessError(f"Cannot read '{path}': {e.strerror or e}") from e
        return FileData(
            content=content.split("\n"),
            created_at=_iso(stat.st_ctime),
            modified_at=_iso(stat.st_mtime),
        )

    def _atomic_write(self, target: Path, content: str) -> None:
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            os.replace(tmp, target)
        except OSError as e:
            raise FileAccessError(f"Cannot write '{self._to_external(target)}': {e.strerror or e}") from e
        finally:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass

    def write(self, path: str, content: str) -> WriteResult:
        resolved = self._resolve(path)
        if resolved.is_dir():
            raise ValidationError(f"Cannot write to '{path}': it is a directory")
        self._atomic_write(resolved, content)
        return WriteResult(path=path)

    def edit(self, path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        resolved = self._resolve(path)
        current = file_data_to_string(self.read_raw(path))
        new_content, occurrences = perform_string_replacement(current, old_string, new_string, replace_all)
        self._atomic_write(resolved, new_content)
        return EditResult(path=path, occurrences=occurrences)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def ls(self, path: str = "/") -> list[str]:
        return names_from_infos(self.ls_info(path))

    def ls_info(self, path: str = "/") -> list[FileInfo]:
        resolved = self._resolve(path)
        if not resolved.is_dir():
            return []

        try:
            items = list(resolved.iterdir())
        except OSError as e:
            raise FileAccessError(f"Cannot list '{path}': {e.strerror or e}") from e

        infos: list[FileInfo] = []
        for item in items:
            if not self._inside_root(item):
                continue
            try:
                stat = item.stat()
            except OSError:
                continue
            if item.is_file():
                infos.append(FileInfo(path=self._to_external(item), size=stat.st_size, modified_at=_iso(stat.st_mtime)))
            elif item.is_dir():
                external = self._to_external(item).rstrip("/") + "/"
                infos.append(FileInfo(path=external, is_dir=True, modified_at=_iso(stat.st_mtime)))

        infos.sort(key=lambda info: info.path)
        return infos

    def _walk_files(self, base: Path) -> list[Path]:
        if base.is_file():
            return [base]
        return [p for p in base.rglob("*") if p.is_file() and self._inside_root(p)]

    def glob(self, pattern: str, path: str = "/") -> list[str]:
        return [info.path for info in self.glob_info(pattern, path)]

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        base = self._resolve(path)
        if not base.is_dir():
            return []

        try:
            files = self._walk_files(base)
        except OSError as e:
            raise FileAccessError(f"Cannot search '{path}': {e.strerror or e}") from e

        infos = []
        for p in files:
            if not glob_match(p.relative_to(base).as_posix(), pattern):
                continue
            try:
                stat = p.stat()
            except OSError:
                continue
            infos.append(FileInfo(path=self._to_external(p), size=stat.st_size, modified_at=_iso(stat.st_mtime)))
        infos.sort(key=lambda info: info.path)
        return infos

    # ------------------------------------------------------------------
    # Grep
    # ------------------------------------------------------------------

    def grep(self, pattern: str, path: str = "/", glob: str | None = None) -> list[GrepMatch]:
        regex = compile_pattern(pattern)
        base = self._resolve(path)
        if not base.exists():
            return []

        if self.has_ripgrep:
            matches = self._ripgrep_search(pattern, base, glob)
            if matches is not None:
                return matches

        matches = []
        for fp in sorted(self._walk_files(base)):
            if glob and not fnmatch.fnmatchcase(fp.name, glob):
                continue
            try:
                if fp.stat().st_size > self.max_file_size_bytes:
                    continue
                text = fp.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue
            for i, line in enumerate(text.split("\n"), 1):
                if regex.search(line):
                    matches.append(GrepMatch(path=self._to_external(fp), line=i, text=line))
        return matches

    def _ripgrep_search(self, pattern: str, base: Path, glob: str | None) -> list[GrepMatch] | None:
        """Search with ``rg --json``. Returns None when ripgrep cannot be used."""
        cmd = ["rg", "--json"]
        if glob:
            cmd.extend(["--glob", glob])
        cmd.extend(["--", pattern, str(base)])

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=RIPGREP_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("ripgrep unavailable, falling back to Python search: %s", e)
            return None

        if result.returncode not in (0, 1):
            logger.debug("ripgrep failed (%s): %s", result.returncode, result.stderr.strip())
            return None

        matches: list[GrepMatch] = []
        for raw in result.stdout.splitlines():
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if data.get("type") != "match":
                continue
            payload = data.get("data", {})
            file_text = payload.get("path", {}).get("text")
            line_number = payload.get("line_number")
            if not file_text or line_number is None:
                continue
            fp = Path(file_text)
            if not self._inside_root(fp):
                continue
            line_text = payload.get("lines", {}).get("text", "").rstrip("\n")
            matches.append(GrepMatch(path=self._to_external(fp.resolve()), line=line_number, text=line_text))

        matches.sort(key=lambda m: (m.path, m.line))
        return matches

