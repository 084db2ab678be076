"""File system capability confined to the workspace root.

Every method resolves its path with resolve_safe_path before touching disk.
Reads (and patches) are capped at MAX_FILE_SIZE. Writes, patches and
write-mode opens require the write-permission flag.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agentscript.capabilities.base import Capability
from agentscript.capabilities.patch import apply_patch
from agentscript.capabilities.path_guard import resolve_safe_path
from agentscript.core import MAX_FILE_SIZE, HostCallError, SizeLimitExceededError

logger = logging.getLogger(__name__)

FILE_MODES = {
    "r": "r",
    "rb": "r",
    "w": "w",
    "wb": "w",
    "a": "a",
    "ab": "a",
}


def parse_file_mode(mode: str) -> str:
    """Normalize an ``open()`` mode to one of ``r``, ``w``, ``a``."""
    try:
        return FILE_MODES[mode.strip().lower()]
    except KeyError:
        raise HostCallError("unsupported io mode (expected r, w, or a)") from None


def check_size(path: Path, label: str) -> None:
    if path.stat().st_size > MAX_FILE_SIZE:
        raise SizeLimitExceededError(f"file {label} exceeds size limit ({MAX_FILE_SIZE} bytes)")


class SandboxFile:
    """File handle returned by ``open()`` inside the sandbox.

    The whole file is buffered in memory. Writes reach disk on close(),
    when the ``with`` block exits, or when the handle is garbage collected.
    """

    def __init__(self, path: Path, mode: str):
        self._path = path
        self.mode = mode
        self.closed = True
        self._dirty = mode == "w"
        self._cursor = 0
        if mode == "r":
            self._buffer = path.read_text()
        elif mode == "a":
            self._buffer = path.read_text() if path.exists() else ""
        else:
            self._buffer = ""
        self.closed = False

    def _ensure_open(self) -> None:
        if self.closed:
            raise HostCallError("file already closed")

    def _ensure_readable(self) -> None:
        self._ensure_open()
        if self.mode != "r":
            raise HostCallError("file opened without read access")

    def read(self) -> str:
        """Read the rest of the file."""
        self._ensure_readable()
        data = self._buffer[self._cursor :]
        self._cursor = len(self._buffer)
        return data

    def readline(self) -> str | None:
        """Read one line without its terminator, or None at end of file."""
        self._ensure_readable()
        if self._cursor >= len(self._buffer):
            return None
        end = self._buffer.find("\n", self._cursor)
        if end == -1:
            line = self._buffer[self._cursor :]
            self._cursor = len(self._buffer)
        else:
            line = self._buffer[self._cursor : end]
            self._cursor = end + 1
        return line.rstrip("\r")

    def readlines(self) -> list[str]:
        return list(self)

    def write(self, data: str) -> bool:
        """Append ``data`` to the buffer."""
        self._ensure_open()
        if self.mode == "r":
            raise HostCallError("file opened in read-only mode")
        if not isinstance(data, str):
            raise HostCallError(f"write expects a string, got {type(data).__name__}")
        self._buffer += data
        self._dirty = True
        return True

    def close(self) -> bool:
        """Flush pending writes and close the handle."""
        if self.closed:
            return True
        if self.mode != "r" and self._dirty:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(self._buffer)
            logger.debug("fs flush path=%s bytes=%s", self._path, len(self._buffer))
        self.closed = True
        return True

    def __iter__(self):
        while True:
            line = self.readline()
            if line is None:
                return
            yield line

    def __enter__(self) -> "SandboxFile":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self):
        try:
            self.close()
        except OSError:
            logger.warning("fs flush failed path=%s", self._path)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<SandboxFile {self._path.name!r} mode={self.mode!r} {state}>"


class FileSystemCapability(Capability):
    """Read, list, write and patch files under the workspace root."""

    name = "fs"
    description = "Read, list, write and patch files inside the workspace."
    write_methods = ("write_file", "patch_file")

    def __init__(self, root: Path, allow_writes: bool = False):
        """Initialize with the workspace root.

        Args:
            root: Workspace root directory.
            allow_writes: Whether write_file/patch_file/write-mode open work.
        """
        self.root = Path(root).resolve()
        self.allow_writes = allow_writes

    def _resolve(self, path: str) -> Path:
        if not isinstance(path, str):
            raise HostCallError(f"path must be a string, got {type(path).__name__}")
        return resolve_safe_path(self.root, path)

    def read_file(self, path: str) -> str:
        """Read a text file (at most 10 MiB).

        Raises:
            PathEscapeError: If the path leaves the workspace.
            SizeLimitExceededError: If the file is too large.
            FileNotFoundError: If the file does not exist.
        """
        resolved = self._resolve(path)
        check_size(resolved, path)
        logger.debug("fs read path=%s", resolved)
        return resolved.read_text()

    def list_dir(self, path: str = ".") -> list[dict]:
        """List a directory as [{name, is_dir}, ...] sorted by name."""
        resolved = self._resolve(path)
        logger.debug("fs list path=%s", resolved)
        return [
            {"name": entry.name, "is_dir": entry.is_dir()}
            for entry in sorted(resolved.iterdir(), key=lambda p: p.name)
        ]

    def write_file(self, path: str, contents: str) -> None:
        """Write a text file, creating parent directories.

        Raises:
            PermissionDeniedError: If writes are disabled.
        """
        self._require_writes()
        resolved = self._resolve(path)
        if not isinstance(contents, str):
            raise HostCallError(f"contents must be a string, got {type(contents).__name__}")
        logger.debug("fs write path=%s bytes=%s", resolved, len(contents))
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(contents)

    def patch_file(self, path: str, unified_diff: str) -> None:
        """Apply a unified diff to a file in place.

        The file is only rewritten when every hunk applies.

        Raises:
            PermissionDeniedError: If writes are disabled.
            PatchParseError: If the diff is malformed.
            PatchConflictError: If a hunk does not fit the current file.
        """
        self._require_writes()
        resolved = self._resolve(path)
        check_size(resolved, path)
        original = resolved.read_text()
        patched = apply_patch(original, unified_diff)
        logger.debug("fs patch path=%s bytes=%s", resolved, len(patched))
        resolved.write_text(patched)

    def open(self, path: str, mode: str = "r") -> SandboxFile:
        """Open a buffered file handle (modes r, w, a)."""
        file_mode = parse_file_mode(mode)
        if file_mode != "r":
            self._require_writes()
        resolved = self._resolve(path)
        if file_mode == "r":
            check_size(resolved, path)
        logger.debug("fs open path=%s mode=%s", resolved, file_mode)
        return SandboxFile(resolved, file_mode)

    def lines(self, path: str):
        """Iterate over the lines of a file."""
        resolved = self._resolve(path)
        check_size(resolved, path)
        return iter(resolved.read_text().splitlines())
