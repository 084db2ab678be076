"""Simulate-only stand-ins for the write-capable capabilities.

Used by SandboxExecutor.preview(). Each write-capable method records what
it would have done into the preview report instead of acting. Read-capable
methods are inherited unchanged so scripts can still inspect the workspace.
Nothing here consults the write-permission flag: previews never write.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from agentscript.capabilities.command_line import CommandLineCapability
from agentscript.capabilities.file_system import FileSystemCapability, SandboxFile, parse_file_mode
from agentscript.capabilities.patch import check_patch
from agentscript.core import BufferSink, PatchParseError, SandboxError

logger = logging.getLogger(__name__)


class PreviewFile(SandboxFile):
    """Write-mode handle that reports its contents instead of flushing them."""

    def __init__(self, path: Path, mode: str, label: str, report: BufferSink):
        super().__init__(path, mode)
        self._label = label
        self._report = report

    def close(self) -> bool:
        if self.closed:
            return True
        if self._dirty:
            self._report.append(f"Would write to `{self._label}` ({len(self._buffer.encode())} bytes)")
        self.closed = True
        return True


class PreviewFileSystemCapability(FileSystemCapability):
    """FileSystemCapability whose writers only describe their effect."""

    def __init__(self, root: Path, report: BufferSink):
        super().__init__(root, allow_writes=False)
        self._report = report

    def write_file(self, path: str, contents: str) -> None:
        """Record the write that would happen."""
        size = len(contents.encode()) if isinstance(contents, str) else 0
        self._report.append(f"Would write to `{path}` ({size} bytes)")

    def patch_file(self, path: str, unified_diff: str) -> None:
        """Dry-run the patch and record whether it applies."""
        try:
            resolved = self._resolve(path)
        except SandboxError as exc:
            self._report.append(f"Invalid path `{path}`: {exc}")
            return
        if not resolved.exists():
            self._report.append(f"Patch target `{path}` does not exist.")
            return
        try:
            original = self.read_file(path)
        except (OSError, SandboxError) as exc:
            self._report.append(f"Could not read `{path}`: {exc}")
            return
        try:
            check = check_patch(original, unified_diff)
        except PatchParseError as exc:
            self._report.append(f"Invalid diff format for `{path}`: {exc}")
            return
        if check.ok:
            self._report.append(f"Patch applies cleanly to `{path}`:\n{unified_diff}")
        else:
            self._report.append(f"Patch CONFLICT for `{path}`: {check.error}")

    def open(self, path: str, mode: str = "r") -> SandboxFile:
        """Open for reading as usual; write modes are simulated."""
        file_mode = parse_file_mode(mode)
        if file_mode == "r":
            return super().open(path, mode)
        resolved = self._resolve(path)
        return PreviewFile(resolved, file_mode, path, self._report)


class PreviewCommandLineCapability(CommandLineCapability):
    """CommandLineCapability whose run_command only describes the call."""

    def __init__(self, root: Path, report: BufferSink):
        super().__init__(root, allow_writes=False)
        self._report = report

    def run_command(self, cmd: str, args: Sequence[str] | None = None) -> dict:
        """Record the command and pretend it succeeded."""
        rendered = " ".join(str(arg) for arg in (args or []))
        self._report.append(f"Would run command: {cmd} {rendered}")
        return {"status": 0, "stdout": "", "stderr": ""}
