"""Core abstractions for the script sandbox.

This module defines the fundamental types used throughout the system:
- SandboxError and its subclasses: every recoverable failure the sandbox reports
- Execution: the captured output of one script run
- SessionBuffers: the single owner of a session's output buffers
- BufferSink: the narrow append-only handle host functions write through
- ScriptResult: a non-raising wrapper around a run, used by the MCP harness
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

MAX_FILE_SIZE = 10 * 1024 * 1024
"""Largest file (in bytes) the sandbox will read or patch."""

WRITE_FLAG_NAME = "allow_writes"


class SandboxError(Exception):
    """Base class for all errors raised by the sandbox."""


class PathEscapeError(SandboxError, PermissionError):
    """A path resolved outside the workspace root."""


class PermissionDeniedError(SandboxError, PermissionError):
    """A write-capable host function was called while writes are disabled."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or f"write helpers are disabled (set {WRITE_FLAG_NAME} = true)"
        )


class SizeLimitExceededError(SandboxError, OSError):
    """A file exceeded MAX_FILE_SIZE."""


class PatchParseError(SandboxError, ValueError):
    """A unified diff could not be parsed."""


class PatchConflictError(SandboxError):
    """A hunk targets lines outside the current buffer."""


class HostCallError(SandboxError, RuntimeError):
    """A host function received bad input or its backend failed."""


class ScriptEvaluationError(SandboxError):
    """The interpreter raised while evaluating a script.

    Attributes:
        diagnostic: Full diagnostic text (exception and trimmed traceback).
        error_type: Name of the exception class raised inside the script.
    """

    def __init__(self, diagnostic: str, error_type: str = "Exception"):
        super().__init__(diagnostic)
        self.diagnostic = diagnostic
        self.error_type = error_type


class SessionInitError(SandboxError):
    """Installing the host table or prelude into a fresh session failed."""


class ToolArgumentError(SandboxError, ValueError):
    """Arguments for the script tool were malformed."""


class StreamDisconnectedError(SandboxError):
    """A background LLM exchange ended without reporting a result."""


class ToolStatus(Enum):
    """Lifecycle state of a tool log entry."""

    PENDING = "pending"
    SUCCESS = "ok"
    ERROR = "error"


@dataclass
class Execution:
    """Captured output of one script run."""

    value: str = "nil"
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    structured_updates: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        """Render for a transcript or tool log."""
        value = self.value if self.value.strip() else "<empty>"
        sections = [f"Script value:\n{value}"]
        for title, lines in (
            ("Stdout", self.stdout),
            ("Stderr", self.stderr),
            ("Logs", self.logs),
        ):
            if lines:
                sections.append(f"{title}:\n" + "\n".join(lines))
        return "\n\n".join(sections)


@dataclass
class ScriptResult:
    """Outcome of SandboxExecutor.execute(), which never raises."""

    success: bool
    execution: Execution | None = None
    error: str | None = None
    error_type: str | None = None

    def __str__(self) -> str:
        if self.success and self.execution is not None:
            return str(self.execution)
        return f"Error: {self.error}"


class BufferSink:
    """Append-only handle onto one of a session's buffers."""

    __slots__ = ("_lines",)

    def __init__(self, lines: list[str]):
        self._lines = lines

    def append(self, line: str) -> None:
        self._lines.append(line)

    def __len__(self) -> int:
        return len(self._lines)


class SessionBuffers:
    """Owns the four output buffers of a sandbox session.

    Host functions never see the lists themselves; they get a BufferSink.
    Only the executor clears or collects them.
    """

    def __init__(self):
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._logs: list[str] = []
        self._updates: list[str] = []

    @property
    def stdout(self) -> BufferSink:
        return BufferSink(self._stdout)

    @property
    def stderr(self) -> BufferSink:
        return BufferSink(self._stderr)

    @property
    def logs(self) -> BufferSink:
        return BufferSink(self._logs)

    @property
    def updates(self) -> BufferSink:
        return BufferSink(self._updates)

    def clear(self) -> None:
        for buffer in (self._stdout, self._stderr, self._logs, self._updates):
            buffer.clear()

    def collect(self, value: str) -> Execution:
        """Drain the buffers into an Execution."""
        execution = Execution(
            value=value,
            stdout=list(self._stdout),
            stderr=list(self._stderr),
            logs=list(self._logs),
            structured_updates=list(self._updates),
        )
        self.clear()
        return execution
