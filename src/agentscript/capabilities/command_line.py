"""Process capability: commands, text search and git status.

Commands run without a shell, with the workspace root (or a directory
inside it) as working directory. run_command is gated by the
write-permission flag together with the file writers; search and
git_status are read-only and always available.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from agentscript.capabilities.base import Capability
from agentscript.capabilities.path_guard import resolve_safe_path
from agentscript.core import HostCallError

logger = logging.getLogger(__name__)

RUN_COMMAND_DISABLED = "write helpers (including run_command) are disabled"


@dataclass
class CommandResult:
    """Result of a command execution."""

    status: int
    stdout: str
    stderr: str

    def to_table(self) -> dict:
        return {"status": self.status, "stdout": self.stdout, "stderr": self.stderr}

    def __str__(self) -> str:
        """Format as readable output."""
        parts = []
        if self.stdout:
            parts.append(self.stdout)
        if self.stderr:
            parts.append(f"[stderr] {self.stderr}")
        parts.append(f"[exit code: {self.status}]")
        return "\n".join(parts)


class CommandLineCapability(Capability):
    """Run programs inside the workspace."""

    name = "cmd"
    description = "Run programs, search text and inspect git state in the workspace."
    write_methods = ("run_command",)

    def __init__(self, root: Path, allow_writes: bool = False, timeout: float = 60):
        """Initialize command line capability.

        Args:
            root: Workspace root, used as the working directory.
            allow_writes: Whether run_command is permitted.
            timeout: Maximum seconds a command can run.
        """
        self.root = Path(root).resolve()
        self.allow_writes = allow_writes
        self.timeout = timeout

    def _exec(self, argv: list[str], cwd: Path) -> CommandResult:
        try:
            logger.debug("cmd run argv=%s cwd=%s", argv, cwd)
            result = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.debug("cmd timeout seconds=%s", self.timeout)
            return CommandResult(
                status=-1,
                stdout="",
                stderr=f"Command timed out after {self.timeout} seconds",
            )
        except OSError as exc:
            raise HostCallError(f"failed to run {argv[0]}: {exc}") from exc
        logger.debug("cmd result status=%s", result.returncode)
        return CommandResult(
            status=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def run_command(self, cmd: str, args: Sequence[str] | None = None) -> dict:
        """Run a program (no shell) and return {status, stdout, stderr}.

        Raises:
            PermissionDeniedError: If writes are disabled.
            HostCallError: If the program cannot be started.
        """
        self._require_writes(RUN_COMMAND_DISABLED)
        argv = [str(cmd), *(str(arg) for arg in (args or []))]
        return self._exec(argv, self.root).to_table()

    def search(self, pattern: str, dir: str | None = None) -> dict:
        """Recursive grep for ``pattern``; returns {status, stdout, stderr}."""
        target = resolve_safe_path(self.root, dir) if dir else self.root
        return self._exec(["grep", "-r", "-n", "-e", str(pattern), "."], target).to_table()

    def git_status(self) -> dict:
        """``git status --porcelain`` in the workspace; returns {status, stdout}."""
        result = self._exec(["git", "status", "--porcelain"], self.root)
        return {"status": result.status, "stdout": result.stdout}
