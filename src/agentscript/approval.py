"""Approval queue, tool log and the textual commands that drive them.

Scripts that arrive while writes are enabled are not run right away. They
become PendingToolEntry items in an ApprovalQueue, each paired with a
ToolLogEntry in PENDING status, until ``/tool run`` or ``/tool skip``
resolves them. Entries are removed by id, or oldest-first when no id is
given, and are never dropped silently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from agentscript.core import ToolStatus

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 60


def truncate_summary(text: str, limit: int = SUMMARY_LIMIT) -> str:
    """Trim ``text`` to ``limit`` characters for titles ("unspecified" if blank)."""
    trimmed = text.strip()
    if not trimmed:
        return "unspecified"
    if len(trimmed) > limit:
        return trimmed[:limit] + "..."
    return trimmed


@dataclass
class ToolLogEntry:
    """Activity-log record for one queued or executed script."""

    id: int
    title: str
    status: ToolStatus
    detail: str

    def __str__(self) -> str:
        return f"#{self.id} [{self.status.value}] {self.title}"


class ToolLog:
    """Ordered tool activity log with monotonically increasing ids."""

    def __init__(self, first_id: int = 1):
        self._next_id = first_id
        self.entries: list[ToolLogEntry] = []

    def create(self, title: str, detail: str, status: ToolStatus = ToolStatus.PENDING) -> ToolLogEntry:
        entry = ToolLogEntry(id=self._next_id, title=title, status=status, detail=detail)
        self._next_id += 1
        self.entries.append(entry)
        logger.debug("tool log create id=%s title=%s", entry.id, title)
        return entry

    def get(self, entry_id: int) -> ToolLogEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def update(self, entry_id: int, status: ToolStatus, detail: str) -> ToolLogEntry | None:
        """Update an entry in place. Returns None for unknown ids."""
        entry = self.get(entry_id)
        if entry is None:
            logger.warning("tool log update for unknown id=%s", entry_id)
            return None
        entry.status = status
        entry.detail = detail
        logger.debug("tool log update id=%s status=%s", entry_id, status.value)
        return entry

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class PendingToolEntry:
    """A script waiting for user approval."""

    entry_id: int
    title: str
    script: str
    reason: str | None = None
    call_id: str | None = None

    @property
    def label(self) -> str:
        return truncate_summary(self.reason) if self.reason else self.title


class ApprovalQueue:
    """FIFO of pending script runs, addressable by tool-log entry id."""

    def __init__(self):
        self._entries: list[PendingToolEntry] = []

    def enqueue(self, entry: PendingToolEntry) -> None:
        self._entries.append(entry)
        logger.debug("approval enqueue entry_id=%s depth=%s", entry.entry_id, len(self._entries))

    def take(self, entry_id: int | None = None) -> PendingToolEntry | None:
        """Remove and return an entry by id, or the oldest when ``entry_id`` is None."""
        if entry_id is None:
            return self._entries.pop(0) if self._entries else None
        for position, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return self._entries.pop(position)
        return None

    def peek(self) -> PendingToolEntry | None:
        return self._entries[0] if self._entries else None

    @property
    def entries(self) -> list[PendingToolEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


class ToolAction(Enum):
    RUN = "run"
    SKIP = "skip"


@dataclass(frozen=True)
class ToolCommand:
    """``/tool run|approve [id]`` or ``/tool skip|cancel [id]``."""

    action: ToolAction
    entry_id: int | None = None


TOOL_ACTIONS = {
    "run": ToolAction.RUN,
    "approve": ToolAction.RUN,
    "skip": ToolAction.SKIP,
    "cancel": ToolAction.SKIP,
}


def parse_tool_command(text: str) -> ToolCommand | None:
    """Parse a ``/tool`` command; None if ``text`` is not one."""
    trimmed = text.lstrip()
    if not trimmed.startswith("/tool"):
        return None
    parts = trimmed[len("/tool"):].split()
    if not parts:
        return None
    action = TOOL_ACTIONS.get(parts[0].lower())
    if action is None:
        return None
    entry_id = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else None
    return ToolCommand(action=action, entry_id=entry_id)


SCRIPT_COMMAND = "/py"


@dataclass(frozen=True)
class ScriptCommand:
    """``/py <script>`` runs a script directly; ``/py reset`` resets the session."""

    script: str = ""
    reset: bool = False


def parse_script_command(text: str) -> ScriptCommand | None:
    """Parse a ``/py`` command; None if ``text`` is not one."""
    trimmed = text.lstrip()
    if not trimmed.startswith(SCRIPT_COMMAND):
        return None
    rest = trimmed[len(SCRIPT_COMMAND):]
    if rest.strip() == "reset":
        return ScriptCommand(reset=True)
    if not rest:
        return ScriptCommand()
    if rest[0].isspace():
        return ScriptCommand(script=rest.lstrip())
    return None
