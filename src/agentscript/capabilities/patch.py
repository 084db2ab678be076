"""Unified-diff parsing and in-memory application.

Hunks are applied in order against a line buffer. Each hunk's start line is
shifted by the net number of lines earlier hunks added or removed. A hunk
whose old range falls outside the buffer is a conflict; nothing is written
in that case because callers only persist the returned text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from agentscript.core import PatchConflictError, PatchParseError

logger = logging.getLogger(__name__)

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class LineKind(Enum):
    CONTEXT = " "
    ADD = "+"
    REMOVE = "-"


@dataclass
class Hunk:
    """One ``@@`` block of a unified diff."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[tuple[LineKind, str]] = field(default_factory=list)

    def replacement(self) -> list[str]:
        """Lines that take the place of the old range."""
        return [text for kind, text in self.lines if kind is not LineKind.REMOVE]


@dataclass
class PatchCheck:
    """Result of a dry run."""

    ok: bool
    error: str | None = None
    hunks: int = 0

    def __str__(self) -> str:
        if self.ok:
            return f"patch applies cleanly ({self.hunks} hunk(s))"
        return f"patch conflict: {self.error}"


def parse_unified_diff(text: str) -> list[Hunk]:
    """Parse unified-diff text into hunks.

    ``---``/``+++`` file headers and ``\\ No newline at end of file`` markers
    are accepted and ignored.

    Raises:
        PatchParseError: If there is no hunk or a line cannot be classified.
    """
    hunks: list[Hunk] = []
    current: Hunk | None = None

    for number, raw in enumerate(text.splitlines(), start=1):
        if raw.startswith("@@"):
            match = HUNK_HEADER.match(raw)
            if not match:
                raise PatchParseError(f"failed to parse diff: bad hunk header on line {number}")
            old_start, old_count, new_start, new_count = match.groups()
            current = Hunk(
                old_start=int(old_start),
                old_count=1 if old_count is None else int(old_count),
                new_start=int(new_start),
                new_count=1 if new_count is None else int(new_count),
            )
            hunks.append(current)
            continue

        if current is None:
            # Preamble: file headers, "diff --git", index lines.
            continue

        if raw.startswith("\\"):
            continue
        if raw.startswith(("--- ", "+++ ")) and _hunk_complete(current):
            current = None
            continue
        if raw == "":
            current.lines.append((LineKind.CONTEXT, ""))
            continue
        try:
            kind = LineKind(raw[0])
        except ValueError:
            raise PatchParseError(
                f"failed to parse diff: unexpected line {number}: {raw!r}"
            ) from None
        current.lines.append((kind, raw[1:]))

    if not hunks:
        raise PatchParseError("failed to parse diff: no hunks found")
    for hunk in hunks:
        _validate_counts(hunk)
    return hunks


def _hunk_complete(hunk: Hunk) -> bool:
    old = sum(1 for kind, _ in hunk.lines if kind is not LineKind.ADD)
    new = sum(1 for kind, _ in hunk.lines if kind is not LineKind.REMOVE)
    return old >= hunk.old_count and new >= hunk.new_count


def _validate_counts(hunk: Hunk) -> None:
    # Trailing blank lines are often stripped or added by editors; drop any
    # surplus empty context lines before checking the header counts.
    while hunk.lines and hunk.lines[-1] == (LineKind.CONTEXT, "") and not _fits(hunk):
        hunk.lines.pop()
    if not _fits(hunk):
        raise PatchParseError(
            f"failed to parse diff: hunk @@ -{hunk.old_start},{hunk.old_count} "
            f"+{hunk.new_start},{hunk.new_count} @@ does not match its body"
        )


def _fits(hunk: Hunk) -> bool:
    old = sum(1 for kind, _ in hunk.lines if kind is not LineKind.ADD)
    new = sum(1 for kind, _ in hunk.lines if kind is not LineKind.REMOVE)
    return old == hunk.old_count and new == hunk.new_count


def apply_hunks(original: str, hunks: list[Hunk]) -> str:
    """Apply parsed hunks to ``original``.

    Raises:
        PatchConflictError: If a hunk's old range is outside the buffer.
    """
    lines = original.splitlines()
    offset = 0

    for hunk in hunks:
        if hunk.old_count == 0:
            # Pure insertion: the new lines go after line old_start.
            start = hunk.old_start + offset
        else:
            start = hunk.old_start + offset - 1
        if start < 0:
            raise PatchConflictError("invalid line number in patch")
        if start + hunk.old_count > len(lines):
            raise PatchConflictError(f"patch application out of bounds (line {start + 1})")

        block = hunk.replacement()
        lines[start : start + hunk.old_count] = block
        offset += len(block) - hunk.old_count

    patched = "\n".join(lines)
    if original.endswith("\n") and patched:
        patched += "\n"
    return patched


def apply_patch(original: str, diff_text: str) -> str:
    """Parse ``diff_text`` and apply it to ``original``."""
    hunks = parse_unified_diff(diff_text)
    logger.debug("patch apply hunks=%s", len(hunks))
    return apply_hunks(original, hunks)


def check_patch(original: str, diff_text: str) -> PatchCheck:
    """Dry run: report whether ``diff_text`` applies, without side effects.

    Parse errors still raise PatchParseError; only conflicts are reported.
    """
    hunks = parse_unified_diff(diff_text)
    try:
        apply_hunks(original, hunks)
    except PatchConflictError as exc:
        return PatchCheck(ok=False, error=str(exc), hunks=len(hunks))
    return PatchCheck(ok=True, hunks=len(hunks))
