"""Workspace path resolution shared by every filesystem helper."""

from __future__ import annotations

import os
from pathlib import Path, PurePath

from agentscript.core import HostCallError, PathEscapeError


def canonicalize_with_missing(path: Path) -> Path:
    """Resolve ``path`` even when trailing components do not exist yet.

    The deepest existing ancestor is canonicalized (symlinks and ``..``
    resolved) and the missing components are re-appended in order.
    """
    try:
        return path.resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError):
        pass

    missing: list[str] = []
    current = path
    while True:
        parent = current.parent
        missing.append(current.name)
        if parent == current:
            raise FileNotFoundError(f"no existing ancestor for {path}")
        try:
            base = parent.resolve(strict=True)
        except (FileNotFoundError, NotADirectoryError):
            current = parent
            continue
        break

    resolved = base
    for name in reversed(missing):
        if name in ("", "."):
            continue
        if name == "..":
            resolved = resolved.parent
            continue
        resolved = resolved / name
    return resolved


def resolve_safe_path(root: Path, candidate: str | os.PathLike) -> Path:
    """Resolve a script-supplied path against the workspace root.

    Args:
        root: Workspace root (any form; it is canonicalized here).
        candidate: Absolute path, or a path relative to ``root``.

    Returns:
        The canonical path, which may not exist yet.

    Raises:
        PathEscapeError: If the canonical path is not inside the root.
        HostCallError: If the path cannot be resolved, e.g. a symlink loop.
    """
    canonical_root = root.resolve()
    joined = Path(candidate)
    if not joined.is_absolute():
        joined = canonical_root / joined
    try:
        normalized = canonicalize_with_missing(joined)
    except (OSError, RuntimeError) as exc:
        # Symlink loops surface as RuntimeError before Python 3.13.
        raise HostCallError(f"cannot resolve path {candidate}: {exc}") from exc
    if normalized != canonical_root and canonical_root not in normalized.parents:
        raise PathEscapeError(f"path {normalized} escapes workspace root")
    return normalized


def ensure_single_component(value: str, kind: str) -> None:
    """Reject names that are not exactly one ordinary path segment."""
    parts = PurePath(value).parts
    if len(parts) != 1 or parts[0] in (".", "..") or os.sep in value or "/" in value:
        raise HostCallError(f"{kind} name must be a single path segment")
