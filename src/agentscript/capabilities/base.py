"""Base class for host capabilities.

A capability is an object that groups related host functions. The sandbox
never hands a capability object to scripts directly; HostCapabilities
flattens the public methods of every capability into the ``host`` table.

Key concepts:
- Capabilities self-document via describe()
- Methods listed in ``write_methods`` are gated by the write-permission flag
- Preview mode swaps a capability for a simulate-only subclass
"""

from __future__ import annotations

import inspect
from abc import ABC
from typing import Callable

from agentscript.core import PermissionDeniedError


class Capability(ABC):
    """Base class for all host capabilities.

    Subclasses should:
    - Set `name` and `description` class attributes
    - List write-capable methods in `write_methods`
    - Give each public method a docstring (used by describe())

    Example:
        class ClockCapability(Capability):
            name = "clock"
            description = "Read the wall clock."

            def now(self) -> float:
                '''Seconds since the epoch.'''
                return time.time()
    """

    name: str = "unnamed_capability"
    description: str = "A capability."

    write_methods: tuple[str, ...] = ()
    """Public methods that require the write-permission flag."""

    allow_writes: bool = False

    def _require_writes(self, message: str | None = None) -> None:
        if not self.allow_writes:
            raise PermissionDeniedError(message)

    def describe(self) -> str:
        """Return a self-documenting description of this capability.

        Lists all public methods with their signatures and the first line of
        their docstrings. Write-gated methods are marked.
        """
        lines = [f"{self.name}: {self.description}", "", "Methods:"]

        for method_name, method in self.methods().items():
            try:
                sig_str = f"{method_name}{inspect.signature(method)}"
            except (ValueError, TypeError):
                sig_str = f"{method_name}(...)"
            if method_name in self.write_methods:
                sig_str += "  [requires write]"

            doc = method.__doc__ or "No description."
            lines.append(f"  - {sig_str}")
            lines.append(f"      {doc.strip().splitlines()[0]}")

        return "\n".join(lines)

    def methods(self) -> dict[str, Callable]:
        """Public host functions this capability exports."""
        exported = {}
        for method_name in dir(self):
            if method_name.startswith("_") or method_name in ("describe", "methods"):
                continue
            method = getattr(self, method_name)
            if callable(method):
                exported[method_name] = method
        return exported

    def __repr__(self) -> str:
        """Show useful info when printed in REPL."""
        return f"<{self.__class__.__name__}(name='{self.name}', methods={len(self.methods())})>"

    def __str__(self) -> str:
        return self.describe()
