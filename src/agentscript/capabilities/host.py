"""Assembly of the host capability table injected into scripts.

HostCapabilities bundles one instance of each capability. There are two
constructors, one per run mode: ``real()`` for normal runs and
``preview()`` for dry runs, where the write-capable capabilities are
replaced by their simulate-only subclasses. ``install()`` publishes the
bundle into a sandbox namespace as ``host`` plus the ``open``, ``lines``
and ``fs`` conveniences.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import httpx

from agentscript.capabilities.base import Capability
from agentscript.capabilities.command_line import CommandLineCapability
from agentscript.capabilities.file_system import FileSystemCapability
from agentscript.capabilities.network import NetworkCapability
from agentscript.capabilities.preview import (
    PreviewCommandLineCapability,
    PreviewFileSystemCapability,
)
from agentscript.capabilities.session import SessionCapability
from agentscript.capabilities.tool_servers import ToolServerCapability
from agentscript.core import BufferSink

HOST_MODULE_NAME = "host"


class HostTable:
    """Read-only attribute table of host functions exposed to scripts.

    Supports ``host.read_file(...)`` and ``host["read_file"](...)``.
    """

    def __init__(self, name: str, entries: dict[str, Any]):
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_entries", dict(entries))

    def __getattr__(self, attr: str) -> Any:
        try:
            return self._entries[attr]
        except KeyError:
            raise AttributeError(f"{self._name} has no function '{attr}'") from None

    def __setattr__(self, attr: str, value: Any) -> None:
        raise AttributeError(f"{self._name} is read-only")

    def __getitem__(self, key: str) -> Any:
        return self._entries[key]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __iter__(self):
        return iter(sorted(self._entries))

    def __dir__(self) -> list[str]:
        return sorted(self._entries)

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def __repr__(self) -> str:
        return f"<{self._name}: {', '.join(sorted(self._entries))}>"


@dataclass
class HostCapabilities:
    """One implementation of every host capability for a given run mode."""

    fs: FileSystemCapability
    cmd: CommandLineCapability
    net: NetworkCapability
    session: SessionCapability
    tools: ToolServerCapability

    @classmethod
    def real(
        cls,
        root: Path,
        allow_writes: bool,
        logs: BufferSink,
        stderr: BufferSink,
        updates: BufferSink,
        command_timeout: float = 60,
        http_transport: httpx.BaseTransport | None = None,
    ) -> "HostCapabilities":
        return cls(
            fs=FileSystemCapability(root, allow_writes=allow_writes),
            cmd=CommandLineCapability(root, allow_writes=allow_writes, timeout=command_timeout),
            net=NetworkCapability(transport=http_transport),
            session=SessionCapability(logs, stderr, updates),
            tools=ToolServerCapability(root),
        )

    @classmethod
    def preview(
        cls,
        root: Path,
        report: BufferSink,
        stderr: BufferSink,
        updates: BufferSink,
        http_transport: httpx.BaseTransport | None = None,
    ) -> "HostCapabilities":
        """Simulate-only bundle. ``log`` lines land in the preview report."""
        return cls(
            fs=PreviewFileSystemCapability(root, report),
            cmd=PreviewCommandLineCapability(root, report),
            net=NetworkCapability(transport=http_transport),
            session=SessionCapability(report, stderr, updates),
            tools=ToolServerCapability(root),
        )

    def capabilities(self) -> list[Capability]:
        return [self.fs, self.cmd, self.net, self.session, self.tools]

    def functions(self) -> dict[str, Callable]:
        """The flat host function surface."""
        fs, cmd, net, session = self.fs, self.cmd, self.net, self.session
        return {
            "read_file": fs.read_file,
            "list_dir": fs.list_dir,
            "write_file": fs.write_file,
            "patch_file": fs.patch_file,
            "run_command": cmd.run_command,
            "search": cmd.search,
            "git_status": cmd.git_status,
            "http_request": net.http_request,
            "get_quote": net.get_quote,
            "log": session.log,
            "eprint": session.eprint,
            "env": session.env,
            "set_context": session.set_context,
        }

    def build_table(self) -> HostTable:
        entries: dict[str, Any] = dict(self.functions())
        entries["mcp"] = HostTable("host.mcp", self.tools.methods())
        return HostTable(HOST_MODULE_NAME, entries)

    def install(self, namespace: dict[str, Any]) -> HostTable:
        """Publish the table and file conveniences into ``namespace``."""
        table = self.build_table()
        namespace[HOST_MODULE_NAME] = table
        namespace["open"] = self.fs.open
        namespace["lines"] = self.fs.lines
        namespace["fs"] = HostTable(
            "fs",
            {"read": self.fs.read_file, "write": self.fs.write_file, "list": self.fs.list_dir},
        )
        return table

    def describe(self) -> str:
        return "\n\n".join(cap.describe() for cap in self.capabilities())
