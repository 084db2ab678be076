"""Read-only access to tool definitions under ``<root>/servers``.

Layout: ``servers/<server>/<tool file>``. Server and tool names must be a
single path segment.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agentscript.capabilities.base import Capability
from agentscript.capabilities.path_guard import ensure_single_component, resolve_safe_path
from agentscript.core import HostCallError

logger = logging.getLogger(__name__)


class ToolServerCapability(Capability):
    """Browse MCP tool-server definitions stored in the workspace."""

    name = "mcp"
    description = "List MCP servers and load their tool definitions."

    def __init__(self, root: Path):
        self._root = Path(root).resolve()

    @property
    def _servers_root(self) -> Path:
        return resolve_safe_path(self._root, "servers")

    def list_servers(self) -> list[str]:
        """Names of server directories (empty when there are none)."""
        if not self._servers_root.is_dir():
            return []
        try:
            return sorted(p.name for p in self._servers_root.iterdir() if p.is_dir())
        except OSError as exc:
            raise HostCallError(f"failed to scan servers: {exc}") from exc

    def list_tools(self, server: str) -> list[str]:
        """File names of the tools a server provides."""
        ensure_single_component(server, "server")
        server_dir = resolve_safe_path(self._root, Path("servers", server))
        if not server_dir.is_dir():
            return []
        try:
            return sorted(p.name for p in server_dir.iterdir() if p.is_file())
        except OSError as exc:
            raise HostCallError(f"failed to list tools: {exc}") from exc

    def load_tool(self, server: str, tool: str) -> dict:
        """Load a tool definition: {path, content}."""
        ensure_single_component(server, "server")
        ensure_single_component(tool, "tool")
        file_path = resolve_safe_path(self._root, Path("servers", server, tool))
        logger.debug("mcp load path=%s", file_path)
        try:
            content = file_path.read_text()
        except OSError as exc:
            raise HostCallError(f"failed to load tool {file_path}: {exc}") from exc
        return {"path": str(file_path), "content": content}
