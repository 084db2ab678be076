"""Host capabilities injected into the script sandbox.

Capabilities are the only bridge between a script and the outside world.
Each one groups related host functions, re-checks the write-permission flag
for its write-capable methods and resolves every path against the
workspace root.

Key classes:
- Capability: Base class for all capabilities
- FileSystemCapability: read/list/write/patch files, buffered open()
- CommandLineCapability: run_command, search, git_status
- NetworkCapability: http_request, get_quote
- SessionCapability: log, eprint, env, set_context
- ToolServerCapability: MCP tool-server definitions under servers/
- HostCapabilities: the per-run-mode bundle installed as ``host``
"""

from agentscript.capabilities.base import Capability
from agentscript.capabilities.command_line import CommandLineCapability, CommandResult
from agentscript.capabilities.file_system import FileSystemCapability, SandboxFile
from agentscript.capabilities.host import HostCapabilities, HostTable
from agentscript.capabilities.network import NetworkCapability
from agentscript.capabilities.path_guard import (
    canonicalize_with_missing,
    ensure_single_component,
    resolve_safe_path,
)
from agentscript.capabilities.preview import (
    PreviewCommandLineCapability,
    PreviewFileSystemCapability,
)
from agentscript.capabilities.session import SessionCapability
from agentscript.capabilities.tool_servers import ToolServerCapability

__all__ = [
    "Capability",
    "CommandLineCapability",
    "CommandResult",
    "FileSystemCapability",
    "HostCapabilities",
    "HostTable",
    "NetworkCapability",
    "PreviewCommandLineCapability",
    "PreviewFileSystemCapability",
    "SandboxFile",
    "SessionCapability",
    "ToolServerCapability",
    "canonicalize_with_missing",
    "ensure_single_component",
    "resolve_safe_path",
]
