"""agentscript: an LLM agent that acts through a sandboxed Python scripting layer.

This package provides:
- A persistent, capability-gated script sandbox with a dry-run preview mode
- Host capabilities confined to a workspace root (files, commands, network)
- A unified-diff patch engine for in-place edits
- The ``run_script`` tool protocol, including streamed tool-call assembly
- An approval queue for scripts that may write

Key Components:
- SandboxExecutor: run / preview / reset scripts
- HostCapabilities: the ``host`` table scripts call into
- ScriptAgent: control loop between the LLM and the sandbox
- ToolCallAccumulator: reassembles streamed tool-call fragments
- ApprovalQueue: scripts waiting for ``/tool run`` or ``/tool skip``

Example:
    from agentscript import SandboxExecutor

    executor = SandboxExecutor(".")
    executor.run("files = host.list_dir('.')")
    print(executor.run("len(files)").value)
"""

from agentscript.agent import AgentConfig, MarketContext, ScriptAgent
from agentscript.approval import ApprovalQueue, PendingToolEntry, ToolLog, ToolLogEntry
from agentscript.capabilities import (
    Capability,
    CommandLineCapability,
    FileSystemCapability,
    HostCapabilities,
    NetworkCapability,
    SessionCapability,
    ToolServerCapability,
    resolve_safe_path,
)
from agentscript.capabilities.patch import apply_patch, check_patch, parse_unified_diff
from agentscript.core import (
    MAX_FILE_SIZE,
    Execution,
    HostCallError,
    PatchConflictError,
    PatchParseError,
    PathEscapeError,
    PermissionDeniedError,
    SandboxError,
    ScriptEvaluationError,
    ScriptResult,
    SessionInitError,
    SizeLimitExceededError,
    ToolArgumentError,
    ToolStatus,
)
from agentscript.llm import AnthropicClient, LlmClient, Message, StubClient
from agentscript.protocol import ScriptToolRequest, ToolCallAccumulator, ToolInvocation
from agentscript.sandbox import SandboxExecutor

__version__ = "0.1.0"

__all__ = [
    # Agent
    "AgentConfig",
    "MarketContext",
    "ScriptAgent",
    # Approval
    "ApprovalQueue",
    "PendingToolEntry",
    "ToolLog",
    "ToolLogEntry",
    # Capabilities
    "Capability",
    "CommandLineCapability",
    "FileSystemCapability",
    "HostCapabilities",
    "NetworkCapability",
    "SessionCapability",
    "ToolServerCapability",
    "resolve_safe_path",
    # Patching
    "apply_patch",
    "check_patch",
    "parse_unified_diff",
    # Core
    "MAX_FILE_SIZE",
    "Execution",
    "HostCallError",
    "PatchConflictError",
    "PatchParseError",
    "PathEscapeError",
    "PermissionDeniedError",
    "SandboxError",
    "ScriptEvaluationError",
    "ScriptResult",
    "SessionInitError",
    "SizeLimitExceededError",
    "ToolArgumentError",
    "ToolStatus",
    # LLM
    "AnthropicClient",
    "LlmClient",
    "Message",
    "StubClient",
    # Protocol
    "ScriptToolRequest",
    "ToolCallAccumulator",
    "ToolInvocation",
    # Sandbox
    "SandboxExecutor",
]
