"""FastMCP server for the script sandbox.

Exposes one persistent SandboxExecutor as MCP tools. Calls are serialized
with a lock because the executor's session is not thread-safe.
"""

from __future__ import annotations

import argparse
import logging
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastmcp import FastMCP

from agentscript.core import SessionInitError
from agentscript.harness.logging_utils import abbreviate, configure_logging
from agentscript.sandbox import SandboxExecutor

logger = logging.getLogger(__name__)


def create_server(
    name: str = "agentscript",
    executor: SandboxExecutor | None = None,
) -> FastMCP:
    """Create and configure the FastMCP server.

    Args:
        name: Name for the MCP server.
        executor: Sandbox to expose. Defaults to a read-only sandbox rooted
            at the current directory.

    Returns:
        Configured FastMCP instance with sandbox tools.
    """
    mcp = FastMCP(name)
    executor = executor or SandboxExecutor(Path.cwd())
    lock = threading.Lock()

    @mcp.tool()
    def run_script(source: str) -> dict[str, Any]:
        """Run a Python script in the persistent sandbox.

        Globals defined in one call are available in later calls. The value
        of a trailing expression is returned as ``execution.value``.

        Args:
            source: Script text (can be multi-line).

        Returns:
            Dict with:
            - success: Whether the script completed without errors
            - execution: {value, stdout, stderr, logs, structured_updates}
            - error: Diagnostic text if failed
            - error_type: Exception class name if failed (e.g., 'SyntaxError')

        Examples:
            run_script("files = host.list_dir('.')")
            run_script("[f['name'] for f in files]")
        """
        logger.debug("run_script source=%s", abbreviate(source))
        with lock:
            result = executor.execute(source)
        logger.debug("run_script result success=%s error_type=%s", result.success, result.error_type)
        return asdict(result)

    @mcp.tool()
    def preview_script(source: str) -> str:
        """Describe the writes a script would perform, without performing them.

        Args:
            source: Script text.

        Returns:
            One line per attempted write, patch or command.
        """
        logger.debug("preview_script source=%s", abbreviate(source))
        with lock:
            return executor.preview(source)

    @mcp.tool()
    def reset_sandbox() -> dict[str, Any]:
        """Clear every global and reinstall the host API and helpers.

        Returns:
            Dict with success status, or an error message.
        """
        logger.info("reset_sandbox")
        with lock:
            try:
                executor.reset()
            except SessionInitError as exc:
                logger.error("reset failed: %s", exc)
                return {"success": False, "error": str(exc)}
        return {"success": True}

    @mcp.tool()
    def describe_sandbox() -> str:
        """Describe the sandbox: root, write mode, host functions and globals."""
        with lock:
            return "\n\n".join([executor.describe(), executor.session.host.describe()])

    return mcp


def main():
    """Entry point for running the sandbox as an MCP server."""
    parser = argparse.ArgumentParser(description="agentscript MCP sandbox server")
    parser.add_argument("--root", default=".", help="Workspace root the sandbox is confined to")
    parser.add_argument(
        "--allow-writes",
        action="store_true",
        help="Enable write_file, patch_file, run_command and write-mode open()",
    )
    parser.add_argument(
        "--command-timeout",
        type=float,
        default=60,
        help="Seconds before run_command and search give up",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (overrides AGENTSCRIPT_LOG_LEVEL).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Log file path (defaults to stderr).",
    )

    args = parser.parse_args()

    configure_logging(args.log_level, args.log_file)

    root = Path(args.root).expanduser().resolve()
    logger.info("starting sandbox server root=%s allow_writes=%s", root, args.allow_writes)
    executor = SandboxExecutor(root, allow_writes=args.allow_writes, command_timeout=args.command_timeout)

    server = create_server(executor=executor)
    server.run()


if __name__ == "__main__":
    main()
