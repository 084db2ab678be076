"""MCP harness for the script sandbox.

Exposes a SandboxExecutor as MCP tools so other coding agents can drive it.

Usage:
    # Start the harness as an MCP server (stdio)
    python -m agentscript.harness --root .

    # Or build the server in-process
    from agentscript.harness.server import create_server

    server = create_server(executor=SandboxExecutor("."))
"""
