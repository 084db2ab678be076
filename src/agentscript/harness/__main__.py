"""Entry point for running the harness as a module.

Usage:
    python -m agentscript.harness
"""

from agentscript.harness.server import main

if __name__ == "__main__":
    main()
