"""Logging helpers shared by the CLI and the MCP server."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Libraries that log request details at INFO/DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "yfinance")


def configure_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure stdlib logging for the agentscript package.

    Does nothing unless a level (argument or AGENTSCRIPT_LOG_LEVEL) or a log
    file is given. Console output goes to stderr so it never mixes with the
    MCP stdio transport.
    """
    env_level = os.getenv("AGENTSCRIPT_LOG_LEVEL")
    level_name = (log_level or env_level or "").upper()
    if not level_name and not log_file:
        return
    level_name = level_name or "WARNING"
    level = logging.getLevelName(level_name)
    if isinstance(level, str):
        raise ValueError(f"Invalid log level: {level_name}")

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

    logging.getLogger().setLevel(logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("agentscript")
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers = [handler]


def abbreviate(text: str | None, limit: int = 200) -> str:
    """Return a single-line, truncated preview string."""
    if not text:
        return ""
    flattened = text.replace("\n", "\\n")
    if len(flattened) <= limit:
        return flattened
    return f"{flattened[:limit]}..."
