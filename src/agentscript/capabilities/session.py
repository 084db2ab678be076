"""Session capability: logging, stderr, environment and dashboard context."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping

from agentscript.capabilities.base import Capability
from agentscript.core import BufferSink, HostCallError
from agentscript.values import to_json

logger = logging.getLogger(__name__)


class SessionCapability(Capability):
    """Write to the session's log, stderr and structured-update buffers."""

    name = "session"
    description = "Record log lines, stderr output and dashboard context."

    def __init__(self, logs: BufferSink, stderr: BufferSink, updates: BufferSink):
        self._logs = logs
        self._stderr = stderr
        self._updates = updates

    def log(self, payload=None) -> None:
        """Record ``[level] message``. Accepts a string, None, or {level?, message}."""
        if payload is None:
            level, message = "info", "<nil>"
        elif isinstance(payload, str):
            level, message = "info", payload
        elif isinstance(payload, Mapping):
            if "message" not in payload:
                raise HostCallError("log expects `message` field")
            level = payload.get("level") or "info"
            message = payload["message"]
            message = "<nil>" if message is None else str(message)
        else:
            raise HostCallError(f"log expects string or table, got {type(payload).__name__}")
        self._logs.append(f"[{str(level).lower()}] {message}")

    def eprint(self, payload: Mapping) -> None:
        """Append ``payload["message"]`` to stderr."""
        if not isinstance(payload, Mapping) or "message" not in payload:
            raise HostCallError("eprint expects table with 'message' field")
        self._stderr.append(str(payload["message"]))

    def env(self, key: str) -> str | None:
        """Read an environment variable (None when unset)."""
        return os.environ.get(str(key))

    def set_context(self, context: Mapping) -> None:
        """Push a structured dashboard context object."""
        if not isinstance(context, Mapping):
            raise HostCallError("set_context expects a table")
        encoded = json.dumps(to_json(context))
        logger.debug("session context bytes=%s", len(encoded))
        self._updates.append(encoded)
