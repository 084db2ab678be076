"""Default filesystem locations for agentscript state."""

from __future__ import annotations

import os
from pathlib import Path


def agentscript_home() -> Path:
    env_home = os.environ.get("AGENTSCRIPT_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.cwd() / ".agentscript"


def history_file_default() -> Path:
    return agentscript_home() / "prompt_history"
