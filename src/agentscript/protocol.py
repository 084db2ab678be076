"""Tool-call protocol between the LLM and the script sandbox.

This module defines:
- ToolInvocation: a complete tool call (name, arguments, call id)
- Stream events: TextDelta, ToolCallEvent, StreamCompleted
- ToolCallAccumulator: rebuilds tool calls from streamed fragments
- ScriptToolRequest: validated arguments of the script tool
- build_script_tool(): the tool definition surfaced to the LLM
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from agentscript.core import ToolArgumentError

logger = logging.getLogger(__name__)

SCRIPT_TOOL_NAME = "run_script"

READ_ONLY_NOTE = " File writes are disabled; limit scripts to read-only inspection."


@dataclass
class ToolInvocation:
    """A complete request from the LLM to run a tool."""

    name: str
    arguments: Any = field(default_factory=dict)
    call_id: str | None = None

    def arguments_json(self) -> str:
        """Arguments as JSON text (strings that failed to parse are kept as-is)."""
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments)

    def to_dict(self) -> dict:
        return {"name": self.name, "arguments": self.arguments, "call_id": self.call_id}


@dataclass
class LlmTool:
    """A tool definition offered to the LLM."""

    name: str
    description: str
    parameters: dict

    def to_anthropic(self) -> dict:
        return {"name": self.name, "description": self.description, "input_schema": self.parameters}

    def to_openai(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class TextDelta:
    """A chunk of assistant text."""

    text: str


@dataclass
class ToolCallEvent:
    """A finalized tool call observed mid-stream."""

    invocation: ToolInvocation


@dataclass
class StreamCompleted:
    """The stream finished normally."""


StreamEvent = Union[TextDelta, ToolCallEvent, StreamCompleted]


@dataclass
class _ToolCallState:
    name: str | None = None
    arguments: str = ""
    call_id: str | None = None


def parse_arguments(text: str) -> Any:
    """Parse argument text as JSON, falling back to the raw string."""
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug("tool arguments are not JSON, keeping raw text")
        return text


class ToolCallAccumulator:
    """Merges streamed tool-call fragments by stream index.

    The first non-empty name and call id win; argument text is concatenated
    in arrival order.

    Example:
        acc = ToolCallAccumulator()
        acc.add(0, name="run_script", call_id="call_1")
        acc.add(0, arguments='{"source": "1 + 1"}')
        acc.finalize()  # [ToolInvocation("run_script", {"source": "1 + 1"}, "call_1")]
    """

    def __init__(self):
        self._states: dict[int, _ToolCallState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def add(
        self,
        index: int,
        name: str | None = None,
        arguments: str | None = None,
        call_id: str | None = None,
    ) -> None:
        state = self._states.setdefault(index, _ToolCallState())
        if name and state.name is None:
            state.name = name
        if arguments:
            state.arguments += arguments
        if call_id and state.call_id is None:
            state.call_id = call_id

    def add_openai_delta(self, entry: Mapping) -> None:
        """Merge one chat-completions ``delta.tool_calls[]`` entry."""
        function = entry.get("function") or {}
        self.add(
            int(entry.get("index") or 0),
            name=function.get("name"),
            arguments=function.get("arguments"),
            call_id=entry.get("id"),
        )

    def finalize(self) -> list[ToolInvocation]:
        """Emit complete invocations in index order and reset.

        States that never received a name are discarded.
        """
        invocations = []
        for index in sorted(self._states):
            state = self._states[index]
            if state.name is None:
                logger.debug("dropping nameless tool call index=%s", index)
                continue
            invocations.append(
                ToolInvocation(
                    name=state.name,
                    arguments=parse_arguments(state.arguments),
                    call_id=state.call_id,
                )
            )
        self._states.clear()
        return invocations


def parse_tool_call(value: Mapping) -> ToolInvocation | None:
    """Parse one non-streamed chat-completions tool call."""
    function = value.get("function")
    if not isinstance(function, Mapping) or not isinstance(function.get("name"), str):
        return None
    arguments = function.get("arguments")
    if not isinstance(arguments, str):
        arguments = "{}"
    return ToolInvocation(
        name=function["name"],
        arguments=parse_arguments(arguments),
        call_id=value.get("id"),
    )


@dataclass
class ScriptToolRequest:
    """Validated arguments for the script tool."""

    source: str
    reason: str | None = None

    @classmethod
    def from_arguments(cls, arguments: Any) -> "ScriptToolRequest":
        """Validate raw tool arguments.

        Raises:
            ToolArgumentError: If arguments are not an object or ``source``
                is missing or blank.
        """
        if not isinstance(arguments, Mapping):
            raise ToolArgumentError("arguments must be an object")
        source = arguments.get("source")
        if not isinstance(source, str) or not source.strip():
            raise ToolArgumentError("missing `source` string")
        reason = arguments.get("reason")
        if isinstance(reason, str) and reason.strip():
            reason = reason.strip()
        else:
            reason = None
        return cls(source=source.strip(), reason=reason)


def build_script_tool(allow_writes: bool) -> LlmTool:
    """Definition of the script tool; the description states the write mode."""
    description = (
        "Execute Python code inside the user's workspace using the injected `host` "
        "helpers (read_file, list_dir, search, write_file, patch_file, run_command, "
        "http_request, log, etc.). The interpreter is persistent: functions and "
        f"variables survive between calls. Use `{SCRIPT_TOOL_NAME}` to inspect files, "
        "gather context and apply verified edits. Always explain why you need the "
        "script and summarize results afterward."
    )
    if not allow_writes:
        description += READ_ONLY_NOTE
    return LlmTool(
        name=SCRIPT_TOOL_NAME,
        description=description,
        parameters={
            "type": "object",
            "properties": {
                "source": {
                    "type": "string",
                    "description": "Python script to execute. Prefer small, composable scripts.",
                },
                "reason": {
                    "type": "string",
                    "description": "Short explanation of why this script is being run (plan/verify/apply).",
                },
            },
            "required": ["source"],
            "additionalProperties": False,
        },
    )
