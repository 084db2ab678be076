"""Script agent: the control loop between the LLM and the sandbox.

The agent orchestrates:
1. The conversation transcript
2. LLM exchanges, streamed on a background thread and polled without blocking
3. Dispatch of tool calls: run now (read-only) or queue for approval (writes)
4. The approval queue and tool log (``/tool run``, ``/tool skip``)
5. Direct script commands (``/py <code>``, ``/py reset``)

Everything here runs on the caller's thread except the streaming worker,
which only ever talks to the agent through two queues.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentscript.approval import (
    ApprovalQueue,
    PendingToolEntry,
    ScriptCommand,
    ToolAction,
    ToolCommand,
    ToolLog,
    parse_script_command,
    parse_tool_command,
    truncate_summary,
)
from agentscript.core import (
    Execution,
    ScriptEvaluationError,
    SessionInitError,
    StreamDisconnectedError,
    ToolArgumentError,
    ToolStatus,
)
from agentscript.harness.logging_utils import abbreviate
from agentscript.llm import ChatRequest, ChatResponse, LlmClient, Message, build_client
from agentscript.protocol import (
    SCRIPT_TOOL_NAME,
    ScriptToolRequest,
    StreamCompleted,
    StreamEvent,
    TextDelta,
    ToolCallEvent,
    ToolInvocation,
    build_script_tool,
)
from agentscript.sandbox import SandboxExecutor

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


@dataclass
class AgentConfig:
    """Configuration for the agent."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    provider: str = "stub"
    streaming: bool = True
    allow_writes: bool = False
    workspace_root: Path = field(default_factory=Path.cwd)
    command_timeout: float = 60

    @classmethod
    def from_env(cls, **overrides: Any) -> "AgentConfig":
        """Build a config from AGENTSCRIPT_* variables; keyword overrides win."""
        config = cls(
            model=os.environ.get("AGENTSCRIPT_MODEL", cls.model),
            provider=os.environ.get("AGENTSCRIPT_PROVIDER", cls.provider),
            streaming=_env_flag("AGENTSCRIPT_STREAMING", cls.streaming),
            allow_writes=_env_flag("AGENTSCRIPT_ALLOW_WRITES", cls.allow_writes),
            workspace_root=Path(os.environ.get("AGENTSCRIPT_WORKSPACE", ".")).expanduser().resolve(),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


@dataclass
class MarketContext:
    """Latest dashboard context pushed by a script via set_context."""

    active_ticker: str | None = None
    price: float | None = None
    change_percent: float | None = None
    volume: int | None = None
    history: list[Any] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_update(cls, update: str) -> "MarketContext | None":
        """Decode one structured update; None if it is not a JSON object."""
        try:
            data = json.loads(update)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        known = {"active_ticker", "price", "change_percent", "volume", "history"}
        history = data.get("history")
        return cls(
            active_ticker=data.get("active_ticker"),
            price=data.get("price"),
            change_percent=data.get("change_percent"),
            volume=data.get("volume"),
            history=history if isinstance(history, list) else [],
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class ActiveStream:
    """One in-flight streaming exchange."""

    thread: threading.Thread
    events: "queue.Queue[StreamEvent]"
    result: "queue.Queue[BaseException | None]"
    message_index: int


def render_tool_invocation(invocation: ToolInvocation) -> str:
    """Describe a tool call the agent does not know how to run."""
    try:
        args = json.dumps(invocation.arguments, indent=2)
    except (TypeError, ValueError):
        args = "<unprintable args>"
    if invocation.call_id:
        return (
            f"LLM requested tool `{invocation.name}' (call_id: {invocation.call_id}) "
            f"with arguments:\n{args}"
        )
    return f"LLM requested tool `{invocation.name}' with arguments:\n{args}"


DEFAULT_SYSTEM_PROMPT = """You are a software engineering agent running in a terminal.
Your primary method of interaction is the `{tool}` tool, which executes Python code in a persistent sandbox.

## Core Philosophy
1. **Reasoning First**: Analyze the request and state your plan before writing code.
2. **Code as Action**: Write scripts to explore, read, test and modify the workspace.
3. **Persistence**: Globals survive between calls. Define helpers once and reuse them.

## The Sandbox
- Plain Python with safe builtins only. There is no `os`, `sys`, `open` of arbitrary paths, or `import` except `import host`.
- Helpers: `pretty(obj)`, `print(...)`, `warn(...)`, `walk(path)`, `grep(pattern, dir)`, `map_list`, `filter_list`.
- Files: `open(path, mode)` (r, w, a), `lines(path)`, `fs.read/fs.write/fs.list`.
- Host API (`host`):
  - `host.list_dir(path)` -> list of {{name, is_dir}}
  - `host.read_file(path)` -> str
  - `host.search(pattern, dir=None)` -> {{status, stdout, stderr}} (recursive grep)
  - `host.git_status()` -> {{status, stdout}}
  - `host.http_request({{"url": ..., "method": ..., "headers": ..., "body": ...}})` -> {{status, body, headers}}
  - `host.get_quote(ticker)` -> {{price, high, low, volume, timestamp}}
  - `host.set_context(dict)` -> None (updates the dashboard)
  - `host.log(msg)`, `host.env(key)`, `host.mcp.list_servers()`
"""

WRITE_PROMPT = """  - `host.write_file(path, content)` -> None
  - `host.patch_file(path, unified_diff)` -> None (preferred for small edits)
  - `host.run_command(cmd, [args...])` -> {status, stdout, stderr}

## Safety & Permissions
- **Write Mode**: ENABLED. Scripts with side effects are paused for user approval.
- Verify changes by reading the file back or running the tests.
"""

READ_ONLY_PROMPT = """  - `write_file`, `patch_file` and `run_command` are currently DISABLED (read-only mode).

## Safety & Permissions
- **Write Mode**: READ-ONLY. Focus on analysis, debugging and explanation.
"""


class ScriptAgent:
    """Conversation controller that turns LLM tool calls into sandbox runs."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        client: LlmClient | None = None,
        executor: SandboxExecutor | None = None,
    ):
        """Initialize the agent.

        Args:
            config: Agent configuration. If None, read from the environment.
            client: LLM client. If None, built from ``config.provider``.
            executor: Sandbox. If None, one is created for the workspace root.
        """
        self.config = config or AgentConfig.from_env()
        self.client = client or build_client(
            self.config.provider, model=self.config.model, max_tokens=self.config.max_tokens
        )
        self.executor = executor or SandboxExecutor(
            self.config.workspace_root,
            allow_writes=self.config.allow_writes,
            command_timeout=self.config.command_timeout,
        )
        self.messages: list[Message] = []
        self.tool_log = ToolLog()
        self.pending = ApprovalQueue()
        self.market_context = MarketContext()
        self.active_stream: ActiveStream | None = None

    # =========================================================================
    # Transcript
    # =========================================================================

    def push_message(self, message: Message) -> int:
        self.messages.append(message)
        return len(self.messages) - 1

    def say(self, text: str) -> None:
        """Append an assistant-visible message."""
        self.push_message(Message(role="assistant", content=text))

    def _remove_message(self, index: int) -> None:
        if 0 <= index < len(self.messages):
            del self.messages[index]

    # =========================================================================
    # Input
    # =========================================================================

    def submit(self, text: str) -> None:
        """Handle one line of user input: a command, or a prompt for the LLM."""
        tool_command = parse_tool_command(text)
        if tool_command is not None:
            self.handle_tool_command(tool_command)
            return
        script_command = parse_script_command(text)
        if script_command is not None:
            self.handle_script_command(script_command)
            return
        if not text.strip():
            return
        self.push_message(Message(role="user", content=text))
        self.invoke_llm()

    def handle_tool_command(self, command: ToolCommand) -> None:
        if command.action is ToolAction.RUN:
            self.run_pending(command.entry_id)
        else:
            self.skip_pending(command.entry_id)

    def handle_script_command(self, command: ScriptCommand) -> None:
        if command.reset:
            try:
                self.executor.reset()
            except SessionInitError as exc:
                logger.error("sandbox reset failed: %s", exc)
                self.say(f"Failed to reset script environment: {exc}")
                return
            self.say("Script environment reset. Global variables cleared.")
            return
        if not command.script.strip():
            self.say("Script command needs a script.")
            return
        self.run_script("Script", command.script, None)

    # =========================================================================
    # LLM exchanges
    # =========================================================================

    def build_system_prompt(self) -> str:
        prompt = DEFAULT_SYSTEM_PROMPT.format(tool=SCRIPT_TOOL_NAME)
        prompt += WRITE_PROMPT if self.config.allow_writes else READ_ONLY_PROMPT
        return prompt

    def build_request(self) -> ChatRequest:
        return ChatRequest(
            messages=list(self.messages),
            system_prompt=self.build_system_prompt(),
            tools=[build_script_tool(self.config.allow_writes)],
            stream=self.config.streaming,
        )

    def invoke_llm(self) -> None:
        """Send the transcript to the LLM (streamed when configured)."""
        if self.active_stream is not None:
            self.say("An LLM response is already in progress.")
            return
        request = self.build_request()
        logger.info("invoking LLM streaming=%s", request.stream)
        if request.stream and self.client.supports_streaming:
            self._start_stream(request)
        else:
            self._invoke_unary(request)

    def _invoke_unary(self, request: ChatRequest) -> None:
        try:
            response = self.client.chat(request)
        except Exception as exc:  # provider errors become transcript messages
            logger.exception("llm chat failed")
            self.say(f"LLM error: {exc}")
            return
        self.handle_chat_response(response)

    def handle_chat_response(self, response: ChatResponse) -> None:
        if response.text:
            logger.info("received assistant message chars=%s", len(response.text))
            self.say(response.text)
        for invocation in response.tool_calls:
            self.handle_tool_call(invocation)

    def _start_stream(self, request: ChatRequest) -> None:
        index = self.push_message(Message(role="assistant", content=""))
        events: queue.Queue = queue.Queue()
        result: queue.Queue = queue.Queue(maxsize=1)
        client = self.client

        def worker() -> None:
            try:
                client.chat_stream(request, events.put)
            except Exception as exc:  # handed to the control loop
                result.put(exc)
            else:
                result.put(None)

        thread = threading.Thread(target=worker, name="agentscript-llm-stream", daemon=True)
        self.active_stream = ActiveStream(thread=thread, events=events, result=result, message_index=index)
        thread.start()

    def _drain_events(self, active: ActiveStream) -> None:
        while True:
            try:
                event = active.events.get_nowait()
            except queue.Empty:
                return
            if isinstance(event, TextDelta):
                self.messages[active.message_index].content += event.text
            elif isinstance(event, ToolCallEvent):
                self.handle_tool_call(event.invocation)
            elif isinstance(event, StreamCompleted):
                logger.debug("llm stream completed")

    def _take_result(self, active: ActiveStream) -> tuple[bool, BaseException | None]:
        try:
            return True, active.result.get_nowait()
        except queue.Empty:
            pass
        if active.thread.is_alive():
            return False, None
        try:
            return True, active.result.get_nowait()
        except queue.Empty:
            return True, StreamDisconnectedError("LLM stream ended unexpectedly.")

    def poll_stream(self) -> bool:
        """Apply pending stream events without blocking.

        Returns:
            True while a stream is still in flight.
        """
        active = self.active_stream
        if active is None:
            return False

        self._drain_events(active)
        finished, error = self._take_result(active)
        if not finished:
            return True

        self._drain_events(active)
        self.active_stream = None
        placeholder = self.messages[active.message_index]
        if error is None:
            if not placeholder.content and not placeholder.tool_calls:
                self._remove_message(active.message_index)
            return False

        self._remove_message(active.message_index)
        if isinstance(error, StreamDisconnectedError):
            logger.warning("llm stream disconnected")
            self.say(str(error))
        else:
            logger.warning("llm stream failed: %s", error)
            self.say(f"LLM error: {error}")
        return False

    def wait_for_stream(self, timeout: float | None = None, interval: float = 0.02) -> None:
        """Poll until the active stream finishes (or ``timeout`` elapses)."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.poll_stream():
            if deadline is not None and time.monotonic() >= deadline:
                return
            time.sleep(interval)

    # =========================================================================
    # Tool calls
    # =========================================================================

    def handle_tool_call(self, invocation: ToolInvocation) -> None:
        logger.info("handling tool call tool=%s", invocation.name)
        if invocation.name == SCRIPT_TOOL_NAME:
            self.handle_script_tool(invocation)
        else:
            self.say(render_tool_invocation(invocation))

    def handle_script_tool(self, invocation: ToolInvocation) -> None:
        try:
            request = ScriptToolRequest.from_arguments(invocation.arguments)
        except ToolArgumentError as exc:
            self.say(f"Invalid `{SCRIPT_TOOL_NAME}` request: {exc}")
            return

        lines = []
        if request.reason:
            lines.append(f"LLM requested `{SCRIPT_TOOL_NAME}` with reason:\n{request.reason}\n")
        else:
            lines.append(f"LLM requested `{SCRIPT_TOOL_NAME}`.")
        lines.append(f"Script:\n```python\n{request.source}\n```")
        if self.config.allow_writes:
            lines.append(
                "Writes are enabled, so this run is queued. "
                "Use `/tool run` to approve or `/tool skip` to cancel."
            )
        else:
            lines.append("Sandbox is read-only; executing immediately.")
        self._render_tool_summary("\n".join(lines) + "\n", invocation)

        title = f"LLM {SCRIPT_TOOL_NAME}: {truncate_summary(request.reason or '')}"
        if self.config.allow_writes:
            self.queue_script(title, request, invocation.call_id)
        else:
            self.run_script(title, request.source, invocation.call_id)

    def _render_tool_summary(self, summary: str, invocation: ToolInvocation) -> None:
        if self.active_stream is not None:
            message = self.messages[self.active_stream.message_index]
            if message.content:
                message.content += "\n"
            message.content += summary
            message.tool_calls.append(invocation)
        else:
            self.push_message(Message(role="assistant", content=summary, tool_calls=[invocation]))

    def queue_script(self, title: str, request: ScriptToolRequest, call_id: str | None) -> PendingToolEntry:
        """Preview ``request`` and park it in the approval queue."""
        detail = []
        if request.reason:
            detail.append(f"Reason: {request.reason}")
        detail.append(f"Script:\n{request.source}")
        detail.append(f"\n--- PREVIEW ---\n{self.executor.preview(request.source)}")

        entry = self.tool_log.create(title, "\n".join(detail))
        pending = PendingToolEntry(
            entry_id=entry.id,
            title=title,
            script=request.source,
            reason=request.reason,
            call_id=call_id,
        )
        self.pending.enqueue(pending)
        return pending

    def run_script(self, title: str, script: str, call_id: str | None) -> Execution | None:
        """Log and execute a script right away."""
        entry = self.tool_log.create(title, script)
        return self.execute_entry(entry.id, script, call_id)

    def execute_entry(self, entry_id: int, script: str, call_id: str | None) -> Execution | None:
        """Run ``script``, report to the transcript and update tool log entry ``entry_id``."""
        try:
            execution = self.executor.run(script)
        except ScriptEvaluationError as exc:
            text = f"Script error: {exc.diagnostic}"
            self.push_message(Message.tool(text, call_id))
            self.tool_log.update(entry_id, ToolStatus.ERROR, text)
            logger.info("script failed entry_id=%s error_type=%s", entry_id, exc.error_type)
            return None

        rendered = str(execution)
        self.push_message(Message.tool(rendered, call_id))
        self.tool_log.update(entry_id, ToolStatus.SUCCESS, rendered)
        logger.info("script ok entry_id=%s value=%s", entry_id, abbreviate(execution.value, 80))

        for update in execution.structured_updates:
            context = MarketContext.from_update(update)
            if context is not None:
                self.market_context = context
        return execution

    def run_pending(self, entry_id: int | None = None) -> Execution | None:
        """Approve a queued script (the oldest when ``entry_id`` is None)."""
        pending = self.pending.take(entry_id)
        if pending is None:
            self.say(f"No queued {SCRIPT_TOOL_NAME} requests to execute.")
            return None
        self.say(
            f"Approved queued {SCRIPT_TOOL_NAME} (`{pending.label}`), "
            f"executing now (entry #{pending.entry_id})"
        )
        return self.execute_entry(pending.entry_id, pending.script, pending.call_id)

    def skip_pending(self, entry_id: int | None = None) -> PendingToolEntry | None:
        """Cancel a queued script (the oldest when ``entry_id`` is None)."""
        pending = self.pending.take(entry_id)
        if pending is None:
            self.say(f"No queued {SCRIPT_TOOL_NAME} requests to cancel.")
            return None
        self.tool_log.update(pending.entry_id, ToolStatus.ERROR, "Canceled before execution.")
        self.say(f"Canceled queued {SCRIPT_TOOL_NAME} (`{pending.label}`) (entry #{pending.entry_id})")
        return pending

    # =========================================================================
    # Introspection
    # =========================================================================

    def describe(self) -> str:
        """Get a description of the agent's current state."""
        lines = [
            "ScriptAgent",
            f"  Provider: {self.config.provider}",
            f"  Model: {self.config.model}",
            f"  Messages: {len(self.messages)}",
            f"  Pending scripts: {len(self.pending)}",
            "",
            self.executor.describe(),
        ]
        return "\n".join(lines)
