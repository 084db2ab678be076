"""Terminal front end for the script agent."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

from agentscript.agent import AgentConfig, ScriptAgent
from agentscript.harness.logging_utils import configure_logging
from agentscript.paths import history_file_default

BANNER = (
    "agentscript. Commands: /py <code>, /py reset, /tool run [id], /tool skip [id], "
    ":log, :pending, :state, :quit"
)


class TranscriptPrinter:
    """Prints messages the agent appended since the last call."""

    def __init__(self, agent: ScriptAgent):
        self.agent = agent
        self.seen = len(agent.messages)

    def flush(self) -> None:
        messages = self.agent.messages
        # Placeholders can be removed after a failed stream.
        self.seen = min(self.seen, len(messages))
        for message in messages[self.seen:]:
            if message.role == "user":
                continue
            prefix = "[tool] " if message.role == "tool" else ""
            print(f"{prefix}{message.content}")
            print()
        self.seen = len(messages)


def _print_tool_log(agent: ScriptAgent) -> None:
    if not len(agent.tool_log):
        print("(no tool activity)")
        return
    for entry in agent.tool_log:
        print(entry)


def _print_pending(agent: ScriptAgent) -> None:
    if not agent.pending:
        print("(no queued scripts)")
        return
    for pending in agent.pending.entries:
        entry = agent.tool_log.get(pending.entry_id)
        print(f"#{pending.entry_id} {pending.label}")
        if entry is not None:
            print(entry.detail)
        print()


def handle_line(agent: ScriptAgent, printer: TranscriptPrinter, line: str) -> bool:
    """Handle one line of input. Returns False when the user asked to quit."""
    command = line.strip()
    if command in (":quit", ":exit"):
        return False
    if command == ":log":
        _print_tool_log(agent)
        return True
    if command == ":pending":
        _print_pending(agent)
        return True
    if command == ":state":
        print(agent.describe())
        return True

    agent.submit(line)
    agent.wait_for_stream()
    printer.flush()
    return True


def _interactive(agent: ScriptAgent, history_path: Path) -> None:
    history_path.parent.mkdir(parents=True, exist_ok=True)
    key_bindings = KeyBindings()

    @key_bindings.add("escape", "enter")
    def _(event) -> None:
        event.current_buffer.insert_text("\n")

    session = PromptSession(
        "agent> ",
        key_bindings=key_bindings,
        history=FileHistory(str(history_path)),
    )
    printer = TranscriptPrinter(agent)

    print(BANNER)
    print("Tip: Esc+Enter inserts a newline.")
    while True:
        try:
            line = session.prompt()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not handle_line(agent, printer, line):
            break


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Chat with an LLM that acts through sandboxed scripts.")
    parser.add_argument("--root", default=None, help="Workspace root (overrides AGENTSCRIPT_WORKSPACE)")
    parser.add_argument("--provider", choices=["stub", "anthropic"], default=None, help="LLM provider")
    parser.add_argument("--model", default=None, help="Model name for the provider")
    parser.add_argument(
        "--allow-writes",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable write helpers (scripts are then queued for approval)",
    )
    parser.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stream LLM responses",
    )
    parser.add_argument("--exec", dest="exec_line", help="Handle one input line and exit")
    parser.add_argument("--history-file", default=None, help="Prompt history path")
    parser.add_argument("--log-level", default=None, help="Log level (overrides AGENTSCRIPT_LOG_LEVEL).")
    parser.add_argument("--log-file", default=None, help="Log file path (defaults to stderr).")
    args = parser.parse_args(argv)

    configure_logging(args.log_level, args.log_file)

    config = AgentConfig.from_env(
        provider=args.provider,
        model=args.model,
        allow_writes=args.allow_writes,
        streaming=args.stream,
        workspace_root=Path(args.root).expanduser().resolve() if args.root else None,
    )
    agent = ScriptAgent(config)

    if args.exec_line is not None:
        line = sys.stdin.read() if args.exec_line == "-" else args.exec_line
        handle_line(agent, TranscriptPrinter(agent), line)
        return

    history_path = Path(args.history_file).expanduser() if args.history_file else history_file_default()
    _interactive(agent, history_path)


if __name__ == "__main__":
    main()
