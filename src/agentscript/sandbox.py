"""Persistent, capability-gated Python script sandbox.

The SandboxExecutor owns one SandboxSession: a restricted global namespace
plus the session's output buffers. Scripts run against that namespace, so
definitions survive from one run to the next until reset().

The namespace has:
1. Only safe builtins (no open, eval, exec, compile, globals, vars, input)
2. The host capability table as ``host`` (also reachable via ``import host``)
3. The bootstrap prelude helpers

Before evaluation every script is checked by ScriptGuard, which rejects
underscore attribute access, dunder names and imports other than ``host``.

preview() evaluates a script in a throwaway session whose write-capable
host functions only describe what they would do.
"""

from __future__ import annotations

import ast
import builtins
import logging
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import httpx

from agentscript.capabilities.host import HOST_MODULE_NAME, HostCapabilities, HostTable
from agentscript.core import (
    BufferSink,
    Execution,
    HostCallError,
    PatchConflictError,
    PatchParseError,
    PathEscapeError,
    PermissionDeniedError,
    SandboxError,
    ScriptEvaluationError,
    ScriptResult,
    SessionBuffers,
    SessionInitError,
    SizeLimitExceededError,
)
from agentscript.prelude import PRELUDE_NAME, PRELUDE_SOURCE
from agentscript.values import classify, pretty_value, render_value, ValueKind

logger = logging.getLogger(__name__)

SCRIPT_NAME = "<script>"
PREVIEW_EMPTY = "No write operations detected in script."

ALLOWED_DUNDER_NAMES = {"__name__"}

# Public attributes that reach frames, code objects or tracebacks, and from
# there the module globals and real builtins of the host process.
FORBIDDEN_ATTRIBUTES = frozenset(
    {
        "gi_frame",
        "gi_code",
        "gi_yieldfrom",
        "cr_frame",
        "cr_code",
        "cr_await",
        "cr_origin",
        "ag_frame",
        "ag_code",
        "ag_await",
        "f_back",
        "f_globals",
        "f_locals",
        "f_builtins",
        "f_code",
        "f_trace",
        "tb_frame",
        "tb_next",
        "co_code",
        "co_consts",
        "func_globals",
        "func_code",
    }
)


def _public_name(name: Any) -> str:
    if not isinstance(name, str):
        raise TypeError("attribute name must be a string")
    if name.startswith("_"):
        raise AttributeError(f"access to private attribute '{name}' is not allowed")
    if name in FORBIDDEN_ATTRIBUTES:
        raise AttributeError(f"access to attribute '{name}' is not allowed")
    return name


def safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    """getattr() that refuses private and frame-reaching names."""
    return getattr(obj, _public_name(name), *default)


def safe_hasattr(obj: Any, name: str) -> bool:
    return hasattr(obj, _public_name(name))


def safe_setattr(obj: Any, name: str, value: Any) -> None:
    setattr(obj, _public_name(name), value)


# Safe builtins that don't provide system access
SAFE_BUILTINS = {
    # Types
    "bool": bool,
    "int": int,
    "float": float,
    "str": str,
    "list": list,
    "dict": dict,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "bytes": bytes,
    "bytearray": bytearray,
    "type": type,
    "object": object,
    "property": property,
    "staticmethod": staticmethod,
    "classmethod": classmethod,
    "super": super,
    "__build_class__": builtins.__build_class__,
    # Functions
    "abs": abs,
    "all": all,
    "any": any,
    "bin": bin,
    "callable": callable,
    "chr": chr,
    "dir": dir,
    "divmod": divmod,
    "enumerate": enumerate,
    "filter": filter,
    "format": format,
    "getattr": safe_getattr,
    "hasattr": safe_hasattr,
    "hash": hash,
    "hex": hex,
    "id": id,
    "isinstance": isinstance,
    "issubclass": issubclass,
    "iter": iter,
    "len": len,
    "map": map,
    "max": max,
    "min": min,
    "next": next,
    "oct": oct,
    "ord": ord,
    "pow": pow,
    "range": range,
    "repr": repr,
    "reversed": reversed,
    "round": round,
    "setattr": safe_setattr,
    "slice": slice,
    "sorted": sorted,
    "sum": sum,
    "zip": zip,
    # Exceptions (for try/except)
    "Exception": Exception,
    "ArithmeticError": ArithmeticError,
    "LookupError": LookupError,
    "ValueError": ValueError,
    "TypeError": TypeError,
    "KeyError": KeyError,
    "IndexError": IndexError,
    "AttributeError": AttributeError,
    "NameError": NameError,
    "ImportError": ImportError,
    "NotImplementedError": NotImplementedError,
    "RuntimeError": RuntimeError,
    "StopIteration": StopIteration,
    "ZeroDivisionError": ZeroDivisionError,
    "PermissionError": PermissionError,
    "FileNotFoundError": FileNotFoundError,
    "IsADirectoryError": IsADirectoryError,
    "OSError": OSError,
    # Host errors
    "SandboxError": SandboxError,
    "PathEscapeError": PathEscapeError,
    "PermissionDeniedError": PermissionDeniedError,
    "SizeLimitExceededError": SizeLimitExceededError,
    "PatchParseError": PatchParseError,
    "PatchConflictError": PatchConflictError,
    "HostCallError": HostCallError,
    # Constants
    "True": True,
    "False": False,
    "None": None,
}


class ScriptGuard(ast.NodeVisitor):
    """AST visitor that collects constructs scripts may not use."""

    def __init__(self):
        self.violations: list[str] = []

    def _flag(self, node: ast.AST, message: str) -> None:
        self.violations.append(f"line {getattr(node, 'lineno', '?')}: {message}")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            self._flag(node, f"access to attribute '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__") and node.id not in ALLOWED_DUNDER_NAMES:
            self._flag(node, f"use of name '{node.id}' is not allowed")
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            if alias.name != HOST_MODULE_NAME:
                self._flag(node, f"module '{alias.name}' not available (only '{HOST_MODULE_NAME}')")
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        if node.level or node.module != HOST_MODULE_NAME:
            self._flag(node, f"module '{node.module}' not available (only '{HOST_MODULE_NAME}')")
        for alias in node.names:
            if alias.name == "*" or alias.name.startswith("_"):
                self._flag(node, f"cannot import '{alias.name}' from {HOST_MODULE_NAME}")
        self.generic_visit(node)


def check_script(tree: ast.AST) -> list[str]:
    """Return the guard violations in a parsed script."""
    guard = ScriptGuard()
    guard.visit(tree)
    return guard.violations


def _format_diagnostic(exc: BaseException, source: str) -> str:
    """Exception summary plus the traceback frames that belong to the script."""
    lines = [f"{type(exc).__name__}: {exc}"]
    source_lines = source.splitlines()
    frames = [
        frame
        for frame in traceback.extract_tb(exc.__traceback__)
        if frame.filename in (SCRIPT_NAME, PRELUDE_NAME)
    ]
    if frames:
        lines.append("Traceback (script frames):")
        for frame in frames:
            lines.append(f"  {frame.filename} line {frame.lineno}, in {frame.name}")
            if frame.filename == SCRIPT_NAME and frame.lineno and frame.lineno <= len(source_lines):
                lines.append(f"    {source_lines[frame.lineno - 1].strip()}")
    return "\n".join(lines)


def _make_print(sink: BufferSink) -> Callable[..., None]:
    def sandbox_print(*values: Any, sep: str = " ", end: str = "\n") -> None:
        rendered = [
            pretty_value(v) if classify(v) is ValueKind.TABLE else render_value(v)
            for v in values
        ]
        line = sep.join(rendered) + end
        sink.append(line[:-1] if line.endswith("\n") else line)

    return sandbox_print


def _make_import(table: HostTable) -> Callable[..., Any]:
    def restricted_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level == 0 and name == HOST_MODULE_NAME:
            return table
        raise ImportError(f"module '{name}' not available (only '{HOST_MODULE_NAME}')")

    return restricted_import


@dataclass
class SandboxSession:
    """One interpreter namespace and its output buffers."""

    namespace: dict[str, Any]
    buffers: SessionBuffers
    host: HostCapabilities
    reserved: set[str] = field(default_factory=set)

    def user_globals(self) -> dict[str, Any]:
        """Names defined by scripts (not by the host table or prelude)."""
        return {
            name: value
            for name, value in self.namespace.items()
            if name not in self.reserved and not name.startswith("__")
        }


def _evaluate(namespace: dict[str, Any], source: str, filename: str = SCRIPT_NAME) -> Any:
    """Run ``source`` in ``namespace`` and return the value of its final expression.

    Raises:
        ScriptEvaluationError: On a syntax error, a guard violation or any
            exception raised by the script.
    """
    try:
        tree = ast.parse(source, filename=filename, mode="exec")
    except SyntaxError as exc:
        raise ScriptEvaluationError(
            f"SyntaxError: {exc.msg} (line {exc.lineno})", error_type="SyntaxError"
        ) from exc

    violations = check_script(tree)
    if violations:
        raise ScriptEvaluationError(
            "Script rejected:\n" + "\n".join(violations), error_type="ScriptRejected"
        )

    # The value of a trailing expression statement is the script's value.
    tail = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        tail = ast.Expression(body=tree.body.pop().value)

    try:
        if tree.body:
            exec(compile(tree, filename, "exec"), namespace)
        if tail is not None:
            return eval(compile(tail, filename, "eval"), namespace)
        return None
    except Exception as exc:
        raise ScriptEvaluationError(
            _format_diagnostic(exc, source), error_type=type(exc).__name__
        ) from exc


class SandboxExecutor:
    """Runs scripts in a persistent, capability-gated session.

    Example:
        executor = SandboxExecutor(Path("."), allow_writes=False)
        executor.run("x = 21")
        executor.run("x * 2").value  # "42"
    """

    def __init__(
        self,
        root: Path | str,
        allow_writes: bool = False,
        command_timeout: float = 60,
        http_transport: httpx.BaseTransport | None = None,
    ):
        """Create the executor and its first session.

        Args:
            root: Workspace root. Every filesystem call is confined to it.
            allow_writes: Enables write_file, patch_file, run_command and
                write-mode open().
            command_timeout: Seconds before run_command/search give up.
            http_transport: Optional httpx transport for http_request.

        Raises:
            SessionInitError: If the host table or prelude cannot be installed.
        """
        root = Path(root).expanduser()
        self.root = root.resolve() if root.exists() else root.absolute()
        self.allow_writes = allow_writes
        self.command_timeout = command_timeout
        self._http_transport = http_transport
        self.session = self._new_session()

    def _build_namespace(self, host: HostCapabilities, stdout: BufferSink, stderr: BufferSink) -> tuple[dict, set[str]]:
        namespace: dict[str, Any] = {"__name__": "__sandbox__"}
        table = host.install(namespace)
        builtin_table = dict(SAFE_BUILTINS)
        builtin_table["print"] = _make_print(stdout)
        builtin_table["__import__"] = _make_import(table)
        namespace["__builtins__"] = builtin_table
        namespace["warn"] = _make_print(stderr)
        namespace["pretty"] = pretty_value

        try:
            _evaluate(namespace, PRELUDE_SOURCE, filename=PRELUDE_NAME)
        except ScriptEvaluationError as exc:
            raise SessionInitError(f"failed to load prelude: {exc.diagnostic}") from exc
        return namespace, set(namespace)

    def _new_session(self) -> SandboxSession:
        buffers = SessionBuffers()
        host = HostCapabilities.real(
            self.root,
            self.allow_writes,
            logs=buffers.logs,
            stderr=buffers.stderr,
            updates=buffers.updates,
            command_timeout=self.command_timeout,
            http_transport=self._http_transport,
        )
        namespace, reserved = self._build_namespace(host, buffers.stdout, buffers.stderr)
        buffers.clear()
        logger.debug("sandbox session root=%s allow_writes=%s", self.root, self.allow_writes)
        return SandboxSession(namespace=namespace, buffers=buffers, host=host, reserved=reserved)

    def run(self, script: str) -> Execution:
        """Evaluate ``script`` in the persistent session.

        Returns:
            Execution with the rendered value and this run's buffers.

        Raises:
            ScriptEvaluationError: If the script is rejected or raises. The
                run's buffers are discarded; globals bound before the failure
                are kept.
        """
        buffers = self.session.buffers
        buffers.clear()
        logger.debug("sandbox run bytes=%s", len(script))
        try:
            value = _evaluate(self.session.namespace, script)
        except ScriptEvaluationError as exc:
            buffers.clear()
            logger.debug("sandbox run failed error_type=%s", exc.error_type)
            raise
        return buffers.collect(render_value(value))

    def execute(self, script: str) -> ScriptResult:
        """Like run(), but reports failures in the result instead of raising."""
        try:
            return ScriptResult(success=True, execution=self.run(script))
        except ScriptEvaluationError as exc:
            return ScriptResult(success=False, error=exc.diagnostic, error_type=exc.error_type)

    def reset(self) -> None:
        """Discard all globals and buffers and reinstall the host table and prelude.

        Raises:
            SessionInitError: If reinstallation fails; the session is unusable.
        """
        logger.debug("sandbox reset")
        self.session = self._new_session()

    def set_allow_writes(self, allow_writes: bool) -> None:
        """Change the write-permission flag. This rebuilds the session."""
        self.allow_writes = allow_writes
        self.reset()

    def preview(self, script: str) -> str:
        """Describe the writes ``script`` would perform, without performing them.

        The script runs in a disposable session whose write-capable host
        functions are simulate-only. Errors raised by the script end the
        preview early but are not reported as failures.

        Returns:
            One line per attempted write, or PREVIEW_EMPTY.
        """
        report: list[str] = []
        scratch = SessionBuffers()
        host = HostCapabilities.preview(
            self.root,
            BufferSink(report),
            stderr=scratch.stderr,
            updates=scratch.updates,
            http_transport=self._http_transport,
        )
        namespace, _ = self._build_namespace(host, scratch.stdout, scratch.stderr)
        try:
            _evaluate(namespace, script)
        except ScriptEvaluationError as exc:
            logger.debug("sandbox preview stopped error_type=%s", exc.error_type)
        return "\n".join(report) if report else PREVIEW_EMPTY

    def get_variable(self, name: str) -> Any:
        """Get a script-defined global."""
        user = self.session.user_globals()
        if name not in user:
            raise KeyError(f"Variable '{name}' not found in sandbox")
        return user[name]

    def describe(self) -> str:
        """Get a description of the sandbox's current state."""
        lines = ["Sandbox State:", ""]
        lines.append(f"Workspace root: {self.root}")
        lines.append(f"Writes enabled: {'yes' if self.allow_writes else 'no'}")
        lines.append("")
        lines.append("Variables:")
        user = self.session.user_globals()
        if user:
            for name, value in user.items():
                val_repr = render_value(value)
                if len(val_repr) > 50:
                    val_repr = val_repr[:47] + "..."
                lines.append(f"  - {name}: {type(value).__name__} = {val_repr}")
        else:
            lines.append("  (none)")
        return "\n".join(lines)
