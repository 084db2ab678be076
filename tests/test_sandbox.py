"""Tests for the sandbox module."""

import pytest

from agentscript.core import Execution, ScriptEvaluationError, ScriptResult
from agentscript.sandbox import PREVIEW_EMPTY, SandboxExecutor, check_script


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "README.md").write_text("# Demo\nline two\n")
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "mod.py").write_text("VALUE = 1\n")
    return tmp_path


@pytest.fixture
def executor(workspace):
    return SandboxExecutor(workspace)


@pytest.fixture
def writer(workspace):
    return SandboxExecutor(workspace, allow_writes=True)


class TestExecution:
    """Tests for Execution rendering."""

    def test_value_only(self):
        """Test rendering with no buffers."""
        assert str(Execution(value="42")) == "Script value:\n42"

    def test_empty_value_placeholder(self):
        """Test that a blank value renders as <empty>."""
        assert str(Execution(value="")) == "Script value:\n<empty>"

    def test_sections(self):
        """Test that non-empty buffers become sections."""
        execution = Execution(value="nil", stdout=["a", "b"], logs=["[info] x"])

        assert str(execution) == "Script value:\nnil\n\nStdout:\na\nb\n\nLogs:\n[info] x"

    def test_script_result_failure(self):
        """Test that a failed result shows the error."""
        result = ScriptResult(success=False, error="NameError: x")

        assert str(result) == "Error: NameError: x"


class TestSandboxRun:
    """Tests for SandboxExecutor.run."""

    def test_expression_value(self, executor):
        """Test that a trailing expression is the script value."""
        assert executor.run("1 + 1").value == "2"

    def test_statement_only_is_nil(self, executor):
        """Test that a script without a trailing expression yields nil."""
        assert executor.run("x = 5").value == "nil"

    def test_table_value(self, executor):
        """Test rendering of a returned mapping."""
        assert executor.run("{'a': [1, True, None]}").value == "{a: [1, true, nil]}"

    def test_globals_persist(self, executor):
        """Test that variables and functions survive between runs."""
        executor.run("def double(n):\n    return n * 2\ncount = 21")

        assert executor.run("double(count)").value == "42"
        assert executor.get_variable("count") == 21

    def test_print_captured(self, executor):
        """Test that print output goes to stdout lines."""
        execution = executor.run("print('hello', 'world')\nprint({'b': 1})")

        assert execution.stdout == ["hello world", "{\n  b = 1\n}"]

    def test_warn_goes_to_stderr(self, executor):
        """Test the warn helper."""
        assert executor.run("warn('careful')").stderr == ["careful"]

    def test_buffers_reset_between_runs(self, executor):
        """Test that one run's output does not leak into the next."""
        executor.run("print('first')")

        assert executor.run("print('second')").stdout == ["second"]

    def test_error_raises_with_diagnostic(self, executor):
        """Test that script exceptions become ScriptEvaluationError."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run("x = 1\nundefined_name + 1")

        assert excinfo.value.error_type == "NameError"
        assert "undefined_name" in excinfo.value.diagnostic
        assert "<script> line 2" in excinfo.value.diagnostic

    def test_failed_run_keeps_earlier_globals(self, executor):
        """Test that bindings made before a failure persist."""
        with pytest.raises(ScriptEvaluationError):
            executor.run("kept = 7\nprint('lost')\nraise ValueError('boom')")

        assert executor.run("kept").value == "7"
        assert executor.run("1").stdout == []

    def test_syntax_error(self, executor):
        """Test that syntax errors are reported."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run("def broken(:")

        assert excinfo.value.error_type == "SyntaxError"

    def test_execute_never_raises(self, executor):
        """Test the non-raising wrapper."""
        result = executor.execute("1 / 0")

        assert not result.success
        assert result.error_type == "ZeroDivisionError"
        assert executor.execute("3").execution.value == "3"

    def test_reset_clears_globals(self, executor):
        """Test that reset discards user definitions but keeps helpers."""
        executor.run("x = 1")

        executor.reset()

        with pytest.raises(ScriptEvaluationError):
            executor.run("x")
        assert executor.run("callable(map_list) and callable(host.read_file)").value == "true"


class TestSandboxRestrictions:
    """Tests for what scripts may not do."""

    @pytest.mark.parametrize(
        "source",
        [
            "import os",
            "from os import path",
            "().__class__",
            "__import__('os')",
            "__builtins__",
        ],
    )
    def test_rejected_sources(self, executor, source):
        """Test that guarded constructs are rejected before running."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run(source)

        assert excinfo.value.error_type == "ScriptRejected"

    def test_getattr_private_blocked(self, executor):
        """Test that getattr cannot reach underscore attributes."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run("getattr((), '__class__')")

        assert excinfo.value.error_type == "AttributeError"

    @pytest.mark.parametrize(
        "source",
        [
            "def gen():\n    yield 1\ngen().gi_frame",
            "def gen():\n    yield 1\ngen().gi_code",
            "async def co():\n    pass\nco().cr_frame",
            "x.f_back.f_globals",
            "e.tb_frame",
        ],
    )
    def test_frame_attributes_rejected(self, executor, source):
        """Test that frame and code attributes are rejected before running."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run(source)

        assert excinfo.value.error_type == "ScriptRejected"

    def test_generator_frame_chain_cannot_reach_builtins(self, executor, tmp_path_factory):
        """Test that a generator's frame cannot be walked back to host globals."""
        secret = tmp_path_factory.mktemp("outside") / "secret.txt"
        secret.write_text("TOP SECRET")
        source = (
            "def gen():\n"
            "    yield g.gi_frame.f_back\n"
            "g = gen()\n"
            "mod = next(g).f_back.f_globals\n"
            f"mod['builtins'].open({str(secret)!r}).read()\n"
        )

        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run(source)

        assert excinfo.value.error_type == "ScriptRejected"

    def test_getattr_frame_attributes_blocked(self, executor):
        """Test that getattr cannot walk generator frames either."""
        source = "def gen():\n    yield 1\ngetattr(gen(), 'gi_' + 'frame')"

        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run(source)

        assert excinfo.value.error_type == "AttributeError"

    def test_preview_cannot_walk_frames(self, executor, workspace, tmp_path_factory):
        """Test that preview rejects the frame chain and writes nothing."""
        target = tmp_path_factory.mktemp("outside") / "written.txt"
        source = (
            "def gen():\n"
            "    yield 1\n"
            "g = gen()\n"
            "frame = getattr(g, 'gi_frame')\n"
            "mod = getattr(getattr(frame, 'f_back'), 'f_globals')\n"
            f"mod['builtins'].open({str(target)!r}, 'w').write('x')\n"
        )

        assert executor.preview(source) == PREVIEW_EMPTY
        assert not target.exists()

    def test_no_eval_or_exec(self, executor):
        """Test that dangerous builtins are missing."""
        for name in ("eval", "exec", "compile", "globals", "vars", "input"):
            with pytest.raises(ScriptEvaluationError):
                executor.run(f"{name}")

    def test_import_host_allowed(self, executor):
        """Test that the host module can be imported."""
        assert executor.run("import host\nhost.read_file('README.md')").value == "# Demo\nline two\n"
        assert executor.run("from host import list_dir\nlen(list_dir('.'))").value == "2"

    def test_check_script_lists_violations(self):
        """Test the guard directly."""
        import ast

        violations = check_script(ast.parse("import sys\nx._y"))

        assert len(violations) == 2
        assert violations[0].startswith("line 1:")

    def test_class_definitions_work(self, executor):
        """Test that scripts can define classes."""
        executor.run("class Point:\n    def __init__(self, x):\n        self.x = x\n")

        assert executor.run("Point(3).x").value == "3"


class TestSandboxHost:
    """Tests for host functions called from scripts."""

    def test_read_only_by_default(self, executor, workspace):
        """Test that writes fail when the flag is off."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run("host.write_file('x.txt', 'data')")

        assert "write helpers are disabled" in excinfo.value.diagnostic
        assert not (workspace / "x.txt").exists()

    def test_run_command_gated_with_writes(self, executor):
        """Test that run_command shares the write flag."""
        with pytest.raises(ScriptEvaluationError) as excinfo:
            executor.run("host.run_command('echo', ['hi'])")

        assert "including run_command" in excinfo.value.diagnostic

    def test_write_and_read_back(self, writer, workspace):
        """Test writing through the host table."""
        writer.run("host.write_file('notes/today.txt', 'done')")

        assert (workspace / "notes" / "today.txt").read_text() == "done"
        assert writer.run("host.read_file('notes/today.txt')").value == "done"

    def test_escape_is_catchable(self, executor):
        """Test that scripts can handle host errors."""
        script = (
            "try:\n"
            "    host.read_file('../secret')\n"
            "    outcome = 'read'\n"
            "except PathEscapeError:\n"
            "    outcome = 'blocked'\n"
            "outcome"
        )

        assert executor.run(script).value == "blocked"

    def test_open_with_block(self, writer, workspace):
        """Test the open() convenience."""
        writer.run("with open('out.txt', 'w') as f:\n    f.write('a\\n')\n    f.write('b\\n')")

        assert (workspace / "out.txt").read_text() == "a\nb\n"
        assert writer.run("[line for line in lines('out.txt')]").value == "[a, b]"

    def test_fs_table(self, executor):
        """Test the fs.read / fs.list aliases."""
        assert executor.run("fs.read('pkg/mod.py')").value == "VALUE = 1\n"
        assert executor.run("[e['name'] for e in fs.list('.')]").value == "[README.md, pkg]"

    def test_log_and_context(self, executor):
        """Test that logs and structured updates are collected."""
        execution = executor.run(
            "host.log('starting')\n"
            "host.log({'level': 'error', 'message': 'bad'})\n"
            "host.set_context({'active_ticker': 'AAPL'})"
        )

        assert execution.logs == ["[info] starting", "[error] bad"]
        assert execution.structured_updates == ['{"active_ticker": "AAPL"}']

    def test_file_object_hides_path(self, executor):
        """Test that file handles do not expose their host path."""
        with pytest.raises(ScriptEvaluationError):
            executor.run("open('README.md')._path")

    def test_prelude_walk(self, executor):
        """Test the walk helper."""
        assert executor.run("sorted(walk())").value == "[README.md, pkg/mod.py]"

    def test_prelude_map_filter(self, executor):
        """Test map_list and filter_list."""
        assert executor.run("map_list([1, 2], lambda n: n * 10)").value == "[10, 20]"
        assert executor.run("filter_list([1, 2, 3], lambda n: n > 1)").value == "[2, 3]"

    def test_set_allow_writes_rebuilds_session(self, executor, workspace):
        """Test toggling the write flag."""
        executor.run("x = 1")

        executor.set_allow_writes(True)
        executor.run("host.write_file('y.txt', 'ok')")

        assert (workspace / "y.txt").read_text() == "ok"
        with pytest.raises(KeyError):
            executor.get_variable("x")


class TestSandboxPreview:
    """Tests for SandboxExecutor.preview."""

    def test_no_writes(self, executor):
        """Test the empty preview message."""
        assert executor.preview("1 + 1") == PREVIEW_EMPTY

    def test_write_described_not_performed(self, executor, workspace):
        """Test that preview only describes writes."""
        report = executor.preview("host.write_file('a.txt', 'abc')")

        assert report == "Would write to `a.txt` (3 bytes)"
        assert not (workspace / "a.txt").exists()

    def test_preview_runs_even_when_writes_disabled(self, executor):
        """Test that preview simulates writers regardless of the flag."""
        report = executor.preview("host.run_command('make', ['test'])")

        assert report == "Would run command: make test"

    def test_log_lines_in_report(self, executor):
        """Test that log() output is part of the preview."""
        report = executor.preview("host.log('plan')\nhost.write_file('b.txt', '')")

        assert report.splitlines() == ["[info] plan", "Would write to `b.txt` (0 bytes)"]

    def test_errors_end_preview_quietly(self, executor):
        """Test that a failing script still returns what was recorded."""
        report = executor.preview("host.write_file('c.txt', 'x')\nraise RuntimeError('stop')")

        assert report == "Would write to `c.txt` (1 bytes)"

    def test_preview_does_not_touch_session(self, executor):
        """Test that preview leaves globals alone."""
        executor.run("x = 1")

        executor.preview("x = 2\ny = 3")

        assert executor.run("x").value == "1"
        with pytest.raises(KeyError):
            executor.get_variable("y")

    def test_patch_preview(self, executor):
        """Test a patch preview."""
        diff = "@@ -1 +1 @@\n-# Demo\n+# Title\n"

        report = executor.preview(f"host.patch_file('README.md', {diff!r})")

        assert report.startswith("Patch applies cleanly to `README.md`:")

    def test_patch_preview_through_file(self, executor):
        """Test that a path through a regular file is reported, not raised."""
        report = executor.preview("host.patch_file('README.md/child', '@@ -1 +1 @@\\n-a\\n+b\\n')")

        assert report == "Patch target `README.md/child` does not exist."


class TestSandboxDescribe:
    """Tests for describe output."""

    def test_describe_lists_user_globals(self, executor):
        """Test that describe shows script-defined variables only."""
        executor.run("answer = 42")

        description = executor.describe()

        assert "answer: int = 42" in description
        assert "map_list" not in description
        assert "Writes enabled: no" in description
