"""Tests for the tool-call protocol."""

import pytest

from agentscript.core import ToolArgumentError
from agentscript.protocol import (
    READ_ONLY_NOTE,
    SCRIPT_TOOL_NAME,
    ScriptToolRequest,
    ToolCallAccumulator,
    ToolInvocation,
    build_script_tool,
    parse_arguments,
    parse_tool_call,
)


class TestToolCallAccumulator:
    """Tests for ToolCallAccumulator."""

    def test_fragments_concatenate(self):
        """Test that argument fragments are joined in arrival order."""
        acc = ToolCallAccumulator()
        acc.add(0, name="run_script", call_id="call_1")
        acc.add(0, arguments='{"source": ')
        acc.add(0, arguments='"1 + 1"}')

        assert acc.finalize() == [
            ToolInvocation(name="run_script", arguments={"source": "1 + 1"}, call_id="call_1")
        ]

    def test_first_name_and_id_win(self):
        """Test that later names and ids do not overwrite earlier ones."""
        acc = ToolCallAccumulator()
        acc.add(0, name="first", call_id="a")
        acc.add(0, name="second", call_id="b")

        invocation = acc.finalize()[0]

        assert invocation.name == "first"
        assert invocation.call_id == "a"

    def test_index_order(self):
        """Test that calls come out sorted by stream index."""
        acc = ToolCallAccumulator()
        acc.add(2, name="later")
        acc.add(0, name="earlier")

        assert [i.name for i in acc.finalize()] == ["earlier", "later"]

    def test_nameless_entries_dropped(self):
        """Test that a state that never got a name is discarded."""
        acc = ToolCallAccumulator()
        acc.add(0, arguments="{}")
        acc.add(1, name="run_script")

        assert [i.name for i in acc.finalize()] == ["run_script"]

    def test_invalid_json_kept_raw(self):
        """Test that unparseable arguments are kept as text."""
        acc = ToolCallAccumulator()
        acc.add(0, name="run_script", arguments="{not json")

        assert acc.finalize()[0].arguments == "{not json"

    def test_finalize_resets(self):
        """Test that finalize empties the accumulator."""
        acc = ToolCallAccumulator()
        acc.add(0, name="x")
        acc.finalize()

        assert len(acc) == 0
        assert acc.finalize() == []

    def test_openai_deltas(self):
        """Test merging chat-completions style deltas."""
        acc = ToolCallAccumulator()
        acc.add_openai_delta({"index": 0, "id": "call_9", "function": {"name": "run_script", "arguments": ""}})
        acc.add_openai_delta({"index": 0, "function": {"arguments": '{"source":"x"}'}})

        assert acc.finalize() == [ToolInvocation("run_script", {"source": "x"}, "call_9")]


class TestParsing:
    """Tests for argument and tool call parsing."""

    def test_empty_arguments_are_empty_object(self):
        """Test that blank argument text means no arguments."""
        assert parse_arguments("  ") == {}

    def test_parse_tool_call(self):
        """Test parsing a complete chat-completions tool call."""
        invocation = parse_tool_call(
            {"id": "c1", "function": {"name": "run_script", "arguments": '{"source": "1"}'}}
        )

        assert invocation == ToolInvocation("run_script", {"source": "1"}, "c1")

    def test_parse_tool_call_without_name(self):
        """Test that a call without a function name is ignored."""
        assert parse_tool_call({"id": "c1", "function": {}}) is None

    def test_arguments_json(self):
        """Test serializing arguments back to text."""
        assert ToolInvocation("t", {"a": 1}).arguments_json() == '{"a": 1}'
        assert ToolInvocation("t", "raw").arguments_json() == "raw"


class TestScriptToolRequest:
    """Tests for ScriptToolRequest."""

    def test_valid(self):
        """Test extracting source and reason."""
        request = ScriptToolRequest.from_arguments({"source": "  1 + 1 \n", "reason": " check "})

        assert request.source == "1 + 1"
        assert request.reason == "check"

    def test_blank_reason_is_none(self):
        """Test that an empty reason is dropped."""
        assert ScriptToolRequest.from_arguments({"source": "x", "reason": "  "}).reason is None

    @pytest.mark.parametrize("arguments", [{}, {"source": ""}, {"source": 5}])
    def test_missing_source(self, arguments):
        """Test that source is required."""
        with pytest.raises(ToolArgumentError, match="missing `source` string"):
            ScriptToolRequest.from_arguments(arguments)

    def test_non_object(self):
        """Test that raw strings are rejected."""
        with pytest.raises(ToolArgumentError, match="arguments must be an object"):
            ScriptToolRequest.from_arguments("{not json")


class TestBuildScriptTool:
    """Tests for the tool definition."""

    def test_schema(self):
        """Test the parameter schema."""
        tool = build_script_tool(allow_writes=True)

        assert tool.name == SCRIPT_TOOL_NAME
        assert tool.parameters["required"] == ["source"]
        assert not tool.description.endswith(READ_ONLY_NOTE)

    def test_read_only_note(self):
        """Test that read-only mode is stated in the description."""
        assert build_script_tool(allow_writes=False).description.endswith(READ_ONLY_NOTE)

    def test_provider_formats(self):
        """Test Anthropic and OpenAI renderings."""
        tool = build_script_tool(allow_writes=False)

        assert tool.to_anthropic()["input_schema"] is tool.parameters
        assert tool.to_openai()["function"]["name"] == SCRIPT_TOOL_NAME
