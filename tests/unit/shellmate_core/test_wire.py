"""
Unit Tests for Provider Wire Translation
"""

import json

from shellmate_core.llm import wire
from shellmate_core.schema import (
    Content,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResponsePart,
    Role,
    TextPart,
)


def tool_round_trip() -> list[Content]:
    return [
        Content.user("what is in the readme?"),
        Content(role=Role.MODEL, parts=(
            TextPart(text="Let me look."),
            FunctionCallPart(name="read_file", args={"path": "README.md"}, id="call_1"),
        )),
        Content(role=Role.TOOL, parts=(
            FunctionResponsePart(name="read_file", id="call_1", response={"output": "# Demo"}),
        )),
    ]


class TestOpenAIMessages:
    """Tests for to_openai_messages."""

    def test_tool_round_trip(self):
        """Test assistant tool_calls and tool messages are paired by id."""
        messages = wire.to_openai_messages(tool_round_trip(), "sys")

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool"]
        assistant = messages[2]
        assert assistant["content"] == "Let me look."
        assert assistant["tool_calls"][0]["id"] == "call_1"
        assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"path": "README.md"}
        assert messages[3]["tool_call_id"] == "call_1"
        assert json.loads(messages[3]["content"]) == {"output": "# Demo"}

    def test_no_system_message_when_absent(self):
        """Test the system message is omitted without an instruction."""
        messages = wire.to_openai_messages([Content.user("hi")])

        assert messages == [{"role": "user", "content": "hi"}]


class TestGeminiContents:
    """Tests for the Gemini translation."""

    def test_function_responses_use_user_role(self):
        """Test roles and part shapes."""
        contents = wire.to_gemini_contents(tool_round_trip())

        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"][1] == {
            "function_call": {"name": "read_file", "args": {"path": "README.md"}}
        }
        assert contents[2]["parts"][0] == {
            "function_response": {"name": "read_file", "response": {"output": "# Demo"}}
        }

    def test_schema_types_upper_cased(self):
        """Test nested schema types are upper-cased."""
        declaration = FunctionDeclaration(
            name="grep",
            description="Search",
            parameters={
                "type": "object",
                "properties": {"paths": {"type": "array", "items": {"type": "string"}}},
            },
        )

        tools = wire.to_gemini_tools([declaration])

        params = tools[0]["function_declarations"][0]["parameters"]
        assert params["type"] == "OBJECT"
        assert params["properties"]["paths"]["type"] == "ARRAY"
        assert params["properties"]["paths"]["items"]["type"] == "STRING"

    def test_no_tools(self):
        """Test an empty registry sends no tools."""
        assert wire.to_gemini_tools([]) == []


class TestOllama:
    """Tests for the Ollama translation."""

    def test_messages(self):
        """Test tool calls carry object arguments and responses name the tool."""
        messages = wire.to_ollama_messages(tool_round_trip(), "sys")

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "tool"]
        assert messages[2]["tool_calls"] == [
            {"function": {"name": "read_file", "arguments": {"path": "README.md"}}}
        ]
        assert messages[3]["tool_name"] == "read_file"

    def test_options(self):
        """Test unset sampling options are omitted."""
        assert wire.to_ollama_options(0.3, None, None) == {"temperature": 0.3}
        assert wire.to_ollama_options(0.3, 0.9, 40) == {"temperature": 0.3, "top_p": 0.9, "top_k": 40}

    def test_string_arguments(self):
        """Test JSON-string arguments are decoded."""
        calls = wire.parse_ollama_tool_calls({
            "tool_calls": [
                {"function": {"name": "grep", "arguments": '{"pattern": "TODO"}'}},
                {"function": {"arguments": {}}},
            ]
        })

        assert len(calls) == 1
        assert calls[0].args == {"pattern": "TODO"}


class TestHelpers:
    """Tests for shared helpers."""

    def test_finish_reasons(self):
        """Test provider finish reasons are normalized."""
        assert wire.normalize_finish_reason("stop") == "STOP"
        assert wire.normalize_finish_reason("length") == "MAX_TOKENS"
        assert wire.normalize_finish_reason("tool_calls") == "TOOL_CALLS"
        assert wire.normalize_finish_reason("SAFETY") == "SAFETY"
        assert wire.normalize_finish_reason(None) is None

    def test_parse_arguments(self):
        """Test argument parsing tolerates junk."""
        assert wire.parse_arguments('{"a": 1}') == {"a": 1}
        assert wire.parse_arguments("[1, 2]") == {}
        assert wire.parse_arguments("nope") == {}
        assert wire.parse_arguments(None) == {}
        assert wire.parse_arguments({"nested": {"x": [1]}}) == {"nested": {"x": [1]}}
