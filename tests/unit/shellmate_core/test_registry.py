"""
Unit Tests for Tool Registry

Tests tool registration, lookup, schema declaration and dispatch.
"""

from pathlib import Path

import pytest
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken
from shellmate_core.schema import ErrorType, FunctionCall, ToolErrorKind, ToolResult
from shellmate_core.tools.base import BaseTool, InvalidParams, ToolInvocation, parameters_schema
from shellmate_core.tools.policies import WorkspacePolicy
from shellmate_core.tools.registry import ToolRegistry


class EchoParams(BaseModel):
    text: str = Field(description="Text to echo back")
    times: int = Field(default=1, ge=1, description="Repeat count")


class EchoInvocation(ToolInvocation[EchoParams]):
    async def run(self, cancel):
        return ToolResult(llm_content=" ".join([self.params.text] * self.params.times))


class EchoTool(BaseTool[EchoParams]):
    name = "echo"
    description = "Echo text back"
    params_model = EchoParams

    def create_invocation(self, params):
        return EchoInvocation(self, params)


class RaisingInvocation(ToolInvocation[EchoParams]):
    async def run(self, cancel):
        raise RuntimeError("disk on fire")


class RaisingTool(EchoTool):
    name = "raising"

    def create_invocation(self, params):
        return RaisingInvocation(self, params)


class BrokenTool(EchoTool):
    """Breaks the contract: create_invocation itself raises."""

    name = "broken"

    def create_invocation(self, params):
        raise ValueError("cannot bind")


@pytest.fixture
def policy(tmp_path: Path) -> WorkspacePolicy:
    return WorkspacePolicy(tmp_path)


@pytest.fixture
def echo_registry(policy) -> ToolRegistry:
    return ToolRegistry([EchoTool(policy), RaisingTool(policy), BrokenTool(policy)])


class TestToolRegistration:
    """Tests for registering and looking up tools."""

    def test_get_tool(self, echo_registry):
        """Test registered tools can be looked up by name."""
        tool = echo_registry.get_tool("echo")

        assert isinstance(tool, EchoTool)
        assert "echo" in echo_registry
        assert len(echo_registry) == 3

    def test_get_nonexistent_tool(self, echo_registry):
        """Test unknown names are absent."""
        assert echo_registry.get_tool("nonexistent") is None

    def test_insertion_order(self, echo_registry):
        """Test tools are listed in registration order."""
        assert [t.name for t in echo_registry.get_all_tools()] == ["echo", "raising", "broken"]
        assert echo_registry.names == ["echo", "raising", "broken"]

    def test_last_write_wins(self, echo_registry, policy):
        """Test registering a name twice replaces the earlier tool."""
        replacement = EchoTool(policy)
        echo_registry.register_tool(replacement)

        assert echo_registry.get_tool("echo") is replacement
        assert len(echo_registry) == 3
        assert echo_registry.names[-1] == "echo"

    def test_reregistering_same_instance_is_a_noop(self, policy):
        """Test registering the same instance twice keeps one entry."""
        tool = EchoTool(policy)
        registry = ToolRegistry([tool])
        registry.register_tool(tool)

        assert registry.get_all_tools() == [tool]


class TestFunctionDeclarations:
    """Tests for schema generation."""

    def test_declaration_per_tool(self, echo_registry):
        """Test one declaration per registered tool."""
        declarations = echo_registry.get_function_declarations()

        assert [d.name for d in declarations] == ["echo", "raising", "broken"]
        assert declarations[0].description == "Echo text back"

    def test_parameters_schema_is_minimal(self):
        """Test pydantic-only keys are stripped."""
        schema = parameters_schema(EchoParams)

        assert schema["type"] == "object"
        assert schema["required"] == ["text"]
        assert schema["properties"]["text"] == {"type": "string", "description": "Text to echo back"}
        assert "title" not in schema
        assert "default" not in schema["properties"]["times"]

    def test_optional_fields_flatten(self):
        """Test Optional[X] becomes X."""

        class OptionalParams(BaseModel):
            limit: int | None = Field(default=None, description="Limit")

        schema = parameters_schema(OptionalParams)

        assert schema["properties"]["limit"] == {"type": "integer", "description": "Limit"}
        assert schema["required"] == []

    def test_list_for_openai(self, echo_registry):
        """Test OpenAI function format and filtering."""
        tools = echo_registry.list_for_openai(["echo"])

        assert len(tools) == 1
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "echo"
        assert "properties" in tools[0]["function"]["parameters"]


class TestValidation:
    """Tests for BaseTool.validate_params."""

    def test_valid_params(self, policy):
        """Test valid arguments produce the params model."""
        params = EchoTool(policy).validate_params({"text": "hi", "times": 2})

        assert isinstance(params, EchoParams)
        assert params.times == 2

    def test_missing_required_field(self, policy):
        """Test missing fields are rejected."""
        result = EchoTool(policy).validate_params({})

        assert isinstance(result, InvalidParams)
        assert "text" in result.message

    def test_wrong_type(self, policy):
        """Test wrong value types are rejected."""
        result = EchoTool(policy).validate_params({"text": "hi", "times": "many"})

        assert isinstance(result, InvalidParams)
        assert result.kind == ToolErrorKind.INVALID_PARAMETERS


class TestDispatch:
    """Tests for ToolRegistry.execute."""

    @pytest.mark.asyncio
    async def test_execute_success(self, echo_registry):
        """Test a valid call runs the tool."""
        result = await echo_registry.execute(FunctionCall(name="echo", args={"text": "hi", "times": 2}))

        assert result.success
        assert result.llm_content == "hi hi"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, echo_registry):
        """Test unknown tools come back as a ToolResult error."""
        result = await echo_registry.execute(FunctionCall(name="nope"))

        assert not result.success
        assert result.error.kind == ToolErrorKind.TOOL_NOT_FOUND
        assert result.error.type == ErrorType.CONFIGURATION_ERROR
        assert "Available tools: echo, raising, broken" in result.llm_content

    @pytest.mark.asyncio
    async def test_invalid_params(self, echo_registry):
        """Test invalid parameters come back as a ToolResult error."""
        result = await echo_registry.execute(FunctionCall(name="echo", args={"times": 0}))

        assert result.error.kind == ToolErrorKind.INVALID_PARAMETERS
        assert result.error.type == ErrorType.CONFIGURATION_ERROR
        assert result.llm_content.startswith("Invalid parameters for 'echo'")

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error_result(self, echo_registry):
        """Test exceptions inside run() are converted by execute()."""
        result = await echo_registry.execute(FunctionCall(name="raising", args={"text": "x"}))

        assert not result.success
        assert result.error.kind == ToolErrorKind.EXECUTION_ERROR
        assert "disk on fire" in result.error.message

    @pytest.mark.asyncio
    async def test_contract_breaking_tool_is_contained(self, echo_registry):
        """Test exceptions outside execute() are still contained by the registry."""
        result = await echo_registry.execute(FunctionCall(name="broken", args={"text": "x"}))

        assert not result.success
        assert "crashed" in result.error.message
        assert "cannot bind" in result.error.message

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, echo_registry):
        """Test a tripped token short-circuits execution."""
        result = await echo_registry.execute(
            FunctionCall(name="echo", args={"text": "hi"}),
            CancellationToken.cancelled(),
        )

        assert result.error.kind == ToolErrorKind.CANCELLED


class TestToolResult:
    """Tests for the ToolResult response payload."""

    def test_success_payload(self):
        """Test successful results carry only output."""
        assert ToolResult(llm_content="ok").to_response() == {"output": "ok"}

    def test_failure_payload(self):
        """Test failures carry the classified error."""
        result = ToolResult.failure("boom", error_type=ErrorType.NETWORK_ERROR)

        assert result.to_response() == {
            "output": "boom",
            "error": {"message": "boom", "type": "network_error", "kind": "execution_error"},
        }
        assert result.display == "Error: boom"
