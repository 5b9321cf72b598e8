"""
Shellmate Schema - The Conversation Contract

This module defines the Pydantic models shared by the orchestration loop,
the backend adapters and the tools: conversation turns and their parts,
the model's function calls, and the results tools hand back.

Every model-visible outcome of a tool, success or failure, is a ToolResult
with a populated ``llm_content`` so it can be appended to the conversation
as-is.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Roles
# =============================================================================


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    MODEL = "model"
    TOOL = "tool"


# =============================================================================
# Error Taxonomy
# =============================================================================


class ErrorType(str, Enum):
    """Closed classification of a tool or command failure."""

    COMMAND_NOT_FOUND = "command_not_found"  # Command/tool not installed
    CODE_ERROR = "code_error"  # Syntax/runtime error in code
    DEPENDENCY_MISSING = "dependency_missing"  # Missing packages/modules
    PERMISSION_ERROR = "permission_error"  # Permission/access issues
    NETWORK_ERROR = "network_error"  # Connection issues
    CONFIGURATION_ERROR = "configuration_error"  # Wrong setup or arguments
    UNKNOWN = "unknown"


class ToolErrorKind(str, Enum):
    """Tool-side reason a call did not succeed."""

    INVALID_PARAMETERS = "invalid_parameters"
    TOOL_NOT_FOUND = "tool_not_found"
    FILE_NOT_FOUND = "file_not_found"
    PATH_OUTSIDE_WORKSPACE = "path_outside_workspace"
    EXECUTION_ERROR = "execution_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


# =============================================================================
# Parts
# =============================================================================


class FunctionCall(BaseModel):
    """The model's request to invoke a tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name of the tool to invoke")
    args: dict[str, Any] = Field(default_factory=dict, description="Raw tool arguments")
    id: str | None = Field(default=None, description="Provider call id, if any")


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class FunctionCallPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["function_call"] = "function_call"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None

    @classmethod
    def from_call(cls, call: FunctionCall) -> FunctionCallPart:
        return cls(name=call.name, args=dict(call.args), id=call.id)

    @property
    def function_call(self) -> FunctionCall:
        return FunctionCall(name=self.name, args=self.args, id=self.id)


class FunctionResponsePart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["function_response"] = "function_response"
    name: str
    response: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


Part = Annotated[
    Union[TextPart, FunctionCallPart, FunctionResponsePart],
    Field(discriminator="kind"),
]


# =============================================================================
# Conversation Content
# =============================================================================


class Content(BaseModel):
    """
    One conversation turn.

    Frozen: once appended to a conversation a Content is never mutated.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    parts: tuple[Part, ...] = ()

    @classmethod
    def user(cls, text: str) -> Content:
        return cls(role=Role.USER, parts=(TextPart(text=text),))

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def function_calls(self) -> list[FunctionCallPart]:
        return [p for p in self.parts if isinstance(p, FunctionCallPart)]

    @property
    def function_responses(self) -> list[FunctionResponsePart]:
        return [p for p in self.parts if isinstance(p, FunctionResponsePart)]


class ModelTurn(BaseModel):
    """A single model response: zero or more text and function-call parts."""

    parts: list[Union[TextPart, FunctionCallPart]] = Field(default_factory=list)
    finish_reason: str | None = Field(
        default=None,
        description="Normalized finish reason: STOP, MAX_TOKENS, TOOL_CALLS, ..."
    )

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [p.function_call for p in self.parts if isinstance(p, FunctionCallPart)]

    @property
    def has_function_calls(self) -> bool:
        return any(isinstance(p, FunctionCallPart) for p in self.parts)

    @property
    def is_empty(self) -> bool:
        return not self.parts


# =============================================================================
# Tool Declarations & Results
# =============================================================================


class FunctionDeclaration(BaseModel):
    """Schema advertised to the backend for one tool."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolError(BaseModel):
    """Why a tool call failed, classified into the error taxonomy."""

    message: str = Field(min_length=1)
    type: ErrorType = ErrorType.UNKNOWN
    kind: ToolErrorKind = ToolErrorKind.EXECUTION_ERROR


class ToolResult(BaseModel):
    """
    Outcome of a tool invocation.

    ``llm_content`` is always populated, even on error, so the result can be
    fed back to the model directly.
    """

    llm_content: str
    error: ToolError | None = None
    display: str | None = Field(
        default=None,
        description="Short human-facing summary for the chat transcript"
    )

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        kind: ToolErrorKind = ToolErrorKind.EXECUTION_ERROR,
        error_type: ErrorType = ErrorType.UNKNOWN,
        llm_content: str | None = None,
    ) -> ToolResult:
        return cls(
            llm_content=llm_content or message,
            error=ToolError(message=message, type=error_type, kind=kind),
            display=f"Error: {message}",
        )

    def to_response(self) -> dict[str, Any]:
        """Shape used as the FunctionResponsePart payload."""
        response: dict[str, Any] = {"output": self.llm_content}
        if self.error is not None:
            response["error"] = {
                "message": self.error.message,
                "type": self.error.type.value,
                "kind": self.error.kind.value,
            }
        return response
