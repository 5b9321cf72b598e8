"""
Tool Contract - Tool and ToolInvocation.

A Tool validates raw model arguments into a typed parameter model and
creates a ToolInvocation. The invocation does the actual work in
``execute()``, which never raises: every failure is turned into a ToolResult
carrying a classified ToolError so the loop can always answer the model.

Concrete tools declare:
    name / description     advertised to the backend
    params_model           pydantic model for argument validation
    check_params()         optional extra validation (e.g. path sandboxing)
    create_invocation()    bind validated params to a ToolInvocation
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.diagnostics.classifier import classify_error_type
from shellmate_core.schema import (
    ErrorType,
    FunctionDeclaration,
    ToolErrorKind,
    ToolResult,
)
from shellmate_core.tools.policies import PathOutsideWorkspaceError, WorkspacePolicy

logger = structlog.get_logger()

P = TypeVar("P", bound=BaseModel)

# JSON schema keys understood by every backend's function-declaration format
_SCHEMA_KEYS = ("type", "description", "properties", "required", "items", "enum")


class InvalidParams(BaseModel):
    """Returned by ``validate_params`` when raw arguments are rejected."""

    message: str = Field(min_length=1)
    kind: ToolErrorKind = ToolErrorKind.INVALID_PARAMETERS

    def to_result(self, tool_name: str) -> ToolResult:
        return ToolResult.failure(
            f"Invalid parameters for '{tool_name}': {self.message}",
            kind=self.kind,
            error_type=(
                ErrorType.PERMISSION_ERROR
                if self.kind == ToolErrorKind.PATH_OUTSIDE_WORKSPACE
                else ErrorType.CONFIGURATION_ERROR
            ),
        )


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "arguments"
        problems.append(f"{location}: {err['msg']}")
    return "; ".join(problems)


def _clean_schema(schema: dict[str, Any], defs: dict[str, Any]) -> dict[str, Any]:
    """Strip pydantic-only keys (title, default, anyOf for Optional, $defs)."""
    if "$ref" in schema:
        schema = defs.get(schema["$ref"].split("/")[-1], {})
    if "anyOf" in schema:
        # Optional[X] renders as anyOf [X, null]; keep the non-null branch
        branch = next((s for s in schema["anyOf"] if s.get("type") != "null"), {})
        merged = {**branch, **{k: v for k, v in schema.items() if k != "anyOf"}}
        return _clean_schema(merged, defs)

    cleaned: dict[str, Any] = {k: schema[k] for k in _SCHEMA_KEYS if k in schema}
    if "properties" in cleaned:
        cleaned["properties"] = {
            name: _clean_schema(prop, defs) for name, prop in cleaned["properties"].items()
        }
    if "items" in cleaned and isinstance(cleaned["items"], dict):
        cleaned["items"] = _clean_schema(cleaned["items"], defs)
    return cleaned


def parameters_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON schema for a params model, in the minimal shape backends accept."""
    raw = model.model_json_schema()
    cleaned = _clean_schema(raw, raw.get("$defs", {}))
    cleaned.setdefault("type", "object")
    cleaned.setdefault("properties", {})
    cleaned["required"] = list(raw.get("required", []))
    return cleaned


# =============================================================================
# Tool
# =============================================================================


class BaseTool(ABC, Generic[P]):
    """A named, schema-validated capability the model may invoke."""

    name: ClassVar[str]
    description: ClassVar[str]
    params_model: ClassVar[type[BaseModel]]

    # Params fields holding workspace paths; each must resolve inside the root
    path_fields: ClassVar[tuple[str, ...]] = ()

    # Shell-like tools whose output should be scanned for failure keywords
    reports_command_output: ClassVar[bool] = False

    def __init__(self, policy: WorkspacePolicy):
        self.policy = policy

    @property
    def workspace_root(self) -> Path:
        return self.policy.resolved_root

    def declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=parameters_schema(self.params_model),
        )

    def validate_params(self, raw_args: dict[str, Any] | None) -> P | InvalidParams:
        """
        Validate raw model arguments.

        Rejects missing required fields, wrong value types and paths that
        escape the workspace root.
        """
        try:
            params = self.params_model.model_validate(raw_args or {})
        except ValidationError as e:
            return InvalidParams(message=_format_validation_error(e))

        try:
            for field_name in self.path_fields:
                value = getattr(params, field_name, None)
                if value is not None:
                    self.policy.resolve(value)
            problem = self.check_params(params)  # type: ignore[arg-type]
        except PathOutsideWorkspaceError as e:
            return InvalidParams(message=str(e), kind=ToolErrorKind.PATH_OUTSIDE_WORKSPACE)
        if problem:
            return InvalidParams(message=problem)
        return params  # type: ignore[return-value]

    def check_params(self, params: P) -> str | None:
        """Extra validation after the schema check. Return an error message or None."""
        return None

    @abstractmethod
    def create_invocation(self, params: P) -> ToolInvocation[P]:
        """Bind validated params. Must be cheap and side-effect free."""


# =============================================================================
# Invocation
# =============================================================================


class ToolInvocation(ABC, Generic[P]):
    """A bound, ready-to-run unit for one specific call."""

    def __init__(self, tool: BaseTool[P], params: P):
        self.tool = tool
        self.params = params

    @property
    def policy(self) -> WorkspacePolicy:
        return self.tool.policy

    def describe(self) -> str:
        """Short human-readable description of what will run."""
        args = ", ".join(f"{k}={v!r}" for k, v in self.params.model_dump(exclude_none=True).items())
        return f"{self.tool.name}({args})"

    async def execute(self, cancel: CancellationToken | None = None) -> ToolResult:
        """
        Run the invocation.

        Never raises for tool-internal failures; task cancellation
        (asyncio.CancelledError) still propagates.
        """
        if is_cancelled(cancel):
            return ToolResult.failure(
                f"Tool '{self.tool.name}' was cancelled before it started",
                kind=ToolErrorKind.CANCELLED,
            )

        start_time = time.perf_counter()
        try:
            result = await self.run(cancel)
        except (TimeoutError, asyncio.TimeoutError) as e:
            detail = f": {e}" if str(e) else ""
            result = ToolResult.failure(
                f"Tool '{self.tool.name}' timed out{detail}",
                kind=ToolErrorKind.TIMEOUT,
                error_type=ErrorType.UNKNOWN,
            )
        except FileNotFoundError as e:
            result = ToolResult.failure(
                f"File not found: {e.filename or e}",
                kind=ToolErrorKind.FILE_NOT_FOUND,
                error_type=ErrorType.CONFIGURATION_ERROR,
            )
        except PermissionError as e:
            result = ToolResult.failure(
                f"Permission denied: {e.filename or e}",
                error_type=ErrorType.PERMISSION_ERROR,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("tool_execution_failed", tool=self.tool.name, error=message)
            result = ToolResult.failure(
                f"{type(e).__name__}: {message}",
                error_type=classify_error_type("", message, ""),
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            "tool_executed",
            tool=self.tool.name,
            success=result.success,
            duration_ms=duration_ms,
        )
        return result

    @abstractmethod
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        """Do the work. May raise; ``execute`` converts exceptions."""
