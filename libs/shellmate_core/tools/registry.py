"""
Tool Registry - Core tool management system.

Each backend adapter owns one registry, populated once against its workspace
root. The registry advertises tool schemas for function calling and
dispatches the model's function calls: lookup, validation, invocation,
execution. Dispatch always yields a ToolResult, never an exception.
"""

from __future__ import annotations

import time
from collections.abc import Iterable

import structlog

from shellmate_core.cancellation import CancellationToken
from shellmate_core.schema import (
    ErrorType,
    FunctionCall,
    FunctionDeclaration,
    ToolErrorKind,
    ToolResult,
)
from shellmate_core.tools.base import BaseTool, InvalidParams

logger = structlog.get_logger()


class ToolRegistry:
    """
    Mapping from tool name to Tool, in registration order.

    Registering a name twice replaces the earlier tool (last write wins).
    Construct once, then share read-only: lookups need no locking.
    """

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: BaseTool) -> None:
        """
        Register a tool under its name.

        Args:
            tool: The tool instance; replaces any tool already registered
                under the same name
        """
        previous = self._tools.get(tool.name)
        if previous is not None and previous is not tool:
            logger.warning("tool_registration_replaced", name=tool.name)
            # Drop first so the replacement takes the newest position
            del self._tools[tool.name]
        self._tools[tool.name] = tool
        logger.debug("tool_registered", name=tool.name)

    def get_tool(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_all_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_function_declarations(self) -> list[FunctionDeclaration]:
        """One schema descriptor per registered tool, in registration order."""
        return [tool.declaration() for tool in self._tools.values()]

    def list_for_openai(self, tool_names: list[str] | None = None) -> list[dict]:
        """
        Format tools for OpenAI function calling API.

        Args:
            tool_names: Optional list to filter by name

        Returns:
            List of tools in OpenAI function format
        """
        return [
            declaration.to_openai()
            for declaration in self.get_function_declarations()
            if not tool_names or declaration.name in tool_names
        ]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(
        self,
        call: FunctionCall,
        cancel: CancellationToken | None = None,
    ) -> ToolResult:
        """
        Dispatch one function call.

        Unknown tools and invalid parameters come back as ToolResult errors
        so the model can recover in-conversation.
        """
        tool = self.get_tool(call.name)
        if tool is None:
            available = ", ".join(self._tools) or "none"
            logger.warning("tool_not_found", tool=call.name)
            return ToolResult.failure(
                f"Tool '{call.name}' not found. Available tools: {available}",
                kind=ToolErrorKind.TOOL_NOT_FOUND,
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        start_time = time.perf_counter()
        try:
            params = tool.validate_params(call.args)
            if isinstance(params, InvalidParams):
                logger.info("tool_params_invalid", tool=call.name, error=params.message)
                return params.to_result(call.name)

            invocation = tool.create_invocation(params)
            result = await invocation.execute(cancel)
        except Exception as e:
            # execute() is supposed to contain its own failures; this covers
            # tools that break that contract.
            logger.exception("tool_dispatch_failed", tool=call.name, error=str(e))
            result = ToolResult.failure(
                f"Tool '{call.name}' crashed: {type(e).__name__}: {e}",
                error_type=ErrorType.UNKNOWN,
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "tool_dispatched",
            tool=call.name,
            success=result.success,
            duration_ms=duration_ms,
        )
        return result
