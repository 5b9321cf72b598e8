"""
Shellmate Core - A coding agent for local projects

A tool-calling orchestration engine: one conversation loop, a sandboxed
toolset, failure classification and interchangeable model backends.
"""

from shellmate_core.agent import AgentLoop, AgentSession, AgentSessionFactory, TurnOutcome
from shellmate_core.cancellation import CancellationToken
from shellmate_core.llm import BackendAdapter, BackendError, BackendKind
from shellmate_core.schema import (
    Content,
    ErrorType,
    FunctionCall,
    ModelTurn,
    ToolError,
    ToolErrorKind,
    ToolResult,
)
from shellmate_core.tools import BaseTool, ToolInvocation, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    "AgentLoop",
    "AgentSession",
    "AgentSessionFactory",
    "TurnOutcome",
    "CancellationToken",
    "BackendAdapter",
    "BackendError",
    "BackendKind",
    "Content",
    "ErrorType",
    "FunctionCall",
    "ModelTurn",
    "ToolError",
    "ToolErrorKind",
    "ToolResult",
    "BaseTool",
    "ToolInvocation",
    "ToolRegistry",
]
