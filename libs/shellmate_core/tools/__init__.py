"""Shellmate Tools - The Toolset Registry."""

from shellmate_core.tools.base import BaseTool, InvalidParams, ToolInvocation
from shellmate_core.tools.defaults import build_default_registry, register_default_tools
from shellmate_core.tools.diagnostics import ReadLogsTool
from shellmate_core.tools.files import (
    EditFileTool,
    GlobTool,
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from shellmate_core.tools.policies import PathOutsideWorkspaceError, WorkspacePolicy
from shellmate_core.tools.registry import ToolRegistry
from shellmate_core.tools.search import SearchFileContentTool
from shellmate_core.tools.shell import ShellTool
from shellmate_core.tools.structure import CheckSyntaxTool, FileStructureTool, ProjectStructureTool
from shellmate_core.tools.web import WebFetchTool

__all__ = [
    # Contract
    "BaseTool",
    "ToolInvocation",
    "InvalidParams",
    "ToolRegistry",
    "WorkspacePolicy",
    "PathOutsideWorkspaceError",
    "register_default_tools",
    "build_default_registry",
    # File tools
    "ReadFileTool",
    "WriteFileTool",
    "EditFileTool",
    "ListDirectoryTool",
    "GlobTool",
    "SearchFileContentTool",
    # Runtime tools
    "ShellTool",
    "WebFetchTool",
    # Structure tools
    "FileStructureTool",
    "ProjectStructureTool",
    "CheckSyntaxTool",
    "ReadLogsTool",
]
