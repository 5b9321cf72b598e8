"""
Default Toolset - The tools every workspace-bound adapter starts with.
"""

from __future__ import annotations

from pathlib import Path

import httpx

from shellmate_core.diagnostics.logs import LogBuffer
from shellmate_core.tools.diagnostics import ReadLogsTool
from shellmate_core.tools.files import (
    EditFileTool,
    GlobTool,
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from shellmate_core.tools.policies import WorkspacePolicy
from shellmate_core.tools.registry import ToolRegistry
from shellmate_core.tools.search import SearchFileContentTool
from shellmate_core.tools.shell import DEFAULT_TIMEOUT_SECONDS, ShellTool
from shellmate_core.tools.structure import (
    CheckSyntaxTool,
    FileStructureTool,
    ProjectStructureTool,
)
from shellmate_core.tools.web import WebFetchTool


def register_default_tools(
    registry: ToolRegistry,
    workspace_root: str | Path,
    *,
    shell_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    tree_depth: int = 3,
    max_structure_files: int = 50,
    log_buffer: LogBuffer | None = None,
    web_transport: httpx.AsyncBaseTransport | None = None,
) -> ToolRegistry:
    """
    Register the standard toolset, all bound to ``workspace_root``.

    ``read_logs`` is only registered when a log buffer is supplied.
    """
    policy = WorkspacePolicy(Path(workspace_root))

    registry.register_tool(ReadFileTool(policy))
    registry.register_tool(WriteFileTool(policy))
    registry.register_tool(EditFileTool(policy))
    registry.register_tool(ListDirectoryTool(policy))
    registry.register_tool(GlobTool(policy))
    registry.register_tool(SearchFileContentTool(policy))
    registry.register_tool(ShellTool(policy, timeout=shell_timeout))
    registry.register_tool(WebFetchTool(policy, transport=web_transport))
    registry.register_tool(FileStructureTool(policy))
    registry.register_tool(
        ProjectStructureTool(policy, max_depth=tree_depth, max_files=max_structure_files)
    )
    registry.register_tool(CheckSyntaxTool(policy))
    if log_buffer is not None:
        registry.register_tool(ReadLogsTool(policy, log_buffer))
    return registry


def build_default_registry(workspace_root: str | Path, **options) -> ToolRegistry:
    return register_default_tools(ToolRegistry(), workspace_root, **options)
