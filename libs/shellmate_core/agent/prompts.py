"""
System Prompts

The system instruction sent with every request: the agent's role, the
workspace it is confined to, the tools it may call and (when enabled) a
summary of the project's structure.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

SYSTEM_PROMPT = """You are Shellmate, a coding agent working inside a local project.

## Your Workspace
All file paths are relative to the workspace root: {workspace_root}
You cannot read or write outside of it.

## Your Tools
{tool_list}

## Your Principles
1. **Look Before You Act**: Read files and list directories before changing them.
2. **Small, Exact Edits**: Prefer edit_file with an exact old_string over rewriting whole files.
3. **Verify**: After changing code, run the relevant command or check_syntax.
4. **Recover From Errors**: Tool failures come back with an error type and a hint.
   Read them and adjust your next action instead of repeating the same call.
5. **Finish With Text**: When the task is done, answer in plain text without calling tools."""

PROJECT_SECTION = """

## Project Structure
{project_structure}"""


def build_system_instruction(
    workspace_root: str | Path,
    tool_names: Sequence[str],
    project_structure: str | None = None,
) -> str:
    """
    Render the system instruction.

    Args:
        workspace_root: Sandbox root shown to the model
        tool_names: Registered tool names, in registration order
        project_structure: Output of extract_project_structure, if enabled
    """
    tool_list = "\n".join(f"- {name}" for name in tool_names) or "- (none)"
    prompt = SYSTEM_PROMPT.format(workspace_root=workspace_root, tool_list=tool_list)
    if project_structure:
        prompt += PROJECT_SECTION.format(project_structure=project_structure.rstrip())
    return prompt
