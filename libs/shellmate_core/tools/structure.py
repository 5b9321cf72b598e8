"""
Structure Tools - Code outlines and syntax checks.

These tools let the model understand code without reading whole files:
per-file outlines and targeted excerpts, the workspace summary, and a quick
syntax check before running anything.
"""

from __future__ import annotations

import asyncio
import json
import shutil

import structlog
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken
from shellmate_core.context.project_structure import (
    DEFAULT_MAX_FILES,
    DEFAULT_TREE_DEPTH,
    FileStructure,
    extract_code_sections,
    extract_project_structure,
)
from shellmate_core.diagnostics.classifier import classify_error_type
from shellmate_core.schema import ErrorType, ToolErrorKind, ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tools.policies import WorkspacePolicy
from shellmate_core.tools.shell import kill_process

logger = structlog.get_logger()

NODE_CHECK_TIMEOUT_SECONDS = 30.0


# =============================================================================
# file_structure
# =============================================================================


class FileStructureParams(BaseModel):
    path: str = Field(description="File to outline")
    function_names: list[str] = Field(
        default_factory=list, description="Functions whose source should be included"
    )
    line_ranges: list[list[int]] = Field(
        default_factory=list,
        description="1-based inclusive [start, end] line ranges to include",
    )


class FileStructureInvocation(ToolInvocation[FileStructureParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if not target.is_file():
            return ToolResult.failure(
                f"File does not exist: {rel_path}",
                kind=ToolErrorKind.FILE_NOT_FOUND,
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        outline = FileStructure.from_content(rel_path, content)
        text = outline.render().rstrip()

        ranges = [(r[0], r[1]) for r in self.params.line_ranges]
        if self.params.function_names or ranges:
            sections = extract_code_sections(content, rel_path, self.params.function_names, ranges)
            text += "\n\n" + (sections or "(no matching sections)")

        return ToolResult(
            llm_content=text,
            display=(
                f"{rel_path}: {len(outline.classes)} classes, "
                f"{len(outline.functions)} functions"
            ),
        )


class FileStructureTool(BaseTool[FileStructureParams]):
    name = "file_structure"
    description = (
        "Outline a file (imports, classes, functions with line numbers) and optionally "
        "return the source of named functions or line ranges."
    )
    params_model = FileStructureParams
    path_fields = ("path",)

    def check_params(self, params: FileStructureParams) -> str | None:
        for line_range in params.line_ranges:
            if len(line_range) != 2 or line_range[0] < 1 or line_range[1] < line_range[0]:
                return f"Invalid line range {line_range}: expected [start, end] with 1 <= start <= end"
        return None

    def create_invocation(self, params: FileStructureParams) -> FileStructureInvocation:
        return FileStructureInvocation(self, params)


# =============================================================================
# project_structure
# =============================================================================


class ProjectStructureParams(BaseModel):
    max_depth: int | None = Field(default=None, ge=1, le=10, description="Tree depth")


class ProjectStructureInvocation(ToolInvocation[ProjectStructureParams]):
    tool: ProjectStructureTool

    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        structure = await asyncio.to_thread(
            extract_project_structure,
            self.tool.workspace_root,
            cancel,
            self.params.max_depth or self.tool.max_depth,
            self.tool.max_files,
        )
        return ToolResult(
            llm_content=structure or "The workspace is empty.",
            display="Project structure",
        )


class ProjectStructureTool(BaseTool[ProjectStructureParams]):
    name = "project_structure"
    description = (
        "Summarize the workspace: directory tree plus imports, classes and functions "
        "of the main source files."
    )
    params_model = ProjectStructureParams

    def __init__(
        self,
        policy: WorkspacePolicy,
        max_depth: int = DEFAULT_TREE_DEPTH,
        max_files: int = DEFAULT_MAX_FILES,
    ):
        super().__init__(policy)
        self.max_depth = max_depth
        self.max_files = max_files

    def create_invocation(self, params: ProjectStructureParams) -> ProjectStructureInvocation:
        return ProjectStructureInvocation(self, params)


# =============================================================================
# check_syntax
# =============================================================================


class CheckSyntaxParams(BaseModel):
    path: str = Field(description="File to check (.py, .json, .js, .mjs, .cjs)")


class CheckSyntaxInvocation(ToolInvocation[CheckSyntaxParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if not target.is_file():
            return ToolResult.failure(
                f"File does not exist: {rel_path}",
                kind=ToolErrorKind.FILE_NOT_FOUND,
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        suffix = target.suffix.lower()
        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")

        if suffix == ".py":
            try:
                compile(content, rel_path, "exec")
            except SyntaxError as e:
                return _syntax_failure(rel_path, f"SyntaxError: {e.msg} (line {e.lineno})")
        elif suffix == ".json":
            try:
                json.loads(content)
            except json.JSONDecodeError as e:
                return _syntax_failure(
                    rel_path, f"JSON parse error: {e.msg} (line {e.lineno}, column {e.colno})"
                )
        elif suffix in (".js", ".mjs", ".cjs"):
            node = shutil.which("node")
            if node is None:
                return ToolResult.failure(
                    "node: command not found (needed to check JavaScript syntax)",
                    error_type=ErrorType.COMMAND_NOT_FOUND,
                )
            proc = await asyncio.create_subprocess_exec(
                node, "--check", str(target),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            try:
                output, _ = await asyncio.wait_for(proc.communicate(), NODE_CHECK_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                await kill_process(proc)
                logger.warning("check_syntax_timeout", path=rel_path)
                return ToolResult.failure(
                    f"Syntax check of {rel_path} timed out after {NODE_CHECK_TIMEOUT_SECONDS:g}s",
                    kind=ToolErrorKind.TIMEOUT,
                    error_type=ErrorType.UNKNOWN,
                )
            if proc.returncode != 0:
                return _syntax_failure(rel_path, output.decode("utf-8", errors="replace").strip())
        else:
            return ToolResult.failure(
                f"Syntax checking is not supported for '{suffix or rel_path}' files",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        logger.info("check_syntax", path=rel_path, ok=True)
        return ToolResult(llm_content=f"No syntax errors found in {rel_path}.", display="Syntax OK")


def _syntax_failure(rel_path: str, detail: str) -> ToolResult:
    message = f"Syntax error in {rel_path}: {detail}"
    logger.info("check_syntax", path=rel_path, ok=False)
    error_type = classify_error_type(detail, "syntax error")
    return ToolResult.failure(message, error_type=error_type)


class CheckSyntaxTool(BaseTool[CheckSyntaxParams]):
    name = "check_syntax"
    description = "Check a Python, JSON or JavaScript file for syntax errors without running it."
    params_model = CheckSyntaxParams
    path_fields = ("path",)

    def create_invocation(self, params: CheckSyntaxParams) -> CheckSyntaxInvocation:
        return CheckSyntaxInvocation(self, params)
