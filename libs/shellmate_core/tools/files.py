"""
File Tools - Reading, writing and editing workspace files.

All paths are workspace-relative (absolute paths are accepted only inside
the workspace). Edits are exact-string replacements and report a unified
diff so the model and the user can see what changed.
"""

from __future__ import annotations

import asyncio
import difflib
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.schema import ErrorType, ToolErrorKind, ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tracking import record_file_change

logger = structlog.get_logger()

MAX_READ_CHARS = 200_000
MAX_GLOB_RESULTS = 500
SKIPPED_DIRS = {"node_modules", ".git", "__pycache__", ".venv", "venv"}


def generate_diff(original: str, modified: str, filename: str) -> str:
    """Generate a unified diff between original and modified content."""
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        modified.splitlines(keepends=True),
        fromfile=f"a/{filename}",
        tofile=f"b/{filename}",
    )
    return "".join(diff)


def _read_existing(target: Path) -> str | None:
    if not target.exists():
        return None
    return target.read_text(encoding="utf-8", errors="replace")


def _write(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


def find_occurrence(text: str, old: str, occurrence: int) -> int:
    """Index of the Nth non-overlapping match of ``old`` (1-indexed), or -1."""
    idx = -len(old)
    for _ in range(occurrence):
        idx = text.find(old, idx + len(old))
        if idx == -1:
            return -1
    return idx


def _not_found(rel_path: str) -> ToolResult:
    return ToolResult.failure(
        f"File does not exist: {rel_path}",
        kind=ToolErrorKind.FILE_NOT_FOUND,
        error_type=ErrorType.CONFIGURATION_ERROR,
    )


# =============================================================================
# read_file
# =============================================================================


class ReadFileParams(BaseModel):
    path: str = Field(description="Path of the file, relative to the workspace root")
    offset: int | None = Field(
        default=None, ge=1, description="1-based line number to start reading from"
    )
    limit: int | None = Field(default=None, ge=1, description="Maximum number of lines to read")


class ReadFileInvocation(ToolInvocation[ReadFileParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if not target.exists():
            return _not_found(rel_path)
        if target.is_dir():
            return ToolResult.failure(
                f"Path is a directory, not a file: {rel_path}",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        lines = content.splitlines()
        total = len(lines)

        if self.params.offset is not None or self.params.limit is not None:
            start = (self.params.offset or 1) - 1
            end = start + self.params.limit if self.params.limit else total
            content = "\n".join(lines[start:end])
            header = f"[Lines {start + 1}-{min(end, total)} of {total} from {rel_path}]\n"
            content = header + content

        if len(content) > MAX_READ_CHARS:
            content = content[:MAX_READ_CHARS] + "\n... [truncated, use offset/limit to read more]"

        logger.info("read_file", path=rel_path, lines=total)
        return ToolResult(llm_content=content, display=f"Read {rel_path} ({total} lines)")


class ReadFileTool(BaseTool[ReadFileParams]):
    name = "read_file"
    description = (
        "Read a text file from the workspace. Use offset/limit to read a slice of a large file."
    )
    params_model = ReadFileParams
    path_fields = ("path",)

    def create_invocation(self, params: ReadFileParams) -> ReadFileInvocation:
        return ReadFileInvocation(self, params)


# =============================================================================
# write_file
# =============================================================================


class WriteFileParams(BaseModel):
    path: str = Field(description="Path of the file to create or overwrite")
    content: str = Field(description="Full content to write")


class WriteFileInvocation(ToolInvocation[WriteFileParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if target.is_dir():
            return ToolResult.failure(
                f"Path is a directory, not a file: {rel_path}",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        original = await asyncio.to_thread(_read_existing, target)
        await asyncio.to_thread(_write, target, self.params.content)
        record_file_change(str(target))

        size = len(self.params.content.encode("utf-8"))
        logger.info("write_file", path=rel_path, size=size, created=original is None)

        if original is None:
            return ToolResult(
                llm_content=f"Created {rel_path} ({size} bytes).",
                display=f"Created {rel_path}",
            )
        diff = generate_diff(original, self.params.content, rel_path)
        return ToolResult(
            llm_content=f"Overwrote {rel_path} ({size} bytes).\n\n{diff}".rstrip(),
            display=f"Wrote {rel_path}",
        )


class WriteFileTool(BaseTool[WriteFileParams]):
    name = "write_file"
    description = "Create a file or replace its whole content. Parent directories are created."
    params_model = WriteFileParams
    path_fields = ("path",)

    def create_invocation(self, params: WriteFileParams) -> WriteFileInvocation:
        return WriteFileInvocation(self, params)


# =============================================================================
# edit_file
# =============================================================================


class EditFileParams(BaseModel):
    path: str = Field(description="Path of the file to edit")
    old_string: str = Field(min_length=1, description="Exact text to replace")
    new_string: str = Field(description="Replacement text")
    occurrence: int = Field(
        default=1, ge=0, description="Which occurrence to replace (1-indexed, 0 = all)"
    )


class EditFileInvocation(ToolInvocation[EditFileParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if not target.is_file():
            return _not_found(rel_path)

        original = await asyncio.to_thread(target.read_text, encoding="utf-8")
        old, new = self.params.old_string, self.params.new_string

        count = original.count(old)
        if count == 0:
            return ToolResult.failure(
                "Old content not found in file. Hint: make sure the content matches "
                "exactly, including whitespace",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        occurrence = self.params.occurrence
        if occurrence == 0:
            modified = original.replace(old, new)
        elif occurrence > count:
            return ToolResult.failure(
                f"Occurrence {occurrence} not found (only {count} matches)",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )
        else:
            idx = find_occurrence(original, old, occurrence)
            modified = original[:idx] + new + original[idx + len(old):]

        await asyncio.to_thread(target.write_text, modified, encoding="utf-8")
        record_file_change(str(target))

        replaced = count if occurrence == 0 else 1
        logger.info("edit_file", path=rel_path, replacements=replaced)
        diff = generate_diff(original, modified, rel_path)
        return ToolResult(
            llm_content=f"Edited {rel_path} ({replaced} replacement(s)).\n\n{diff}".rstrip(),
            display=f"Edited {rel_path}",
        )


class EditFileTool(BaseTool[EditFileParams]):
    name = "edit_file"
    description = (
        "Replace an exact text snippet in a file. Read the file first; old_string "
        "must match exactly, including whitespace."
    )
    params_model = EditFileParams
    path_fields = ("path",)

    def create_invocation(self, params: EditFileParams) -> EditFileInvocation:
        return EditFileInvocation(self, params)


# =============================================================================
# list_directory
# =============================================================================


class ListDirectoryParams(BaseModel):
    path: str = Field(default=".", description="Directory to list, relative to the workspace root")
    show_hidden: bool = Field(default=False, description="Include dot-prefixed entries")


def _sorted_listing(target: Path) -> list[Path]:
    return sorted(target.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))


class ListDirectoryInvocation(ToolInvocation[ListDirectoryParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        target = self.policy.resolve(self.params.path)
        rel_path = self.policy.relative(target)
        if not target.exists():
            return _not_found(rel_path)
        if not target.is_dir():
            return ToolResult.failure(
                f"Path is not a directory: {rel_path}",
                error_type=ErrorType.CONFIGURATION_ERROR,
            )

        entries = await asyncio.to_thread(_sorted_listing, target)
        lines = []
        for entry in entries:
            if entry.name.startswith(".") and not self.params.show_hidden:
                continue
            lines.append(f"[DIR] {entry.name}" if entry.is_dir() else entry.name)

        if not lines:
            return ToolResult(llm_content=f"Directory {rel_path} is empty.", display="0 entries")
        listing = "\n".join(lines)
        return ToolResult(
            llm_content=f"Directory listing for {rel_path}:\n{listing}",
            display=f"Listed {len(lines)} entries",
        )


class ListDirectoryTool(BaseTool[ListDirectoryParams]):
    name = "list_directory"
    description = "List files and subdirectories of a workspace directory."
    params_model = ListDirectoryParams
    path_fields = ("path",)

    def create_invocation(self, params: ListDirectoryParams) -> ListDirectoryInvocation:
        return ListDirectoryInvocation(self, params)


# =============================================================================
# glob
# =============================================================================


class GlobParams(BaseModel):
    pattern: str = Field(min_length=1, description="Glob pattern, e.g. '**/*.py' or 'src/*.ts'")
    path: str = Field(default=".", description="Directory to search from")


class GlobInvocation(ToolInvocation[GlobParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        base = self.policy.resolve(self.params.path)
        if not base.is_dir():
            return _not_found(self.policy.relative(base))

        matches, truncated = await asyncio.to_thread(self._collect, base, cancel)

        if not matches:
            return ToolResult(
                llm_content=f"No files matched '{self.params.pattern}'.",
                display="0 matches",
            )
        matches.sort()
        body = "\n".join(matches)
        if truncated:
            body += f"\n... [stopped after {MAX_GLOB_RESULTS} matches]"
        return ToolResult(
            llm_content=f"Found {len(matches)} file(s) matching '{self.params.pattern}':\n{body}",
            display=f"{len(matches)} matches",
        )

    def _collect(self, base: Path, cancel: CancellationToken | None) -> tuple[list[str], bool]:
        matches: list[str] = []
        for candidate in base.glob(self.params.pattern):
            if is_cancelled(cancel):
                break
            if not candidate.is_file() or _in_skipped_dir(candidate, base):
                continue
            if not self.policy.contains(str(candidate)):
                continue
            matches.append(self.policy.relative(candidate))
            if len(matches) >= MAX_GLOB_RESULTS:
                return matches, True
        return matches, False


def _in_skipped_dir(path: Path, base: Path) -> bool:
    parts = path.relative_to(base).parts[:-1]
    return any(part in SKIPPED_DIRS or part.startswith(".") for part in parts)


class GlobTool(BaseTool[GlobParams]):
    name = "glob"
    description = "Find files by glob pattern (dependency and VCS directories are skipped)."
    params_model = GlobParams
    path_fields = ("path",)

    def check_params(self, params: GlobParams) -> str | None:
        if Path(params.pattern).is_absolute() or ".." in Path(params.pattern).parts:
            return "pattern must be relative and may not contain '..'"
        return None

    def create_invocation(self, params: GlobParams) -> GlobInvocation:
        return GlobInvocation(self, params)
