"""
Search Tool - grep-like content search across the workspace.
"""

from __future__ import annotations

import asyncio
import fnmatch
import re

import structlog
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.schema import ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tools.files import SKIPPED_DIRS

logger = structlog.get_logger()


class SearchParams(BaseModel):
    pattern: str = Field(min_length=1, description="Regular expression to search for")
    path: str = Field(default=".", description="Directory to search in")
    file_pattern: str = Field(
        default="*", description="Glob on file names to restrict the search, e.g. '*.py'"
    )
    max_results: int = Field(default=50, ge=1, le=500, description="Maximum number of matches")
    case_sensitive: bool = Field(default=False, description="Match case exactly")


class SearchInvocation(ToolInvocation[SearchParams]):
    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        # Run in thread pool to avoid blocking event loop
        matches, files_searched, truncated = await asyncio.to_thread(self._search, cancel)

        logger.info(
            "search_file_content",
            pattern=self.params.pattern,
            matches=len(matches),
            files_searched=files_searched,
        )

        if not matches:
            return ToolResult(
                llm_content=(
                    f"No matches for '{self.params.pattern}' "
                    f"({files_searched} files searched)."
                ),
                display="0 matches",
            )
        body = "\n".join(matches)
        if truncated:
            body += f"\n... [stopped after {self.params.max_results} matches]"
        return ToolResult(
            llm_content=f"Found {len(matches)} match(es) for '{self.params.pattern}':\n{body}",
            display=f"{len(matches)} matches",
        )

    def _search(self, cancel: CancellationToken | None) -> tuple[list[str], int, bool]:
        root = self.policy.resolve(self.params.path)
        flags = 0 if self.params.case_sensitive else re.IGNORECASE
        regex = re.compile(self.params.pattern, flags)

        matches: list[str] = []
        files_searched = 0
        for file_path in sorted(root.rglob("*")):
            if is_cancelled(cancel):
                break
            if not file_path.is_file():
                continue
            rel_parts = file_path.relative_to(root).parts
            if any(part in SKIPPED_DIRS or part.startswith(".") for part in rel_parts):
                continue
            if not fnmatch.fnmatch(file_path.name, self.params.file_pattern):
                continue
            # Symlinks may point out of the workspace
            if not self.policy.contains(str(file_path)):
                logger.debug("search_skipped_outside_workspace", path=str(file_path))
                continue

            files_searched += 1
            try:
                content = file_path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue

            rel_path = self.policy.relative(file_path)
            for line_number, line in enumerate(content.splitlines(), start=1):
                if regex.search(line):
                    matches.append(f"{rel_path}:{line_number}: {line.strip()}")
                    if len(matches) >= self.params.max_results:
                        return matches, files_searched, True
        return matches, files_searched, False


class SearchFileContentTool(BaseTool[SearchParams]):
    name = "search_file_content"
    description = (
        "Search file contents with a regular expression. Returns 'path:line: text' "
        "for each matching line."
    )
    params_model = SearchParams
    path_fields = ("path",)

    def check_params(self, params: SearchParams) -> str | None:
        try:
            re.compile(params.pattern)
        except re.error as e:
            return f"Invalid regex pattern: {e}"
        if not self.policy.resolve(params.path).is_dir():
            return f"Not a directory: {params.path}"
        return None

    def create_invocation(self, params: SearchParams) -> SearchInvocation:
        return SearchInvocation(self, params)

