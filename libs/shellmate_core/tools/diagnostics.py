"""
Diagnostics Tool - Recent agent logs as model context.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken
from shellmate_core.diagnostics.logs import DEFAULT_TAGS, LogBuffer, read_recent_logs
from shellmate_core.schema import ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tools.policies import WorkspacePolicy


class ReadLogsParams(BaseModel):
    max_lines: int = Field(default=200, ge=1, le=2000, description="Maximum lines to return")
    tags: list[str] = Field(
        default_factory=list,
        description="Extra keywords to filter on, in addition to the default agent tags",
    )


class ReadLogsInvocation(ToolInvocation[ReadLogsParams]):
    tool: ReadLogsTool

    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        logs = read_recent_logs(
            self.tool.buffer,
            max_lines=self.params.max_lines,
            tags=(*DEFAULT_TAGS, *self.params.tags),
        )
        return ToolResult(llm_content=logs, display="Recent logs")


class ReadLogsTool(BaseTool[ReadLogsParams]):
    name = "read_logs"
    description = (
        "Read recent agent/backend/tool log lines (warnings and errors always included). "
        "Useful when diagnosing failed API calls or tool runs."
    )
    params_model = ReadLogsParams

    def __init__(self, policy: WorkspacePolicy, buffer: LogBuffer):
        super().__init__(policy)
        self.buffer = buffer

    def create_invocation(self, params: ReadLogsParams) -> ReadLogsInvocation:
        return ReadLogsInvocation(self, params)
