"""
Shell Tool - Run commands in the workspace.

Commands run through ``sh -c`` in a workspace-relative directory with
stdout and stderr merged. The output is read incrementally so cancellation
is observed between chunks, and a timeout kills the process. A non-zero exit
status becomes a classified ToolError.
"""

from __future__ import annotations

import asyncio
import os

import structlog
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken
from shellmate_core.diagnostics.classifier import classify_error_type
from shellmate_core.schema import ErrorType, ToolErrorKind, ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tools.policies import WorkspacePolicy

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 60.0
MAX_OUTPUT_CHARS = 100_000
READ_CHUNK_BYTES = 4096
EXIT_COMMAND_NOT_FOUND = 127

# Security: commands that are never run
DANGEROUS_PATTERNS = (
    "rm -rf /",
    "mkfs",
    "dd if=",
    ":(){:|:&};:",  # Fork bomb
    "chmod 777 /",
)


class ShellParams(BaseModel):
    command: str = Field(min_length=1, description="Shell command to execute with sh -c")
    directory: str = Field(
        default=".", description="Working directory, relative to the workspace root"
    )
    timeout_seconds: float | None = Field(
        default=None, gt=0, le=600, description="Maximum execution time in seconds"
    )


def _truncate(output: str) -> str:
    if len(output) <= MAX_OUTPUT_CHARS:
        return output
    # Keep the tail: errors are usually printed last
    return "... [output truncated]\n" + output[-MAX_OUTPUT_CHARS:]


class ShellInvocation(ToolInvocation[ShellParams]):
    tool: ShellTool

    def describe(self) -> str:
        return f"$ {self.params.command}"

    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        command = self.params.command
        for pattern in DANGEROUS_PATTERNS:
            if pattern in command:
                logger.warning("shell_command_blocked", pattern=pattern)
                return ToolResult.failure(
                    f"Command blocked for security: contains '{pattern}'",
                    error_type=ErrorType.PERMISSION_ERROR,
                )

        cwd = self.policy.resolve(self.params.directory)
        timeout = self.params.timeout_seconds or self.tool.timeout
        logger.info("run_shell_command", command=command[:100], cwd=str(cwd), timeout=timeout)

        proc = await asyncio.create_subprocess_exec(
            "sh", "-c", command,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env={**os.environ, "PAGER": "cat", "GIT_PAGER": "cat"},
        )

        chunks: list[bytes] = []
        try:
            finished = await asyncio.wait_for(self._read_output(proc, chunks, cancel), timeout)
        except asyncio.TimeoutError:
            await kill_process(proc)
            output = _decode(chunks)
            logger.warning("shell_command_timeout", command=command[:100], timeout=timeout)
            return ToolResult.failure(
                f"Command timed out after {timeout:g}s",
                kind=ToolErrorKind.TIMEOUT,
                error_type=ErrorType.UNKNOWN,
                llm_content=f"Command timed out after {timeout:g}s. Partial output:\n{output}",
            )

        if not finished:
            await kill_process(proc)
            logger.info("shell_command_cancelled", command=command[:100])
            return ToolResult.failure(
                "Command cancelled",
                kind=ToolErrorKind.CANCELLED,
                llm_content=f"Command cancelled. Partial output:\n{_decode(chunks)}",
            )

        exit_code = await proc.wait()
        output = _decode(chunks)

        if exit_code != 0:
            message = f"Command failed with exit code {exit_code}"
            if exit_code == EXIT_COMMAND_NOT_FOUND:
                # dash prints "sh: 1: foo: not found", which the keyword tables miss
                error_type = ErrorType.COMMAND_NOT_FOUND
            else:
                error_type = classify_error_type(output, message, command)
            logger.info("shell_command_failed", exit_code=exit_code, error_type=error_type.value)
            return ToolResult.failure(
                message,
                error_type=error_type,
                llm_content=f"{message}:\n{output}",
            )

        return ToolResult(
            llm_content=output or "Command completed successfully with no output.",
            display=f"$ {command[:60]} (exit 0)",
        )

    @staticmethod
    async def _read_output(
        proc: asyncio.subprocess.Process,
        chunks: list[bytes],
        cancel: CancellationToken | None,
    ) -> bool:
        """Read until EOF. Returns False if cancelled first."""
        assert proc.stdout is not None
        cancel_wait = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        read: asyncio.Future[bytes] | None = None
        try:
            while True:
                read = asyncio.ensure_future(proc.stdout.read(READ_CHUNK_BYTES))
                waiters = {read} if cancel_wait is None else {read, cancel_wait}
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                if read not in done:
                    return False
                chunk = read.result()
                if not chunk:
                    return True
                chunks.append(chunk)
        finally:
            if read is not None and not read.done():
                read.cancel()
            if cancel_wait is not None:
                cancel_wait.cancel()


def _decode(chunks: list[bytes]) -> str:
    return _truncate(b"".join(chunks).decode("utf-8", errors="replace"))


async def kill_process(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class ShellTool(BaseTool[ShellParams]):
    name = "run_shell_command"
    description = (
        "Execute a shell command (sh -c) inside the workspace. Returns combined "
        "stdout/stderr; a non-zero exit status is reported as an error."
    )
    params_model = ShellParams
    path_fields = ("directory",)
    reports_command_output = True

    def __init__(self, policy: WorkspacePolicy, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(policy)
        self.timeout = timeout

    def check_params(self, params: ShellParams) -> str | None:
        if not self.policy.resolve(params.directory).is_dir():
            return f"Working directory does not exist: {params.directory}"
        return None

    def create_invocation(self, params: ShellParams) -> ShellInvocation:
        return ShellInvocation(self, params)
