"""
Shellmate CLI - Command Line Interface

Chat with the coding agent in a workspace, or run its building blocks
(project structure, error classification, single tool calls) directly.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shellmate_core.agent.events import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnOutcome,
)
from shellmate_core.agent.session import AgentSession, AgentSessionFactory
from shellmate_core.config import get_settings
from shellmate_core.context.project_structure import extract_project_structure
from shellmate_core.diagnostics.classifier import (
    classify_error_type,
    detect_failure_keywords,
    recovery_hint,
)
from shellmate_core.diagnostics.logs import LogBuffer, configure_logging
from shellmate_core.llm.base import BackendError
from shellmate_core.llm.scripted import ScriptedToolAdapter
from shellmate_core.tools.defaults import build_default_registry

app = typer.Typer(
    name="shellmate",
    help="Shellmate - a coding agent for your local projects",
    add_completion=False,
)
console = Console()


def _setup_logging() -> LogBuffer:
    settings = get_settings()
    buffer = LogBuffer()
    configure_logging(settings.log_level, json_logs=settings.json_logs, buffer=buffer)
    return buffer


# =============================================================================
# Chat
# =============================================================================


async def _stream_turn(session: AgentSession, message: Optional[str]) -> TurnOutcome:
    if message is None:
        outcome = await session.retry()
        if outcome.text:
            console.print(outcome.text)
        return outcome

    outcome = TurnOutcome()
    async for event in session.stream(message):
        if isinstance(event, ChunkEvent):
            console.print(event.text, end="", markup=False, highlight=False)
        elif isinstance(event, ToolCallEvent):
            console.print(f"\n[dim]-> {event.call.name}({json.dumps(event.call.args)[:120]})[/dim]")
        elif isinstance(event, ToolResultEvent):
            style = "green" if event.result.success else "red"
            summary = event.result.display or event.result.llm_content[:120]
            console.print(f"[{style}]   {summary}[/{style}]", markup=True, highlight=False)
        elif isinstance(event, ErrorEvent):
            console.print(f"\n[red]Error:[/red] {event.message}")
        elif isinstance(event, DoneEvent):
            outcome = event.outcome
    console.print()
    return outcome


async def _chat(
    workspace: Path,
    backend: Optional[str],
    message: Optional[str],
    script: Optional[Path],
    buffer: LogBuffer,
) -> None:
    settings = get_settings()
    if script is not None:
        settings = settings.model_copy(update={"script_path": str(script)})
        backend = backend or "scripted"

    factory = AgentSessionFactory(settings, log_buffer=buffer)
    try:
        session = await factory.get_session(workspace, backend)
    except BackendError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    try:
        if message is not None:
            outcome = await _stream_turn(session, message)
            if not outcome.success:
                raise typer.Exit(1)
            return

        rprint(Panel(
            f"Workspace: {session.workspace_root}\n"
            f"Backend: {session.backend_kind.value}\n\n"
            "[dim]/reset clears the conversation, /retry repeats a failed turn, /exit quits[/dim]",
            title="Shellmate",
        ))
        while True:
            try:
                line = console.input("[bold cyan]you>[/bold cyan] ").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue
            if line == "/exit":
                break
            if line == "/reset":
                session.reset()
                rprint("[dim]Conversation cleared.[/dim]")
                continue
            outcome = await _stream_turn(session, None if line == "/retry" else line)
            if outcome.error and outcome.retryable:
                rprint("[yellow]The backend failure looks transient; type /retry to try again.[/yellow]")
    finally:
        await factory.invalidate()


@app.command()
def chat(
    workspace: Path = typer.Argument(Path("."), help="Workspace root the agent is confined to"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="cloud, local or scripted"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Send one message and exit"),
    script: Optional[Path] = typer.Option(None, "--script", help="JSON script for the scripted backend"),
) -> None:
    """Chat with the agent in a workspace."""
    buffer = _setup_logging()
    asyncio.run(_chat(workspace, backend, message, script, buffer))


# =============================================================================
# Building Blocks
# =============================================================================


@app.command()
def structure(
    workspace: Path = typer.Argument(Path("."), help="Directory to summarize"),
    depth: int = typer.Option(3, "--depth", "-d", min=1, help="Tree depth"),
    max_files: int = typer.Option(50, "--max-files", min=0, help="Files to outline"),
) -> None:
    """Print the project tree and per-file code structure."""
    _setup_logging()
    if not workspace.is_dir():
        rprint(f"[red]Error:[/red] Not a directory: {workspace}")
        raise typer.Exit(1)
    console.print(
        extract_project_structure(workspace, max_depth=depth, max_files=max_files),
        markup=False,
        highlight=False,
    )


@app.command()
def classify(
    output: str = typer.Argument(..., help="Command or tool output to classify"),
    error_message: str = typer.Option("", "--error", "-e", help="Accompanying error message"),
    command: str = typer.Option("", "--command", "-c", help="Command that produced the output"),
) -> None:
    """Classify a failure and show the recovery hint."""
    error_type = classify_error_type(output, error_message, command)

    table = Table(title="Failure Classification")
    table.add_column("Field", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("Failure keywords", "yes" if detect_failure_keywords(output) else "no")
    table.add_row("Error type", error_type.value)
    table.add_row("Hint", recovery_hint(error_type))
    console.print(table)


@app.command()
def tool(
    name: str = typer.Argument(..., help="Tool name, e.g. list_directory"),
    args: str = typer.Argument("{}", help="Tool arguments as a JSON object"),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root"),
) -> None:
    """Run a single tool call against a workspace."""
    buffer = _setup_logging()
    try:
        parsed = json.loads(args)
    except json.JSONDecodeError as e:
        rprint(f"[red]Error:[/red] Arguments are not valid JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(parsed, dict):
        rprint("[red]Error:[/red] Arguments must be a JSON object")
        raise typer.Exit(1)

    settings = get_settings()
    registry = build_default_registry(
        workspace.resolve(),
        shell_timeout=settings.shell_timeout,
        tree_depth=settings.tree_depth,
        max_structure_files=settings.max_structure_files,
        log_buffer=buffer,
    )
    result = asyncio.run(ScriptedToolAdapter.execute_tool({"name": name, "args": parsed}, registry))

    console.print(result.llm_content, markup=False, highlight=False)
    if result.error is not None:
        rprint(f"[red]{result.error.kind.value}[/red] ({result.error.type.value})")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
