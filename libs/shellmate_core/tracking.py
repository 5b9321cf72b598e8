"""
Execution Tracking Context

This module provides context variables to track agent actions across tool calls.
It is used to collect per-turn metrics like files changed, tool calls and loop
iterations.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field


@dataclass
class ExecutionMetrics:
    files_changed: set[str] = field(default_factory=set)
    tool_calls: int = 0
    tool_failures: int = 0
    iterations: int = 0


_metrics_context: ContextVar[ExecutionMetrics | None] = ContextVar(
    "execution_metrics", default=None
)


def start_metrics() -> ExecutionMetrics:
    """Begin a fresh metrics scope for the current context (one per turn)."""
    metrics = ExecutionMetrics()
    _metrics_context.set(metrics)
    return metrics


def get_current_metrics() -> ExecutionMetrics:
    """Get the current execution metrics, starting a scope if none is active."""
    metrics = _metrics_context.get()
    if metrics is None:
        metrics = start_metrics()
    return metrics


def record_file_change(path: str) -> None:
    """Record that a file was changed."""
    get_current_metrics().files_changed.add(path)


def record_tool_call(success: bool) -> None:
    metrics = get_current_metrics()
    metrics.tool_calls += 1
    if not success:
        metrics.tool_failures += 1


def record_iteration() -> None:
    get_current_metrics().iterations += 1
