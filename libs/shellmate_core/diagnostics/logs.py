"""
Diagnostics Logs - structlog setup and recent-log access.

``configure_logging`` wires structlog for the process. When a LogBuffer is
supplied, every rendered event is also kept in a bounded in-memory ring so
``read_recent_logs`` can hand recent, tag-filtered lines to the model as
extra context. The buffer is a read-only string source for the agent; it
never feeds back into the orchestration loop on its own.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, MutableMapping
from typing import Any

import structlog

DEFAULT_TAGS: tuple[str, ...] = (
    "agent", "backend", "cloud", "local", "scripted", "session",
    "tool", "shell", "http", "api", "stream",
)

# Lines carrying these markers are always relevant, whatever their tag.
ALERT_MARKERS: tuple[str, ...] = (
    "[warning]", "[error]", "[critical]", "error", "exception", "failed", "timeout",
)


class LogBuffer:
    """Bounded ring of rendered log lines, usable as a structlog processor."""

    def __init__(self, capacity: int = 2000) -> None:
        self._lines: deque[str] = deque(maxlen=capacity)

    def __call__(
        self, _logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        self.append(self._render(method_name, event_dict))
        return event_dict

    @staticmethod
    def _render(method_name: str, event_dict: MutableMapping[str, Any]) -> str:
        level = event_dict.get("level", method_name)
        timestamp = event_dict.get("timestamp", "")
        extras = " ".join(
            f"{key}={value}"
            for key, value in event_dict.items()
            if key not in ("event", "level", "timestamp")
        )
        line = f"{timestamp} [{level}] {event_dict.get('event', '')}"
        return f"{line} {extras}".strip() if extras else line.strip()

    def append(self, line: str) -> None:
        self._lines.append(line)

    def lines(self) -> list[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    buffer: LogBuffer | None = None,
) -> None:
    """
    Configure structlog for the process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        json_logs: Render JSON lines instead of the coloured console format
        buffer: Optional ring buffer that receives a copy of every event
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if buffer is not None:
        processors.append(buffer)
    processors.append(
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def _is_relevant(line: str, tags: Iterable[str]) -> bool:
    lowered = line.lower()
    if any(tag.lower() in lowered for tag in tags):
        return True
    return any(marker in lowered for marker in ALERT_MARKERS)


def read_recent_logs(
    buffer: LogBuffer,
    max_lines: int = 200,
    tags: Iterable[str] = DEFAULT_TAGS,
) -> str:
    """
    Return the newest relevant log lines, oldest first.

    Scans up to three times ``max_lines`` of history and keeps lines that
    mention one of ``tags`` or look like a warning/error.
    """
    tags = tuple(tags)
    window = buffer.lines()[-max_lines * 3:]
    relevant = [line for line in window if _is_relevant(line, tags)]
    if not relevant:
        return f"No relevant log entries found (checked last {len(window)} lines)."
    return "\n".join(relevant[-max_lines:])
