"""Shellmate Agent - the orchestration loop and its session facade."""

from shellmate_core.agent.events import (
    AgentEvent,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnOutcome,
)
from shellmate_core.agent.loop import AgentLoop, LoopState
from shellmate_core.agent.prompts import build_system_instruction
from shellmate_core.agent.session import AgentSession, AgentSessionFactory

__all__ = [
    "AgentLoop",
    "LoopState",
    "TurnOutcome",
    "AgentEvent",
    "ChunkEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "ErrorEvent",
    "DoneEvent",
    "AgentSession",
    "AgentSessionFactory",
    "build_system_instruction",
]
