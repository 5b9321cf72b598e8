"""
Agent Events - What a turn reports to its caller while it runs.

A streamed turn yields ChunkEvent / ToolCallEvent / ToolResultEvent in
order and always ends with exactly one DoneEvent carrying the TurnOutcome.
An ErrorEvent precedes the DoneEvent when the backend call failed.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from shellmate_core.schema import FunctionCall, ToolResult


class TurnOutcome(BaseModel):
    """Summary of one user turn once the loop is back to idle."""

    text: str = Field(default="", description="Final model text, or the max-iterations notice")
    iterations: int = 0
    hit_iteration_cap: bool = False
    error: str | None = Field(default=None, description="Backend failure message, if any")
    retryable: bool = False
    cancelled: bool = False
    tool_calls: int = 0
    files_changed: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled


class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    call: FunctionCall


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    call: FunctionCall
    result: ToolResult


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    retryable: bool = False


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    outcome: TurnOutcome


AgentEvent = Annotated[
    Union[ChunkEvent, ToolCallEvent, ToolResultEvent, ErrorEvent, DoneEvent],
    Field(discriminator="type"),
]
