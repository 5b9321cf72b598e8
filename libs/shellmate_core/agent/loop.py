"""
Agent Loop - The conversation state machine.

    IDLE --user turn--> AWAITING_MODEL --function calls--> TOOL_DISPATCH
         <--text only--                <--all responses appended--

One loop owns one conversation. Turns are serialized with a lock; within a
turn the model's function calls are dispatched sequentially, in the order
received, and their responses are appended as a single tool Content before
the model is asked again. A hard iteration cap ends runaway turns.

Tool failures never end a turn: they become function responses carrying the
classified error and a recovery hint. Backend failures end the turn and are
reported in the TurnOutcome; ``retry()`` asks the model again without adding
a new user message.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

import structlog

from shellmate_core.agent.events import (
    AgentEvent,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnOutcome,
)
from shellmate_core.agent.prompts import build_system_instruction
from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.context.project_structure import extract_project_structure
from shellmate_core.diagnostics.classifier import (
    classify_error_type,
    detect_failure_keywords,
    recovery_hint,
)
from shellmate_core.llm.base import (
    BackendAdapter,
    BackendError,
    TextDelta,
    TurnComplete,
    TurnError,
)
from shellmate_core.schema import (
    Content,
    ErrorType,
    FunctionCall,
    FunctionCallPart,
    FunctionResponsePart,
    ModelTurn,
    Role,
    ToolErrorKind,
    ToolResult,
)
from shellmate_core.tracking import record_iteration, record_tool_call, start_metrics

logger = structlog.get_logger()

DEFAULT_MAX_ITERATIONS = 25

MAX_ITERATIONS_NOTICE = (
    "Stopped after {iterations} model iterations without a final answer "
    "(max iterations reached). Send another message to continue."
)


class LoopState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    TOOL_DISPATCH = "tool_dispatch"


class AgentLoop:
    """
    Drives one conversation against one backend adapter.

    The backend's ToolRegistry is the toolset; the loop never registers
    tools itself.
    """

    def __init__(
        self,
        backend: BackendAdapter,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        include_project_context: bool = True,
        tree_depth: int = 3,
        max_files: int = 50,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.backend = backend
        self.max_iterations = max_iterations
        self.include_project_context = include_project_context
        self.tree_depth = tree_depth
        self.max_files = max_files

        self._conversation: list[Content] = []
        self._state = LoopState.IDLE
        self._system_instruction: str | None = None
        self._lock = asyncio.Lock()

    @property
    def conversation(self) -> list[Content]:
        """Snapshot of the conversation so far."""
        return list(self._conversation)

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def system_instruction(self) -> str | None:
        return self._system_instruction

    # =========================================================================
    # Public API
    # =========================================================================

    async def run_turn(
        self,
        user_text: str,
        cancel: CancellationToken | None = None,
        **overrides: Any,
    ) -> TurnOutcome:
        """
        Run one user turn to completion with non-streaming backend calls.

        Args:
            user_text: The user's message
            cancel: Optional cancellation token
            **overrides: model / temperature / top_p / top_k for this turn

        Returns:
            The TurnOutcome; backend failures are reported in it, not raised
        """
        return await self._collect(self._turn(user_text, cancel, overrides, streaming=False))

    async def stream_turn(
        self,
        user_text: str,
        cancel: CancellationToken | None = None,
        **overrides: Any,
    ) -> AsyncIterator[AgentEvent]:
        """Run one user turn, yielding events as the backend streams."""
        async for event in self._turn(user_text, cancel, overrides, streaming=True):
            yield event

    async def retry(
        self,
        cancel: CancellationToken | None = None,
        **overrides: Any,
    ) -> TurnOutcome:
        """Ask the model again after a failed turn, without a new user message."""
        return await self._collect(self._turn(None, cancel, overrides, streaming=False))

    def reset(self) -> None:
        """Discard the conversation. The next turn rebuilds the system instruction."""
        self._conversation.clear()
        self._system_instruction = None
        self._state = LoopState.IDLE
        logger.info("conversation_reset", backend=self.backend.kind.value)

    # =========================================================================
    # Turn Driver
    # =========================================================================

    @staticmethod
    async def _collect(events: AsyncIterator[AgentEvent]) -> TurnOutcome:
        outcome = TurnOutcome(error="Turn ended without an outcome")
        async for event in events:
            if isinstance(event, DoneEvent):
                outcome = event.outcome
        return outcome

    async def _turn(
        self,
        user_text: str | None,
        cancel: CancellationToken | None,
        overrides: dict[str, Any],
        streaming: bool,
    ) -> AsyncIterator[AgentEvent]:
        async with self._lock:
            if user_text is None and not self._can_retry():
                yield DoneEvent(outcome=TurnOutcome(error="Nothing to retry"))
                return

            if user_text is not None:
                self._conversation.append(Content.user(user_text))
            try:
                async for event in self._run(cancel, overrides, streaming):
                    yield event
            finally:
                self._state = LoopState.IDLE

    def _can_retry(self) -> bool:
        # A failed turn leaves the user message or tool responses last
        return bool(self._conversation) and self._conversation[-1].role != Role.MODEL

    async def _run(
        self,
        cancel: CancellationToken | None,
        overrides: dict[str, Any],
        streaming: bool,
    ) -> AsyncIterator[AgentEvent]:
        metrics = start_metrics()

        def outcome(**fields: Any) -> TurnOutcome:
            return TurnOutcome(
                iterations=metrics.iterations,
                tool_calls=metrics.tool_calls,
                files_changed=sorted(metrics.files_changed),
                **fields,
            )

        if self._system_instruction is None:
            self._system_instruction = await self._build_system_instruction(cancel)

        while metrics.iterations < self.max_iterations:
            if is_cancelled(cancel):
                yield DoneEvent(outcome=outcome(cancelled=True))
                return

            record_iteration()
            self._state = LoopState.AWAITING_MODEL
            logger.debug("loop_awaiting_model", iteration=metrics.iterations)

            turn: ModelTurn | None = None
            error: TurnError | None = None
            if streaming:
                async for stream_event in self.backend.stream(
                    self._conversation,
                    system_instruction=self._system_instruction,
                    cancel=cancel,
                    **overrides,
                ):
                    if isinstance(stream_event, TextDelta):
                        yield ChunkEvent(text=stream_event.text)
                    elif isinstance(stream_event, TurnComplete):
                        turn = stream_event.turn
                    elif isinstance(stream_event, TurnError):
                        error = stream_event
            else:
                try:
                    turn = await self.backend.call_api(
                        self._conversation,
                        system_instruction=self._system_instruction,
                        **overrides,
                    )
                except BackendError as e:
                    error = TurnError.from_exception(e)

            if is_cancelled(cancel):
                yield DoneEvent(outcome=outcome(cancelled=True))
                return
            if error is not None or turn is None:
                message = error.message if error is not None else "Backend returned no turn"
                retryable = error.retryable if error is not None else False
                logger.warning("loop_backend_failed", error=message, retryable=retryable)
                yield ErrorEvent(message=message, retryable=retryable)
                yield DoneEvent(outcome=outcome(error=message, retryable=retryable))
                return

            turn = self._with_call_ids(turn)
            if turn.parts:
                self._conversation.append(Content(role=Role.MODEL, parts=tuple(turn.parts)))

            if not turn.has_function_calls:
                if turn.text and not streaming:
                    yield ChunkEvent(text=turn.text)
                logger.info(
                    "turn_completed",
                    iterations=metrics.iterations,
                    tool_calls=metrics.tool_calls,
                )
                yield DoneEvent(outcome=outcome(text=turn.text))
                return

            self._state = LoopState.TOOL_DISPATCH
            responses: list[FunctionResponsePart] = []
            for call in turn.function_calls:
                if is_cancelled(cancel):
                    result = ToolResult.failure(
                        f"Tool '{call.name}' was cancelled before it started",
                        kind=ToolErrorKind.CANCELLED,
                    )
                else:
                    yield ToolCallEvent(call=call)
                    result = await self._dispatch(call, cancel)
                record_tool_call(result.success)
                yield ToolResultEvent(call=call, result=result)
                responses.append(FunctionResponsePart(
                    name=call.name,
                    id=call.id,
                    response=self._response_payload(call, result),
                ))
            self._conversation.append(Content(role=Role.TOOL, parts=tuple(responses)))

        notice = MAX_ITERATIONS_NOTICE.format(iterations=metrics.iterations)
        logger.warning("loop_iteration_cap_reached", max_iterations=self.max_iterations)
        yield ChunkEvent(text=notice)
        yield DoneEvent(outcome=outcome(text=notice, hit_iteration_cap=True))

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _build_system_instruction(self, cancel: CancellationToken | None) -> str:
        registry = self.backend.tool_registry
        project_structure = None
        if self.include_project_context:
            project_structure = await asyncio.to_thread(
                extract_project_structure,
                self.backend.workspace_root,
                cancel,
                self.tree_depth,
                self.max_files,
            )
        return build_system_instruction(
            self.backend.workspace_root,
            registry.names,
            project_structure,
        )

    @staticmethod
    def _with_call_ids(turn: ModelTurn) -> ModelTurn:
        """Give every function call an id so responses can be matched to it."""
        if all(p.id for p in turn.parts if isinstance(p, FunctionCallPart)):
            return turn
        parts = [
            p.model_copy(update={"id": f"call_{uuid.uuid4().hex}"})
            if isinstance(p, FunctionCallPart) and not p.id
            else p
            for p in turn.parts
        ]
        return ModelTurn(parts=parts, finish_reason=turn.finish_reason)

    async def _dispatch(self, call: FunctionCall, cancel: CancellationToken | None) -> ToolResult:
        try:
            return await self.backend.tool_registry.execute(call, cancel)
        except Exception as e:
            logger.exception("loop_tool_crashed", tool=call.name)
            return ToolResult.failure(
                f"Tool '{call.name}' crashed: {type(e).__name__}: {e}",
                error_type=ErrorType.UNKNOWN,
            )

    def _response_payload(self, call: FunctionCall, result: ToolResult) -> dict[str, Any]:
        """FunctionResponsePart payload, with a classified hint for failures."""
        response = result.to_response()
        command = call.args.get("command", "")
        command = command if isinstance(command, str) else ""

        if result.error is not None:
            error_type = result.error.type
            # Timeouts and cancellations keep their own type; "timed out" is not a network failure
            if (
                result.error.kind == ToolErrorKind.EXECUTION_ERROR
                and error_type == ErrorType.UNKNOWN
                and detect_failure_keywords(result.llm_content)
            ):
                error_type = classify_error_type(result.llm_content, result.error.message, command)
                response["error"]["type"] = error_type.value
            response["hint"] = recovery_hint(error_type)
            return response

        tool = self.backend.tool_registry.get_tool(call.name)
        if tool is not None and tool.reports_command_output and detect_failure_keywords(result.llm_content):
            error_type = classify_error_type(result.llm_content, "", command)
            if error_type != ErrorType.UNKNOWN:
                response["hint"] = recovery_hint(error_type)
        return response
