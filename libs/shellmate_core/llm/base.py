"""
Backend Adapter - The "send conversation, get model turn" interface.

Every backend (cloud API, local model server, scripted player) implements
``_generate``; the base class supplies generation presets, retries for
transient failures and a default streaming view built on the non-streaming
call. The orchestration loop depends only on this interface.

Failures surface as BackendError subclasses:
    BackendConfigurationError  fatal, raised at construction (missing key/SDK)
    BackendRateLimitError      quota/throttling, retried
    BackendConnectionError     transport failure or timeout, retried
    BackendResponseError       the backend answered with an error or garbage
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from enum import Enum
from pathlib import Path
from typing import Annotated, ClassVar, Literal, Union

import structlog
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.llm.settings import GenerationConfig, get_generation_config
from shellmate_core.schema import Content, FunctionCall, FunctionDeclaration, ModelTurn
from shellmate_core.tools.registry import ToolRegistry

logger = structlog.get_logger()


class BackendKind(str, Enum):
    """User-selectable backend."""

    CLOUD = "cloud"
    LOCAL = "local"
    SCRIPTED = "scripted"


# =============================================================================
# Custom Exceptions
# =============================================================================


class BackendError(Exception):
    """Base exception for backend errors."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class BackendConfigurationError(BackendError):
    """Raised when an adapter cannot be built (missing credentials, SDK, URL)."""

    pass


class BackendRateLimitError(BackendError):
    """Raised when rate limited by the provider."""

    def __init__(self, message: str, provider: str, retry_after: float | None = None):
        super().__init__(message, provider=provider, status_code=429, retryable=True)
        self.retry_after = retry_after


class BackendConnectionError(BackendError):
    """Raised when the backend cannot be reached or times out."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, provider=provider, retryable=True)


class BackendResponseError(BackendError):
    """Raised for error responses and unparseable response bodies."""

    pass


# =============================================================================
# Stream Events
# =============================================================================


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class FunctionCallEvent(BaseModel):
    type: Literal["function_call"] = "function_call"
    call: FunctionCall


class TurnComplete(BaseModel):
    """Always the last event of a successful stream; carries the whole turn."""

    type: Literal["turn_complete"] = "turn_complete"
    turn: ModelTurn


class TurnError(BaseModel):
    """Always the last event of a failed stream."""

    type: Literal["turn_error"] = "turn_error"
    message: str
    provider: str | None = None
    status_code: int | None = None
    retryable: bool = False

    @classmethod
    def from_exception(cls, error: BackendError) -> TurnError:
        return cls(
            message=str(error),
            provider=error.provider,
            status_code=error.status_code,
            retryable=error.retryable,
        )


StreamEvent = Annotated[
    Union[TextDelta, FunctionCallEvent, TurnComplete, TurnError],
    Field(discriminator="type"),
]


# =============================================================================
# Adapter
# =============================================================================


class BackendAdapter(ABC):
    """
    A workspace-bound backend.

    Owns the ToolRegistry built for its workspace root; the registry's
    declarations are advertised with every request.
    """

    kind: ClassVar[BackendKind]
    provider: str = "unknown"

    RETRYABLE_ERRORS = (BackendRateLimitError, BackendConnectionError)

    def __init__(
        self,
        tool_registry: ToolRegistry,
        workspace_root: str | Path,
        generation: GenerationConfig | None = None,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
    ):
        self.tool_registry = tool_registry
        self.workspace_root = Path(workspace_root)
        self.generation = generation or get_generation_config(self.kind)
        self.max_retries = max_retries
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=30)

    def function_declarations(self) -> list[FunctionDeclaration]:
        return self.tool_registry.get_function_declarations()

    async def call_api(
        self,
        conversation: Sequence[Content],
        *,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        system_instruction: str | None = None,
    ) -> ModelTurn:
        """
        Send the conversation and return one model turn.

        Raises:
            BackendError: After retries are exhausted or on a non-retryable failure
        """
        config = self.generation.with_overrides(model, temperature, top_p, top_k)
        logger.info(
            "backend_request",
            backend=self.kind.value,
            provider=self.provider,
            model=config.model_name,
            contents=len(conversation),
        )
        turn = await self._generate_with_retry(list(conversation), config, system_instruction)
        logger.info(
            "backend_response",
            backend=self.kind.value,
            finish_reason=turn.finish_reason,
            function_calls=len(turn.function_calls),
        )
        return turn

    async def _generate_with_retry(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        """Generate with automatic retry on transient errors."""

        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception_type(self.RETRYABLE_ERRORS),
            reraise=True,
        )
        async def _attempt() -> ModelTurn:
            return await self._generate(conversation, config, system_instruction)

        return await _attempt()

    @abstractmethod
    async def _generate(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        """One provider round trip. Raise BackendError subclasses on failure."""

    async def stream(
        self,
        conversation: Sequence[Content],
        *,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        system_instruction: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream one model turn as events.

        Ends with exactly one TurnComplete or TurnError. Backends without
        native streaming emit the whole turn at once.
        """
        try:
            turn = await self.call_api(
                conversation,
                model=model,
                temperature=temperature,
                top_p=top_p,
                top_k=top_k,
                system_instruction=system_instruction,
            )
        except BackendError as e:
            logger.warning("backend_stream_failed", backend=self.kind.value, error=str(e))
            yield TurnError.from_exception(e)
            return

        if is_cancelled(cancel):
            yield TurnError(message="Cancelled", provider=self.provider)
            return
        if turn.text:
            yield TextDelta(text=turn.text)
        for call in turn.function_calls:
            yield FunctionCallEvent(call=call)
        yield TurnComplete(turn=turn)

    async def aclose(self) -> None:
        """Release network resources. Safe to call more than once."""
        return None
