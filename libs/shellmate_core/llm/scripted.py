"""
Scripted Backend - Offline playback of predetermined model turns.

Used for demos, tests and reproducing a session without a model. A script is
a list of turns, each with optional text and function calls:

    {
      "turns": [
        {"function_calls": [{"name": "list_directory", "args": {"path": "."}}]},
        {"text": "The workspace contains two files."}
      ]
    }

ScriptedToolAdapter drives the same ToolRegistry contract from an external
function-call description, without any backend at all.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from shellmate_core.cancellation import CancellationToken
from shellmate_core.llm.base import (
    BackendAdapter,
    BackendConfigurationError,
    BackendKind,
    BackendResponseError,
)
from shellmate_core.llm.settings import GenerationConfig
from shellmate_core.schema import (
    Content,
    ErrorType,
    FunctionCall,
    FunctionCallPart,
    ModelTurn,
    TextPart,
    ToolErrorKind,
    ToolResult,
)
from shellmate_core.tools.registry import ToolRegistry

logger = structlog.get_logger()


class ScriptedCall(BaseModel):
    name: str = Field(min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)


class ScriptedTurn(BaseModel):
    """One model turn as written in a script file."""

    text: str | None = None
    function_calls: list[ScriptedCall] = Field(default_factory=list)

    def to_model_turn(self) -> ModelTurn:
        parts: list[TextPart | FunctionCallPart] = []
        if self.text:
            parts.append(TextPart(text=self.text))
        parts.extend(FunctionCallPart(name=c.name, args=dict(c.args)) for c in self.function_calls)
        return ModelTurn(
            parts=parts,
            finish_reason="TOOL_CALLS" if self.function_calls else "STOP",
        )


class Script(BaseModel):
    turns: list[ScriptedTurn] = Field(default_factory=list)


class ScriptedBackend(BackendAdapter):
    """
    Plays back a fixed sequence of model turns, one per request.

    Every request's conversation is recorded in ``requests`` so tests can
    assert on what the loop sent. Once the script is exhausted the backend
    either repeats its last turn (``repeat_last``) or fails with a
    BackendResponseError.
    """

    kind = BackendKind.SCRIPTED
    provider = "scripted"

    def __init__(
        self,
        tool_registry: ToolRegistry,
        workspace_root: str | Path,
        turns: Sequence[ModelTurn | ScriptedTurn] = (),
        repeat_last: bool = False,
    ):
        super().__init__(tool_registry, workspace_root, max_retries=1)
        self.turns: list[ModelTurn] = [
            t.to_model_turn() if isinstance(t, ScriptedTurn) else t for t in turns
        ]
        self.repeat_last = repeat_last
        self.requests: list[list[Content]] = []
        self.system_instructions: list[str | None] = []
        self._position = 0

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        tool_registry: ToolRegistry,
        workspace_root: str | Path,
        repeat_last: bool = False,
    ) -> ScriptedBackend:
        """
        Load a JSON script file.

        Raises:
            BackendConfigurationError: If the file is missing or malformed
        """
        script_path = Path(path)
        try:
            script = Script.model_validate_json(script_path.read_text(encoding="utf-8"))
        except OSError as e:
            raise BackendConfigurationError(
                f"Cannot read script file {script_path}: {e}", provider=cls.provider
            ) from e
        except ValidationError as e:
            raise BackendConfigurationError(
                f"Invalid script file {script_path}: {e.error_count()} error(s)",
                provider=cls.provider,
            ) from e

        logger.info("script_loaded", path=str(script_path), turns=len(script.turns))
        return cls(tool_registry, workspace_root, turns=script.turns, repeat_last=repeat_last)

    @property
    def remaining(self) -> int:
        return max(len(self.turns) - self._position, 0)

    async def _generate(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        self.requests.append(list(conversation))
        self.system_instructions.append(system_instruction)

        if self._position < len(self.turns):
            turn = self.turns[self._position]
            self._position += 1
            return turn
        if self.repeat_last and self.turns:
            return self.turns[-1]
        raise BackendResponseError(
            f"Script exhausted after {len(self.turns)} turn(s)", provider=self.provider
        )


# =============================================================================
# Tool Adapter
# =============================================================================


class ScriptedToolAdapter:
    """
    Executes externally described function calls against a ToolRegistry.

    Accepts a FunctionCall or a mapping using any of the common spellings:
    ``name``/``tool`` for the tool and ``args``/``arguments``/``parameters``
    for its arguments.
    """

    NAME_KEYS = ("name", "tool")
    ARG_KEYS = ("args", "arguments", "parameters")

    @classmethod
    def normalize(cls, call: FunctionCall | Mapping[str, Any]) -> FunctionCall | None:
        if isinstance(call, FunctionCall):
            return call

        name = next((call[k] for k in cls.NAME_KEYS if call.get(k)), None)
        if not isinstance(name, str):
            return None
        args = next((call[k] for k in cls.ARG_KEYS if call.get(k) is not None), {})
        if not isinstance(args, Mapping):
            args = {}
        return FunctionCall(name=name, args=dict(args), id=call.get("id"))

    @classmethod
    async def execute_tool(
        cls,
        call: FunctionCall | Mapping[str, Any],
        registry: ToolRegistry,
        cancel: CancellationToken | None = None,
    ) -> ToolResult:
        """Lookup, validate, invoke and execute one call; never raises."""
        function_call = cls.normalize(call)
        if function_call is None:
            return ToolResult.failure(
                "Function call is missing a tool name",
                kind=ToolErrorKind.INVALID_PARAMETERS,
                error_type=ErrorType.CONFIGURATION_ERROR,
            )
        logger.info("scripted_tool_call", tool=function_call.name)
        return await registry.execute(function_call, cancel)
