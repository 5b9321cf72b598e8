"""LLM package for Shellmate: backend adapters and wire translation."""

from shellmate_core.llm.base import (
    BackendAdapter,
    BackendConfigurationError,
    BackendConnectionError,
    BackendError,
    BackendKind,
    BackendRateLimitError,
    BackendResponseError,
    FunctionCallEvent,
    StreamEvent,
    TextDelta,
    TurnComplete,
    TurnError,
)
from shellmate_core.llm.cloud import CloudBackend, CloudProvider
from shellmate_core.llm.local import LocalBackend
from shellmate_core.llm.scripted import ScriptedBackend, ScriptedToolAdapter, ScriptedTurn
from shellmate_core.llm.settings import GenerationConfig, get_generation_config

__all__ = [
    "BackendAdapter",
    "BackendKind",
    "BackendError",
    "BackendConfigurationError",
    "BackendConnectionError",
    "BackendRateLimitError",
    "BackendResponseError",
    "StreamEvent",
    "TextDelta",
    "FunctionCallEvent",
    "TurnComplete",
    "TurnError",
    "CloudBackend",
    "CloudProvider",
    "LocalBackend",
    "ScriptedBackend",
    "ScriptedToolAdapter",
    "ScriptedTurn",
    "GenerationConfig",
    "get_generation_config",
]
