"""
LLM Settings - Per-Backend Generation Configuration

Centralized generation defaults for each backend kind: model names,
temperature and sampling parameters. Per-call overrides (model,
temperature, top_p, top_k) are applied on top of these presets.

Usage:
    from shellmate_core.llm.settings import get_generation_config

    config = get_generation_config(BackendKind.LOCAL)
    config = config.with_overrides(temperature=0.1)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shellmate_core.llm.base import BackendKind


@dataclass(frozen=True)
class GenerationConfig:
    """
    Generation parameters sent with every model request.

    Frozen for immutability - presets are constants once loaded.

    Attributes:
        model_name: Model id understood by the backend
        temperature: Sampling temperature. Lower = more deterministic.
        top_p: Nucleus sampling parameter (None = provider default)
        top_k: Top-k sampling parameter (None = provider default)
        max_output_tokens: Response length cap (None = provider default)
    """

    model_name: str
    temperature: float = 0.25
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None

    def with_overrides(
        self,
        model: str | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
    ) -> GenerationConfig:
        """Copy with any non-None override applied."""
        changes: dict = {}
        if model:
            changes["model_name"] = model
        if temperature is not None:
            changes["temperature"] = temperature
        if top_p is not None:
            changes["top_p"] = top_p
        if top_k is not None:
            changes["top_k"] = top_k
        return replace(self, **changes) if changes else self


# =============================================================================
# Presets
# =============================================================================

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"
DEFAULT_LOCAL_MODEL = "llama3.2"
SCRIPTED_MODEL = "scripted"

# Temperature presets by category
TEMPERATURE_DETERMINISTIC = 0.25  # Tool use and code edits
TEMPERATURE_BALANCED = 0.35  # Local models


def _build_presets() -> dict:
    """Lazy import to avoid a circular dependency with llm.base."""
    from shellmate_core.llm.base import BackendKind

    return {
        BackendKind.CLOUD: GenerationConfig(
            model_name=DEFAULT_GEMINI_MODEL,
            temperature=TEMPERATURE_DETERMINISTIC,
        ),
        BackendKind.LOCAL: GenerationConfig(
            model_name=DEFAULT_LOCAL_MODEL,
            temperature=TEMPERATURE_BALANCED,
        ),
        BackendKind.SCRIPTED: GenerationConfig(
            model_name=SCRIPTED_MODEL,
            temperature=0.0,
        ),
    }


_PRESETS: dict | None = None


def get_generation_config(kind: BackendKind, model: str | None = None) -> GenerationConfig:
    """
    Get the generation preset for a backend kind.

    Args:
        kind: Backend kind
        model: Optional model name replacing the preset's default

    Example:
        config = get_generation_config(BackendKind.CLOUD, "gpt-4o")
        # config.temperature == 0.25
    """
    global _PRESETS
    if _PRESETS is None:
        _PRESETS = _build_presets()
    return _PRESETS[kind].with_overrides(model=model)
