"""
Cloud Backend - Hosted LLM APIs with function calling.

Talks to OpenAI (chat completions with tools) or Google Gemini
(generate_content with function declarations). The provider is fixed at
construction; a missing API key is a configuration error raised right away
rather than on the first turn.

Usage:
    backend = CloudBackend(
        registry,
        workspace_root,
        provider=CloudProvider.GEMINI,
        api_key=settings.google_api_key,
    )
    turn = await backend.call_api(conversation)
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import google.generativeai as genai
import openai
import structlog
from google.api_core import exceptions as google_exceptions
from openai import AsyncOpenAI
from tenacity.wait import wait_base

from shellmate_core.llm import wire
from shellmate_core.llm.base import (
    BackendAdapter,
    BackendConfigurationError,
    BackendConnectionError,
    BackendKind,
    BackendRateLimitError,
    BackendResponseError,
)
from shellmate_core.llm.settings import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENAI_MODEL,
    GenerationConfig,
    get_generation_config,
)
from shellmate_core.schema import Content, ModelTurn
from shellmate_core.tools.registry import ToolRegistry

logger = structlog.get_logger()


class CloudProvider(str, Enum):
    """Supported cloud providers."""

    OPENAI = "openai"
    GEMINI = "gemini"


DEFAULT_MODELS = {
    CloudProvider.OPENAI: DEFAULT_OPENAI_MODEL,
    CloudProvider.GEMINI: DEFAULT_GEMINI_MODEL,
}


class CloudBackend(BackendAdapter):
    """
    Hosted-API adapter.

    Features:
    - OpenAI and Gemini function calling from the same conversation model
    - Automatic retries with exponential backoff for rate limits and
      connection failures
    - Provider errors mapped onto the BackendError hierarchy
    """

    kind = BackendKind.CLOUD

    def __init__(
        self,
        tool_registry: ToolRegistry,
        workspace_root: str | Path,
        provider: CloudProvider = CloudProvider.GEMINI,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
        openai_client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the cloud backend.

        Args:
            tool_registry: Tools advertised to the model
            workspace_root: Workspace the tools are bound to
            provider: OPENAI or GEMINI
            api_key: Provider API key (required unless a client is injected)
            model: Model name; defaults per provider
            base_url: OpenAI-compatible endpoint override
            timeout: Request timeout in seconds
            max_retries: Attempts for transient errors
            retry_wait: tenacity wait strategy (defaults to exponential 2-30s)
            openai_client: Pre-built AsyncOpenAI client
        """
        self.provider = CloudProvider(provider).value
        generation = get_generation_config(
            BackendKind.CLOUD, model or DEFAULT_MODELS[CloudProvider(provider)]
        )
        super().__init__(
            tool_registry,
            workspace_root,
            generation=generation,
            max_retries=max_retries,
            retry_wait=retry_wait,
        )
        self.timeout = timeout

        self._openai_client: AsyncOpenAI | None = None
        if self.provider == CloudProvider.OPENAI.value:
            if openai_client is not None:
                self._openai_client = openai_client
            elif api_key:
                self._openai_client = AsyncOpenAI(
                    api_key=api_key,
                    base_url=base_url,
                    timeout=timeout,
                    max_retries=0,
                )
            else:
                raise BackendConfigurationError(
                    "OpenAI API key is not configured (set OPENAI_API_KEY)",
                    provider=self.provider,
                )
            logger.info("openai_backend_initialized", model=self.generation.model_name)
        else:
            if not api_key:
                raise BackendConfigurationError(
                    "Gemini API key is not configured (set GOOGLE_API_KEY)",
                    provider=self.provider,
                )
            genai.configure(api_key=api_key)
            logger.info("gemini_backend_initialized", model=self.generation.model_name)

    async def _generate(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        if self.provider == CloudProvider.OPENAI.value:
            return await self._generate_openai(conversation, config, system_instruction)
        return await self._generate_gemini(conversation, config, system_instruction)

    # =========================================================================
    # OpenAI Implementation
    # =========================================================================

    async def _generate_openai(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        assert self._openai_client is not None
        request: dict[str, Any] = {
            "model": config.model_name,
            "messages": wire.to_openai_messages(conversation, system_instruction),
            "temperature": config.temperature,
        }
        if config.top_p is not None:
            request["top_p"] = config.top_p
        if config.max_output_tokens is not None:
            request["max_tokens"] = config.max_output_tokens
        tools = self.tool_registry.list_for_openai()
        if tools:
            request["tools"] = tools

        try:
            response = await self._openai_client.chat.completions.create(**request)
        except openai.RateLimitError as e:
            raise BackendRateLimitError(str(e), provider="openai") from e
        except openai.APIConnectionError as e:
            raise BackendConnectionError(str(e), provider="openai") from e
        except openai.APIStatusError as e:
            raise BackendResponseError(
                str(e),
                provider="openai",
                status_code=e.status_code,
                retryable=e.status_code >= 500,
            ) from e
        except openai.APIError as e:
            raise BackendResponseError(str(e), provider="openai") from e

        turn = wire.parse_openai_response(response)
        if turn.is_empty and turn.finish_reason is None:
            raise BackendResponseError("Empty response from OpenAI", provider="openai")
        return turn

    # =========================================================================
    # Gemini Implementation
    # =========================================================================

    async def _generate_gemini(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        model = genai.GenerativeModel(
            config.model_name,
            system_instruction=system_instruction or None,
        )
        generation_config = genai.GenerationConfig(
            temperature=config.temperature,
            top_p=config.top_p,
            top_k=config.top_k,
            max_output_tokens=config.max_output_tokens,
        )
        tools = wire.to_gemini_tools(self.function_declarations())

        try:
            response = await model.generate_content_async(
                wire.to_gemini_contents(conversation),
                generation_config=generation_config,
                tools=tools or None,
            )
        except google_exceptions.ResourceExhausted as e:
            raise BackendRateLimitError(str(e), provider="gemini") from e
        except (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded) as e:
            raise BackendConnectionError(str(e), provider="gemini") from e
        except google_exceptions.GoogleAPIError as e:
            raise BackendResponseError(
                str(e),
                provider="gemini",
                status_code=getattr(e, "code", None),
            ) from e

        turn = wire.parse_gemini_response(response)
        if turn.is_empty and turn.finish_reason is None:
            raise BackendResponseError("Empty response from Gemini", provider="gemini")
        return turn

    async def aclose(self) -> None:
        if self._openai_client is not None:
            await self._openai_client.close()
