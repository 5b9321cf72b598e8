"""
Local Backend - Ollama-compatible model server over HTTP.

Requests go to ``POST {base_url}/api/chat`` with the conversation, sampling
options and the registry's tools in OpenAI function format. ``call_api`` is
non-streaming; ``stream`` consumes the NDJSON stream line by line.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any

import httpx
import structlog
from tenacity.wait import wait_base

from shellmate_core.cancellation import CancellationToken, is_cancelled
from shellmate_core.llm import wire
from shellmate_core.llm.base import (
    BackendAdapter,
    BackendConfigurationError,
    BackendConnectionError,
    BackendKind,
    BackendRateLimitError,
    BackendResponseError,
    FunctionCallEvent,
    StreamEvent,
    TextDelta,
    TurnComplete,
    TurnError,
)
from shellmate_core.llm.settings import DEFAULT_LOCAL_MODEL, GenerationConfig, get_generation_config
from shellmate_core.schema import Content, FunctionCallPart, ModelTurn, TextPart
from shellmate_core.tools.registry import ToolRegistry

logger = structlog.get_logger()

CHAT_PATH = "/api/chat"


class LocalBackend(BackendAdapter):
    """Adapter for a local Ollama-compatible runtime."""

    kind = BackendKind.LOCAL
    provider = "ollama"

    def __init__(
        self,
        tool_registry: ToolRegistry,
        workspace_root: str | Path,
        base_url: str = "http://localhost:11434",
        model: str = DEFAULT_LOCAL_MODEL,
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url:
            raise BackendConfigurationError("Local model URL is not configured", provider=self.provider)

        super().__init__(
            tool_registry,
            workspace_root,
            generation=get_generation_config(BackendKind.LOCAL, model),
            max_retries=max_retries,
            retry_wait=retry_wait,
        )
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )
        logger.info("local_backend_initialized", url=self.base_url, model=self.generation.model_name)

    def _payload(
        self,
        conversation: Sequence[Content],
        config: GenerationConfig,
        system_instruction: str | None,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": config.model_name,
            "messages": wire.to_ollama_messages(conversation, system_instruction),
            "stream": stream,
            "options": wire.to_ollama_options(config.temperature, config.top_p, config.top_k),
        }
        tools = self.tool_registry.list_for_openai()
        if tools:
            payload["tools"] = tools
        return payload

    def _status_error(self, status_code: int, body: str) -> BackendResponseError | BackendRateLimitError:
        message = f"Local model server returned HTTP {status_code}: {body[:500]}"
        if status_code == 429:
            return BackendRateLimitError(message, provider=self.provider)
        return BackendResponseError(
            message,
            provider=self.provider,
            status_code=status_code,
            retryable=status_code >= 500,
        )

    async def _generate(
        self,
        conversation: list[Content],
        config: GenerationConfig,
        system_instruction: str | None,
    ) -> ModelTurn:
        payload = self._payload(conversation, config, system_instruction, stream=False)
        try:
            response = await self._client.post(CHAT_PATH, json=payload)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise BackendConnectionError(
                f"Cannot reach local model server at {self.base_url}: {str(e) or type(e).__name__}",
                provider=self.provider,
            ) from e
        except httpx.HTTPError as e:
            raise BackendResponseError(str(e), provider=self.provider) from e

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.text)

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise BackendResponseError(
                f"Failed to parse Ollama response: {e}", provider=self.provider
            ) from e
        if not isinstance(body, dict):
            raise BackendResponseError("Failed to parse Ollama response: not an object", provider=self.provider)
        if body.get("error"):
            raise BackendResponseError(str(body["error"]), provider=self.provider)

        try:
            return wire.parse_ollama_response(body)
        except ValueError as e:
            raise BackendResponseError(
                f"Failed to parse Ollama response: {e}", provider=self.provider
            ) from e

    # =========================================================================
    # Streaming
    # =========================================================================

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
        """Stream one turn from the NDJSON /api/chat endpoint."""
        config = self.generation.with_overrides(model, temperature, top_p, top_k)
        payload = self._payload(conversation, config, system_instruction, stream=True)
        logger.info("backend_stream_started", backend=self.kind.value, model=config.model_name)

        text_chunks: list[str] = []
        calls: list[FunctionCallPart] = []
        try:
            async with self._client.stream("POST", CHAT_PATH, json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    yield TurnError.from_exception(self._status_error(response.status_code, body))
                    return

                async for line in response.aiter_lines():
                    if is_cancelled(cancel):
                        yield TurnError(message="Cancelled", provider=self.provider)
                        return
                    if not line.strip():
                        continue

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        logger.warning("backend_stream_unparseable", line=line[:200])
                        yield TurnError(
                            message=f"Failed to parse Ollama response: {e}",
                            provider=self.provider,
                        )
                        return
                    if not isinstance(chunk, dict):
                        yield TurnError(
                            message="Failed to parse Ollama response: chunk is not an object",
                            provider=self.provider,
                        )
                        return
                    if chunk.get("error"):
                        yield TurnError(message=str(chunk["error"]), provider=self.provider)
                        return

                    try:
                        message = wire.ollama_message(chunk)
                        chunk_calls = wire.parse_ollama_tool_calls(message)
                    except ValueError as e:
                        yield TurnError(
                            message=f"Failed to parse Ollama response: {e}",
                            provider=self.provider,
                        )
                        return
                    content = message.get("content")
                    if content:
                        text_chunks.append(str(content))
                        yield TextDelta(text=str(content))
                    for part in chunk_calls:
                        calls.append(part)
                        yield FunctionCallEvent(call=part.function_call)

                    if chunk.get("done"):
                        yield TurnComplete(turn=self._assemble(text_chunks, calls, chunk))
                        return
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            yield TurnError(
                message=f"Cannot reach local model server at {self.base_url}: {str(e) or type(e).__name__}",
                provider=self.provider,
                retryable=True,
            )
            return
        except httpx.HTTPError as e:
            yield TurnError(message=str(e) or type(e).__name__, provider=self.provider)
            return

        # Stream closed without a done marker
        yield TurnError(message="Stream ended before the turn completed", provider=self.provider)

    @staticmethod
    def _assemble(
        text_chunks: list[str],
        calls: list[FunctionCallPart],
        final_chunk: dict[str, Any],
    ) -> ModelTurn:
        parts: list[TextPart | FunctionCallPart] = []
        text = "".join(text_chunks)
        if text:
            parts.append(TextPart(text=text))
        parts.extend(calls)
        finish = final_chunk.get("done_reason") or "stop"
        if finish == "stop" and calls:
            finish = "tool_calls"
        return ModelTurn(parts=parts, finish_reason=wire.normalize_finish_reason(finish))

    async def aclose(self) -> None:
        await self._client.aclose()
