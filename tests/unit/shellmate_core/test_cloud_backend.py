"""
Unit Tests for the Cloud Backend

OpenAI is exercised through an injected client; Gemini through a patched
``genai`` module. No network access.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import wait_none

from shellmate_core.llm.base import (
    BackendConfigurationError,
    BackendConnectionError,
    BackendRateLimitError,
    BackendResponseError,
)
from shellmate_core.llm.cloud import CloudBackend, CloudProvider
from shellmate_core.schema import Content

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def openai_response(content=None, tool_calls=(), finish_reason="stop"):
    message = MagicMock()
    message.content = content
    message.tool_calls = list(tool_calls)
    choice = MagicMock()
    choice.message = message
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    return response


def openai_tool_call(call_id, name, arguments):
    tool_call = MagicMock()
    tool_call.id = call_id
    tool_call.function.name = name
    tool_call.function.arguments = arguments
    return tool_call


def openai_client(create):
    client = MagicMock()
    client.chat.completions.create = create
    client.close = AsyncMock()
    return client


def gemini_response(parts, finish="STOP"):
    candidate = MagicMock()
    candidate.finish_reason.name = finish
    candidate.content.parts = parts
    response = MagicMock()
    response.candidates = [candidate]
    return response


def gemini_text_part(text):
    part = MagicMock()
    part.function_call = None
    part.text = text
    return part


def gemini_call_part(name, args):
    part = MagicMock()
    part.function_call.name = name
    part.function_call.args = args
    return part


class TestConfiguration:
    """Tests for credential checks at construction."""

    def test_openai_requires_key(self, registry, workspace):
        """Test a missing OpenAI key fails at construction."""
        with pytest.raises(BackendConfigurationError, match="OPENAI_API_KEY"):
            CloudBackend(registry, workspace, provider=CloudProvider.OPENAI)

    def test_gemini_requires_key(self, registry, workspace):
        """Test a missing Gemini key fails at construction."""
        with pytest.raises(BackendConfigurationError, match="GOOGLE_API_KEY"):
            CloudBackend(registry, workspace, provider="gemini")

    def test_default_models(self, registry, workspace):
        """Test each provider gets its own default model."""
        backend = CloudBackend(
            registry,
            workspace,
            provider=CloudProvider.OPENAI,
            openai_client=openai_client(AsyncMock()),
        )
        assert backend.generation.model_name == "gpt-4o"
        assert backend.provider == "openai"

        with patch("shellmate_core.llm.cloud.genai") as mock_genai:
            gemini = CloudBackend(registry, workspace, provider=CloudProvider.GEMINI, api_key="k")
            mock_genai.configure.assert_called_once_with(api_key="k")
        assert gemini.generation.model_name == "gemini-1.5-pro"


class TestOpenAI:
    """Tests for the OpenAI path."""

    def make_backend(self, registry, workspace, create, **kwargs):
        return CloudBackend(
            registry,
            workspace,
            provider=CloudProvider.OPENAI,
            openai_client=openai_client(create),
            retry_wait=wait_none(),
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_request_and_tool_call_parsing(self, registry, workspace):
        """Test the request shape and tool-call parsing."""
        create = AsyncMock(return_value=openai_response(
            tool_calls=[openai_tool_call("call_1", "read_file", '{"path": "README.md"}')],
            finish_reason="tool_calls",
        ))
        backend = self.make_backend(registry, workspace, create)

        turn = await backend.call_api(
            [Content.user("read the readme")],
            system_instruction="You are helpful",
            temperature=0.1,
        )

        request = create.call_args.kwargs
        assert request["model"] == "gpt-4o"
        assert request["temperature"] == 0.1
        assert request["messages"][0] == {"role": "system", "content": "You are helpful"}
        assert request["messages"][1] == {"role": "user", "content": "read the readme"}
        assert any(t["function"]["name"] == "read_file" for t in request["tools"])

        call = turn.function_calls[0]
        assert call.name == "read_file"
        assert call.args == {"path": "README.md"}
        assert call.id == "call_1"
        assert turn.finish_reason == "TOOL_CALLS"

    @pytest.mark.asyncio
    async def test_text_response(self, registry, workspace):
        """Test a plain text answer."""
        create = AsyncMock(return_value=openai_response(content="All done."))
        backend = self.make_backend(registry, workspace, create)

        turn = await backend.call_api([Content.user("hi")])

        assert turn.text == "All done."
        assert turn.finish_reason == "STOP"

    @pytest.mark.asyncio
    async def test_bad_arguments_become_empty(self, registry, workspace):
        """Test unparseable tool arguments are replaced with {}."""
        create = AsyncMock(return_value=openai_response(
            tool_calls=[openai_tool_call("call_1", "list_directory", "{not json")],
            finish_reason="tool_calls",
        ))
        backend = self.make_backend(registry, workspace, create)

        turn = await backend.call_api([Content.user("hi")])

        assert turn.function_calls[0].args == {}

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, registry, workspace):
        """Test rate limits are retried, then surfaced."""
        error = openai.RateLimitError(
            "Rate limit exceeded",
            response=httpx.Response(429, request=OPENAI_REQUEST),
            body=None,
        )
        create = AsyncMock(side_effect=error)
        backend = self.make_backend(registry, workspace, create, max_retries=2)

        with pytest.raises(BackendRateLimitError):
            await backend.call_api([Content.user("hi")])

        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_connection_error(self, registry, workspace):
        """Test transport failures map to BackendConnectionError."""
        create = AsyncMock(side_effect=openai.APIConnectionError(request=OPENAI_REQUEST))
        backend = self.make_backend(registry, workspace, create, max_retries=1)

        with pytest.raises(BackendConnectionError):
            await backend.call_api([Content.user("hi")])

    @pytest.mark.asyncio
    async def test_empty_response(self, registry, workspace):
        """Test a response without choices is an error."""
        response = MagicMock()
        response.choices = []
        backend = self.make_backend(registry, workspace, AsyncMock(return_value=response))

        with pytest.raises(BackendResponseError, match="Empty response"):
            await backend.call_api([Content.user("hi")])

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, registry, workspace):
        """Test aclose releases the SDK client."""
        backend = self.make_backend(registry, workspace, AsyncMock())

        await backend.aclose()

        backend._openai_client.close.assert_awaited_once()


class TestGemini:
    """Tests for the Gemini path."""

    @pytest.mark.asyncio
    async def test_function_call_response(self, registry, workspace):
        """Test Gemini function calls are parsed and tools are sent."""
        with patch("shellmate_core.llm.cloud.genai") as mock_genai:
            model = MagicMock()
            model.generate_content_async = AsyncMock(return_value=gemini_response(
                [gemini_call_part("read_file", {"path": "README.md"})]
            ))
            mock_genai.GenerativeModel.return_value = model

            backend = CloudBackend(registry, workspace, provider=CloudProvider.GEMINI, api_key="k")
            turn = await backend.call_api([Content.user("read")], system_instruction="sys")

        mock_genai.GenerativeModel.assert_called_once_with("gemini-1.5-pro", system_instruction="sys")
        args, kwargs = model.generate_content_async.call_args
        assert args[0] == [{"role": "user", "parts": [{"text": "read"}]}]
        declarations = kwargs["tools"][0]["function_declarations"]
        assert declarations[0]["parameters"]["type"] == "OBJECT"

        assert turn.function_calls[0].name == "read_file"
        assert turn.function_calls[0].args == {"path": "README.md"}
        assert turn.finish_reason == "STOP"

    @pytest.mark.asyncio
    async def test_text_response(self, registry, workspace):
        """Test a Gemini text answer."""
        with patch("shellmate_core.llm.cloud.genai") as mock_genai:
            model = MagicMock()
            model.generate_content_async = AsyncMock(
                return_value=gemini_response([gemini_text_part("Hello there")])
            )
            mock_genai.GenerativeModel.return_value = model

            backend = CloudBackend(registry, workspace, provider=CloudProvider.GEMINI, api_key="k")
            turn = await backend.call_api([Content.user("hi")])

        assert turn.text == "Hello there"

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, registry, workspace):
        """Test ResourceExhausted maps to a rate limit error."""
        with patch("shellmate_core.llm.cloud.genai") as mock_genai:
            model = MagicMock()
            model.generate_content_async = AsyncMock(
                side_effect=google_exceptions.ResourceExhausted("quota exceeded")
            )
            mock_genai.GenerativeModel.return_value = model

            backend = CloudBackend(
                registry,
                workspace,
                provider=CloudProvider.GEMINI,
                api_key="k",
                max_retries=1,
                retry_wait=wait_none(),
            )
            with pytest.raises(BackendRateLimitError):
                await backend.call_api([Content.user("hi")])

    @pytest.mark.asyncio
    async def test_invalid_argument(self, registry, workspace):
        """Test other API errors map to response errors."""
        with patch("shellmate_core.llm.cloud.genai") as mock_genai:
            model = MagicMock()
            model.generate_content_async = AsyncMock(
                side_effect=google_exceptions.InvalidArgument("bad schema")
            )
            mock_genai.GenerativeModel.return_value = model

            backend = CloudBackend(registry, workspace, provider=CloudProvider.GEMINI, api_key="k")
            with pytest.raises(BackendResponseError) as exc_info:
                await backend.call_api([Content.user("hi")])

        assert exc_info.value.status_code == 400
