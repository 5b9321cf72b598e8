"""
Unit Tests for the Web Fetch Tool

HTTP traffic is served by httpx.MockTransport.
"""

import httpx
import pytest

from shellmate_core.schema import ErrorType, FunctionCall, ToolErrorKind
from shellmate_core.tools.policies import WorkspacePolicy
from shellmate_core.tools.registry import ToolRegistry
from shellmate_core.tools.web import WebFetchTool, html_to_text


def make_registry(tmp_path, handler) -> ToolRegistry:
    tool = WebFetchTool(WorkspacePolicy(tmp_path), transport=httpx.MockTransport(handler))
    return ToolRegistry([tool])


class TestHtmlToText:
    """Tests for html_to_text."""

    def test_strips_tags_scripts_and_styles(self):
        """Test markup is reduced to readable text."""
        html = (
            "<html><head><style>body {color: red}</style>"
            "<script>alert('x')</script></head>"
            "<body><h1>Title</h1>\n<p>Some   text</p></body></html>"
        )

        assert html_to_text(html) == "Title Some text"


class TestWebFetch:
    """Tests for web_fetch."""

    @pytest.mark.asyncio
    async def test_fetch_html(self, tmp_path):
        """Test HTML pages are converted to text."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["User-Agent"].startswith("Shellmate")
            return httpx.Response(
                200,
                headers={"content-type": "text/html"},
                text="<p>Hello <b>world</b></p>",
            )

        registry = make_registry(tmp_path, handler)
        result = await registry.execute(
            FunctionCall(name="web_fetch", args={"url": "https://example.com"})
        )

        assert result.success
        assert result.llm_content == "Content of https://example.com:\n\nHello world"

    @pytest.mark.asyncio
    async def test_fetch_truncates(self, tmp_path):
        """Test content beyond max_length is cut."""
        registry = make_registry(
            tmp_path,
            lambda request: httpx.Response(200, headers={"content-type": "text/plain"}, text="x" * 500),
        )

        result = await registry.execute(
            FunctionCall(name="web_fetch", args={"url": "https://example.com/a.txt", "max_length": 100})
        )

        assert result.llm_content.endswith("x" * 100 + "...")

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path):
        """Test error statuses become NETWORK_ERROR results."""
        registry = make_registry(tmp_path, lambda request: httpx.Response(404, text="missing"))

        result = await registry.execute(
            FunctionCall(name="web_fetch", args={"url": "https://example.com/missing"})
        )

        assert result.error.type == ErrorType.NETWORK_ERROR
        assert result.error.message == "HTTP 404 fetching https://example.com/missing"

    @pytest.mark.asyncio
    async def test_connection_error(self, tmp_path):
        """Test transport failures become NETWORK_ERROR results."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        registry = make_registry(tmp_path, handler)
        result = await registry.execute(
            FunctionCall(name="web_fetch", args={"url": "https://example.com"})
        )

        assert result.error.type == ErrorType.NETWORK_ERROR
        assert "connection refused" in result.error.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["ftp://example.com/file", "example.com", "file:///etc/passwd"])
    async def test_rejects_non_http_urls(self, tmp_path, url):
        """Test only absolute http(s) URLs are accepted."""
        registry = make_registry(tmp_path, lambda request: httpx.Response(200))

        result = await registry.execute(FunctionCall(name="web_fetch", args={"url": url}))

        assert result.error.kind == ToolErrorKind.INVALID_PARAMETERS
