"""
Web Tool - Fetch a URL and return readable text.

HTML is reduced to plain text (scripts, styles and tags stripped) to keep
context noise low.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

import httpx
import structlog
from pydantic import BaseModel, Field

from shellmate_core.cancellation import CancellationToken
from shellmate_core.schema import ErrorType, ToolResult
from shellmate_core.tools.base import BaseTool, ToolInvocation
from shellmate_core.tools.policies import WorkspacePolicy

logger = structlog.get_logger()

USER_AGENT = "Shellmate/0.1"

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.DOTALL | re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def html_to_text(content: str) -> str:
    content = _SCRIPT_RE.sub("", content)
    content = _STYLE_RE.sub("", content)
    content = _TAG_RE.sub(" ", content)
    return _SPACE_RE.sub(" ", content).strip()


class WebFetchParams(BaseModel):
    url: str = Field(description="http(s) URL to fetch")
    max_length: int = Field(
        default=10000, ge=100, le=100_000, description="Maximum content length in characters"
    )


class WebFetchInvocation(ToolInvocation[WebFetchParams]):
    tool: WebFetchTool

    async def run(self, cancel: CancellationToken | None) -> ToolResult:
        url = self.params.url
        logger.info("web_fetch", url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self.tool.timeout,
                transport=self.tool.transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("web_fetch_failed", url=url, status_code=e.response.status_code)
            return ToolResult.failure(
                f"HTTP {e.response.status_code} fetching {url}",
                error_type=ErrorType.NETWORK_ERROR,
            )
        except httpx.HTTPError as e:
            logger.error("web_fetch_failed", url=url, error=str(e))
            return ToolResult.failure(
                f"Network error fetching {url}: {str(e) or type(e).__name__}",
                error_type=ErrorType.NETWORK_ERROR,
            )

        content_type = response.headers.get("content-type", "")
        content = response.text
        if "html" in content_type or content.lstrip().startswith("<"):
            content = html_to_text(content)

        if len(content) > self.params.max_length:
            content = content[: self.params.max_length] + "..."

        return ToolResult(
            llm_content=f"Content of {url}:\n\n{content}" if content else f"{url} returned no content.",
            display=f"Fetched {url} ({len(content)} chars)",
        )


class WebFetchTool(BaseTool[WebFetchParams]):
    name = "web_fetch"
    description = "Fetch a web page or text resource over http(s) and return its readable text."
    params_model = WebFetchParams

    def __init__(
        self,
        policy: WorkspacePolicy,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(policy)
        self.timeout = timeout
        self.transport = transport

    def check_params(self, params: WebFetchParams) -> str | None:
        parsed = urlparse(params.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return f"URL must be an absolute http(s) URL: {params.url}"
        return None

    def create_invocation(self, params: WebFetchParams) -> WebFetchInvocation:
        return WebFetchInvocation(self, params)
