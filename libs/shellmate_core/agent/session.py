"""
Agent Session - The caller-owned facade over one loop and one backend.

AgentSessionFactory hands out the session for a (workspace root, backend
kind) pair. Asking for a different pair closes the cached session and
builds a fresh backend with a fresh ToolRegistry bound to the new root;
an adapter is never reused across a workspace change.

Usage:
    factory = AgentSessionFactory(get_settings())
    session = await factory.get_session("/path/to/project")
    outcome = await session.send("List the files in the project")
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from pathlib import Path
from typing import Any

import httpx
import structlog

from shellmate_core.agent.events import AgentEvent, TurnOutcome
from shellmate_core.agent.loop import AgentLoop, LoopState
from shellmate_core.cancellation import CancellationToken
from shellmate_core.config import Settings, get_settings
from shellmate_core.diagnostics.logs import LogBuffer
from shellmate_core.llm.base import BackendAdapter, BackendConfigurationError, BackendKind
from shellmate_core.llm.cloud import CloudBackend, CloudProvider
from shellmate_core.llm.local import LocalBackend
from shellmate_core.llm.scripted import ScriptedBackend
from shellmate_core.schema import Content
from shellmate_core.tools.defaults import build_default_registry
from shellmate_core.tools.registry import ToolRegistry

logger = structlog.get_logger()

BackendBuilder = Callable[[Settings, ToolRegistry, Path], BackendAdapter]


class AgentSession:
    """One conversation against one workspace-bound backend."""

    def __init__(
        self,
        backend: BackendAdapter,
        max_iterations: int = 25,
        include_project_context: bool = True,
        tree_depth: int = 3,
        max_files: int = 50,
    ):
        self.backend = backend
        self.loop = AgentLoop(
            backend,
            max_iterations=max_iterations,
            include_project_context=include_project_context,
            tree_depth=tree_depth,
            max_files=max_files,
        )

    @property
    def workspace_root(self) -> Path:
        return self.backend.workspace_root

    @property
    def backend_kind(self) -> BackendKind:
        return self.backend.kind

    @property
    def conversation(self) -> list[Content]:
        return self.loop.conversation

    @property
    def state(self) -> LoopState:
        return self.loop.state

    async def send(
        self,
        message: str,
        cancel: CancellationToken | None = None,
        **overrides: Any,
    ) -> TurnOutcome:
        return await self.loop.run_turn(message, cancel, **overrides)

    def stream(
        self,
        message: str,
        cancel: CancellationToken | None = None,
        **overrides: Any,
    ) -> AsyncIterator[AgentEvent]:
        return self.loop.stream_turn(message, cancel, **overrides)

    async def retry(self, cancel: CancellationToken | None = None, **overrides: Any) -> TurnOutcome:
        return await self.loop.retry(cancel, **overrides)

    def reset(self) -> None:
        self.loop.reset()

    async def aclose(self) -> None:
        await self.backend.aclose()


# =============================================================================
# Backend Builders
# =============================================================================


def build_cloud_backend(settings: Settings, registry: ToolRegistry, root: Path) -> BackendAdapter:
    provider = CloudProvider(settings.cloud_provider)
    api_key = (
        settings.openai_api_key if provider == CloudProvider.OPENAI else settings.google_api_key
    )
    return CloudBackend(
        registry,
        root,
        provider=provider,
        api_key=api_key,
        model=settings.cloud_model,
        base_url=settings.cloud_base_url,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def build_local_backend(settings: Settings, registry: ToolRegistry, root: Path) -> BackendAdapter:
    return LocalBackend(
        registry,
        root,
        base_url=settings.local_url,
        model=settings.local_model,
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
    )


def build_scripted_backend(settings: Settings, registry: ToolRegistry, root: Path) -> BackendAdapter:
    if not settings.script_path:
        raise BackendConfigurationError(
            "No script configured for the scripted backend (set SCRIPT_PATH)",
            provider="scripted",
        )
    return ScriptedBackend.from_file(settings.script_path, registry, root)


DEFAULT_BUILDERS: dict[BackendKind, BackendBuilder] = {
    BackendKind.CLOUD: build_cloud_backend,
    BackendKind.LOCAL: build_local_backend,
    BackendKind.SCRIPTED: build_scripted_backend,
}


# =============================================================================
# Factory
# =============================================================================


class AgentSessionFactory:
    """Caches one AgentSession keyed by (resolved workspace root, backend kind)."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        backend_builders: Mapping[BackendKind, BackendBuilder] | None = None,
        log_buffer: LogBuffer | None = None,
        web_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._builders: dict[BackendKind, BackendBuilder] = {
            **DEFAULT_BUILDERS,
            **(backend_builders or {}),
        }
        self.log_buffer = log_buffer
        self.web_transport = web_transport

        self._session: AgentSession | None = None
        self._key: tuple[Path, BackendKind] | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> AgentSession | None:
        return self._session

    async def get_session(
        self,
        workspace_root: str | Path,
        backend_kind: BackendKind | str | None = None,
    ) -> AgentSession:
        """
        Get the session for a workspace and backend, rebuilding on change.

        Raises:
            BackendConfigurationError: Missing workspace, credentials or script
        """
        root = Path(workspace_root).expanduser().resolve()
        if not root.is_dir():
            raise BackendConfigurationError(f"Workspace root is not a directory: {root}")
        kind = BackendKind(backend_kind or self.settings.backend)
        key = (root, kind)

        async with self._lock:
            if self._session is not None and self._key == key:
                return self._session

            if self._session is not None:
                logger.info(
                    "session_rebinding",
                    old_root=str(self._key[0]) if self._key else None,
                    new_root=str(root),
                    backend=kind.value,
                )
                await self._close_current()

            backend = self.build_backend(root, kind)
            self._session = AgentSession(
                backend,
                max_iterations=self.settings.max_iterations,
                include_project_context=self.settings.include_project_context,
                tree_depth=self.settings.tree_depth,
                max_files=self.settings.max_structure_files,
            )
            self._key = key
            logger.info("session_created", root=str(root), backend=kind.value)
            return self._session

    def build_backend(self, root: Path, kind: BackendKind) -> BackendAdapter:
        """Fresh registry, fresh tool registrations, fresh adapter."""
        registry = build_default_registry(
            root,
            shell_timeout=self.settings.shell_timeout,
            tree_depth=self.settings.tree_depth,
            max_structure_files=self.settings.max_structure_files,
            log_buffer=self.log_buffer,
            web_transport=self.web_transport,
        )
        return self._builders[kind](self.settings, registry, root)

    async def invalidate(self) -> None:
        """Drop the cached session; the next get_session rebuilds."""
        async with self._lock:
            await self._close_current()

    async def _close_current(self) -> None:
        session, self._session, self._key = self._session, None, None
        if session is not None:
            await session.aclose()
