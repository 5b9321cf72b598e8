"""
Workspace Policy - Path sandboxing for filesystem-touching tools.

Every path a tool receives from the model is resolved against the bound
workspace root and must stay inside it. This is a trust boundary enforced
at parameter validation time, not a kernel-level sandbox.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

logger = structlog.get_logger()


class PathOutsideWorkspaceError(ValueError):
    """Raised when a path resolves outside the workspace root."""

    def __init__(self, path: str, root: Path):
        super().__init__(f"Path '{path}' is outside the workspace root {root}")
        self.path = path
        self.root = root


@dataclass
class WorkspacePolicy:
    """
    Resolves model-supplied paths against a fixed workspace root.

    Design Notes:
    - Relative paths are taken relative to the root
    - Absolute paths are accepted only when they already live under the root
    - Symlinks are resolved before the containment check, so a link pointing
      out of the workspace is rejected like any other escape

    Usage:
        policy = WorkspacePolicy(Path("/data/project"))
        policy.resolve("src/app.py")      # /data/project/src/app.py
        policy.resolve("../etc/passwd")   # raises PathOutsideWorkspaceError
    """

    root: Path
    _resolved_root: Path = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self._resolved_root = self.root.expanduser().resolve()

    def resolve(self, path: str) -> Path:
        """
        Resolve a path and check it stays inside the workspace.

        Args:
            path: Relative or absolute path from tool arguments

        Returns:
            Absolute, resolved path

        Raises:
            PathOutsideWorkspaceError: If the path escapes the root
        """
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self._resolved_root / candidate
        resolved = candidate.resolve()

        if resolved != self._resolved_root and self._resolved_root not in resolved.parents:
            logger.warning("path_outside_workspace", path=path, root=str(self._resolved_root))
            raise PathOutsideWorkspaceError(path, self._resolved_root)
        return resolved

    def relative(self, path: Path) -> str:
        """Workspace-relative POSIX form of a resolved path ('.' for the root)."""
        try:
            rel = path.resolve().relative_to(self._resolved_root)
        except ValueError:
            return path.as_posix()
        return rel.as_posix() or "."

    def contains(self, path: str) -> bool:
        try:
            self.resolve(path)
        except PathOutsideWorkspaceError:
            return False
        return True

    @property
    def resolved_root(self) -> Path:
        return self._resolved_root
