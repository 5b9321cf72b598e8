"""
Shared Pytest Fixtures

This module contains fixtures used across the test suite:
- A small on-disk workspace
- A registry with the default toolset bound to it
- Scripted model turns
"""

from pathlib import Path

import pytest

from shellmate_core.schema import FunctionCallPart, ModelTurn, TextPart
from shellmate_core.tools.defaults import build_default_registry
from shellmate_core.tools.registry import ToolRegistry

# =============================================================================
# Workspace Fixtures
# =============================================================================


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with Python and JS sources plus directories that are skipped."""
    root = tmp_path / "project"
    root.mkdir()

    (root / "README.md").write_text("# Demo project\n")
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text(
        "import os\n"
        "from typing import Any\n"
        "\n"
        "\n"
        "class App:\n"
        "    def run(self):\n"
        "        return os.getcwd()\n"
        "\n"
        "\n"
        "def main():\n"
        "    App().run()\n"
    )
    (root / "src" / "util.js").write_text(
        "import fs from 'fs'\n"
        "\n"
        "function readConfig(path) {\n"
        "  return fs.readFileSync(path)\n"
        "}\n"
    )
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\n")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "dep.js").write_text("function hidden() {}\n")
    return root


@pytest.fixture
def registry(workspace: Path) -> ToolRegistry:
    """Default toolset bound to the workspace."""
    return build_default_registry(workspace, shell_timeout=10)


# =============================================================================
# Model Turn Helpers
# =============================================================================


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(parts=[TextPart(text=text)], finish_reason="STOP")


def call_turn(name: str, **args) -> ModelTurn:
    return ModelTurn(
        parts=[FunctionCallPart(name=name, args=args)],
        finish_reason="TOOL_CALLS",
    )
