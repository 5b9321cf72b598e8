"""
Unit Tests for Project Structure Extraction

Tests the workspace tree, per-language outlines, cancellation and
code-section excerpts.
"""

from pathlib import Path

from shellmate_core.cancellation import CancellationToken
from shellmate_core.context.project_structure import (
    build_project_tree,
    extract_classes,
    extract_code_sections,
    extract_functions,
    extract_imports,
    extract_project_structure,
    find_source_files,
)


def link_outside(workspace: Path, tmp_path: Path) -> None:
    """Symlink a file and a directory that live outside the workspace into it."""
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "leak.py").write_text("import secrets\n\nclass Leaked:\n    pass\n")
    (workspace / "src" / "leak.py").symlink_to(outside / "leak.py")
    (workspace / "vendor").symlink_to(outside, target_is_directory=True)


class TestProjectTree:
    """Tests for build_project_tree."""

    def test_tree_layout(self, workspace):
        """Test directories come first and dot entries are hidden."""
        tree = build_project_tree(workspace)

        assert tree == (
            "├── node_modules\n"
            "│   └── dep.js\n"
            "├── src\n"
            "│   ├── app.py\n"
            "│   └── util.js\n"
            "└── README.md\n"
        )

    def test_tree_is_idempotent(self, workspace):
        """Test building the tree twice gives the same output."""
        assert build_project_tree(workspace) == build_project_tree(workspace)

    def test_depth_bound(self, workspace):
        """Test max_depth limits recursion."""
        tree = build_project_tree(workspace, max_depth=1)

        assert "app.py" not in tree
        assert "├── src\n" in tree

    def test_symlinks_out_of_workspace_hidden(self, workspace, tmp_path):
        """Test links resolving outside the root are not listed or followed."""
        link_outside(workspace, tmp_path)

        tree = build_project_tree(workspace)

        assert "leak.py" not in tree
        assert "vendor" not in tree


class TestSourceFiles:
    """Tests for find_source_files."""

    def test_skips_dependency_and_vcs_dirs(self, workspace):
        """Test node_modules and .git are not collected."""
        files = [p.relative_to(workspace).as_posix() for p in find_source_files(workspace)]

        assert files == ["src/app.py", "src/util.js", "README.md"]

    def test_cancelled_before_start(self, workspace):
        """Test a tripped token stops enumeration."""
        assert find_source_files(workspace, CancellationToken.cancelled()) == []

    def test_symlinks_out_of_workspace_skipped(self, workspace, tmp_path):
        """Test files reached through links outside the root are not collected."""
        link_outside(workspace, tmp_path)

        files = [p.relative_to(workspace).as_posix() for p in find_source_files(workspace)]

        assert files == ["src/app.py", "src/util.js", "README.md"]


class TestLanguageExtraction:
    """Tests for the per-family regex extractors."""

    def test_python(self):
        """Test Python imports, classes and functions."""
        content = "import json\nfrom pathlib import Path\n\nclass Repo:\n    def load(self):\n        pass\n"

        assert extract_imports(content, ".py") == ["json", "pathlib"]
        assert extract_classes(content, ".py") == [("Repo", 4)]
        assert extract_functions(content, ".py") == [("load", 5)]

    def test_javascript(self):
        """Test JS/TS imports, declarations and functions."""
        content = "import React from 'react'\nfunction render(props) {}\nclass Widget {}\n"

        assert extract_imports(content, "tsx") == ["react"]
        assert ("Widget", 3) in extract_classes(content, "ts")
        assert extract_functions(content, "js") == [("render", 2)]

    def test_jvm(self):
        """Test Kotlin/Java imports and classes."""
        content = "import java.util.List;\n\npublic class Service {\n}\n"

        assert extract_imports(content, "java") == ["java.util.List"]
        assert extract_classes(content, "java") == [("Service", 3)]

    def test_unknown_extension(self):
        """Test unknown extensions yield nothing."""
        assert extract_imports("import x", "rb") == []
        assert extract_classes("class X", "rb") == []
        assert extract_functions("def x(): pass", "rb") == []


class TestExtractProjectStructure:
    """Tests for extract_project_structure."""

    def test_full_summary(self, workspace):
        """Test tree plus outlines in file order."""
        summary = extract_project_structure(workspace)

        assert summary.startswith("**Project Tree:**\n├── node_modules")
        assert "**Files with Code Structure:**" in summary
        assert "=== src/app.py ===\nImports: os, typing\nClass: App (line 5)" in summary
        assert "=== src/util.js ===\nImports: fs\nFunction: readConfig (line 3)" in summary
        assert summary.index("src/app.py ===") < summary.index("src/util.js ===")

    def test_max_files(self, workspace):
        """Test only the first max_files files are outlined."""
        summary = extract_project_structure(workspace, max_files=1)

        assert "=== src/app.py ===" in summary
        assert "=== src/util.js ===" not in summary

    def test_cancelled_returns_partial(self, workspace):
        """Test a tripped token still returns at least the tree."""
        summary = extract_project_structure(workspace, CancellationToken.cancelled())

        assert summary.startswith("**Project Tree:**")
        assert "└── README.md" in summary
        assert "===" not in summary

    def test_unreadable_file_is_skipped(self, workspace):
        """Test a file that cannot be decoded does not abort extraction."""
        (workspace / "src" / "blob.py").write_bytes(b"\xff\xfe\x00binary")

        summary = extract_project_structure(workspace)

        assert "=== src/blob.py ===" not in summary
        assert "=== src/util.js ===" in summary

    def test_symlinks_out_of_workspace_not_read(self, workspace, tmp_path):
        """Test outside files are never outlined in the summary."""
        link_outside(workspace, tmp_path)

        summary = extract_project_structure(workspace)

        assert "Leaked" not in summary
        assert "leak.py" not in summary

    def test_missing_root(self, tmp_path: Path):
        """Test a missing root yields an empty summary."""
        assert extract_project_structure(tmp_path / "missing") == ""


class TestExtractCodeSections:
    """Tests for extract_code_sections."""

    def test_function_and_range(self):
        """Test sections are joined with a separator."""
        content = "\n".join(["def first():", "    return 1", "", "def second():", "    return 2"])

        sections = extract_code_sections(content, "mod.py", ["second"], [(1, 2)])

        assert sections == (
            "// Function: second (line 4)\ndef second():\n    return 2"
            "\n\n---\n\n"
            "// Lines 1-2\ndef first():\n    return 1"
        )

    def test_no_matches(self):
        """Test nothing matching gives an empty string."""
        assert extract_code_sections("x = 1", "mod.py", ["missing"], []) == ""
