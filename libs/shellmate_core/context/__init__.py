"""Workspace context extraction."""

from shellmate_core.context.project_structure import (
    FileStructure,
    build_project_tree,
    extract_code_sections,
    extract_project_structure,
    find_source_files,
)

__all__ = [
    "FileStructure",
    "build_project_tree",
    "extract_code_sections",
    "extract_project_structure",
    "find_source_files",
]
