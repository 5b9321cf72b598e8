"""
Project Structure - Workspace summary for priming the model.

Builds a depth-bounded tree of the workspace plus, per source file, the
imports, class-like declarations and functions found by per-language regular
expressions. This is a heuristic pass, not a parser: false positives and
misses in names are expected, while the tree and the file order are stable
for a given workspace.

Output shape:

    **Project Tree:**
    ├── src
    │   └── app.py
    └── README.md

    **Files with Code Structure:**

    === src/app.py ===
    Imports: os, typing
    Class: App (line 4)
    Function: main (line 12)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from shellmate_core.cancellation import CancellationToken, is_cancelled

logger = structlog.get_logger()

DEFAULT_TREE_DEPTH = 3
DEFAULT_MAX_FILES = 50
FUNCTION_WINDOW_LINES = 50

SOURCE_EXTENSIONS = frozenset({
    "kt", "java", "js", "ts", "jsx", "tsx", "py", "go", "rs", "cpp", "c", "h",
    "html", "css", "xml", "json", "yaml", "yml", "md",
})

# Never descended into when collecting source files
SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git"})

JVM_EXTENSIONS = frozenset({"kt", "java"})
JS_EXTENSIONS = frozenset({"js", "ts", "jsx", "tsx"})
PY_EXTENSIONS = frozenset({"py"})

# =============================================================================
# Language Patterns
# =============================================================================

_JVM_IMPORT = re.compile(r"^import\s+([^;]+);", re.MULTILINE)
_JS_IMPORT = re.compile(r"^import\s+.*?from\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
_PY_IMPORT = re.compile(r"^import\s+([^\n]+)|^from\s+(\S+)\s+import", re.MULTILINE)

_JVM_CLASS = re.compile(r"(?:class|interface|enum)\s+(\w+)")
_JS_CLASS = re.compile(r"(?:class|interface|enum|type|const)\s+(\w+)")
_PY_CLASS = re.compile(r"class\s+(\w+)")

_JVM_FUNCTION = re.compile(r"(?:fun|private|public|protected)?\s*(?:fun)?\s*(\w+)\s*\(")
_JS_FUNCTION = re.compile(r"(?:function|const|let|var)\s+(\w+)\s*[=(]|(\w+)\s*:\s*function")
_PY_FUNCTION = re.compile(r"def\s+(\w+)\s*\(")


def _family(extension: str) -> str | None:
    ext = extension.lower().lstrip(".")
    if ext in JVM_EXTENSIONS:
        return "jvm"
    if ext in JS_EXTENSIONS:
        return "js"
    if ext in PY_EXTENSIONS:
        return "py"
    return None


def extract_imports(content: str, extension: str) -> list[str]:
    family = _family(extension)
    if family == "jvm":
        return [m.group(1).strip() for m in _JVM_IMPORT.finditer(content)]
    if family == "js":
        return [m.group(1).strip() for m in _JS_IMPORT.finditer(content)]
    if family == "py":
        return [(m.group(1) or m.group(2)).strip() for m in _PY_IMPORT.finditer(content)]
    return []


def _scan_lines(content: str, pattern: re.Pattern[str]) -> list[tuple[str, int]]:
    found = []
    for index, line in enumerate(content.splitlines()):
        match = pattern.search(line)
        if match is None:
            continue
        name = next((g for g in match.groups() if g), "")
        if name:
            found.append((name, index + 1))
    return found


def extract_classes(content: str, extension: str) -> list[tuple[str, int]]:
    """(name, 1-based line) for class/interface/enum/type-like declarations."""
    pattern = {"jvm": _JVM_CLASS, "js": _JS_CLASS, "py": _PY_CLASS}.get(_family(extension) or "")
    return _scan_lines(content, pattern) if pattern else []


def extract_functions(content: str, extension: str) -> list[tuple[str, int]]:
    """(name, 1-based line) for function/method declarations."""
    pattern = {"jvm": _JVM_FUNCTION, "js": _JS_FUNCTION, "py": _PY_FUNCTION}.get(
        _family(extension) or ""
    )
    return _scan_lines(content, pattern) if pattern else []


# =============================================================================
# File Structure
# =============================================================================


@dataclass
class FileStructure:
    """Extracted outline of a single file."""

    path: str
    imports: list[str] = field(default_factory=list)
    classes: list[tuple[str, int]] = field(default_factory=list)
    functions: list[tuple[str, int]] = field(default_factory=list)

    @classmethod
    def from_content(cls, path: str, content: str) -> FileStructure:
        extension = Path(path).suffix
        return cls(
            path=path,
            imports=extract_imports(content, extension),
            classes=extract_classes(content, extension),
            functions=extract_functions(content, extension),
        )

    def render(self) -> str:
        lines = [f"=== {self.path} ==="]
        if self.imports:
            lines.append(f"Imports: {', '.join(self.imports)}")
        lines.extend(f"Class: {name} (line {line})" for name, line in self.classes)
        lines.extend(f"Function: {name} (line {line})" for name, line in self.functions)
        return "\n".join(lines) + "\n\n"


# =============================================================================
# Tree & File Discovery
# =============================================================================


def _is_within(entry: Path, root: Path) -> bool:
    try:
        resolved = entry.resolve()
    except OSError:
        return False
    return resolved == root or root in resolved.parents


def _sorted_entries(directory: Path, root: Path | None = None) -> list[Path]:
    """Visible entries of ``directory``; with ``root``, only those resolving inside it."""
    try:
        entries = [p for p in directory.iterdir() if not p.name.startswith(".")]
    except OSError as e:
        logger.warning("project_tree_list_failed", path=str(directory), error=str(e))
        return []
    if root is not None:
        entries = [p for p in entries if _is_within(p, root)]
    return sorted(entries, key=lambda p: (not p.is_dir(), p.name))


def build_project_tree(
    directory: Path,
    max_depth: int = DEFAULT_TREE_DEPTH,
    prefix: str = "",
    current_depth: int = 0,
    root: Path | None = None,
) -> str:
    """Textual tree of ``directory``, directories first, dot entries hidden."""
    if current_depth >= max_depth:
        return ""
    root = root or directory.resolve()

    parts: list[str] = []
    entries = _sorted_entries(directory, root)
    for index, entry in enumerate(entries):
        is_last = index == len(entries) - 1
        parts.append(f"{prefix}{'└── ' if is_last else '├── '}{entry.name}\n")
        if entry.is_dir():
            next_prefix = prefix + ("    " if is_last else "│   ")
            parts.append(build_project_tree(entry, max_depth, next_prefix, current_depth + 1, root))
    return "".join(parts)


def find_source_files(directory: Path, cancel: CancellationToken | None = None) -> list[Path]:
    """
    Source files under ``directory`` by extension, skipping dependency/VCS dirs.

    Symlinks that resolve outside ``directory`` are not followed.
    """
    files: list[Path] = []
    root = directory.resolve()

    def _traverse(current: Path) -> None:
        for entry in _sorted_entries(current, root):
            if is_cancelled(cancel):
                return
            if entry.is_dir():
                if entry.name not in SKIPPED_DIRECTORIES:
                    _traverse(entry)
            elif entry.is_file() and entry.suffix.lower().lstrip(".") in SOURCE_EXTENSIONS:
                files.append(entry)

    if directory.is_dir():
        _traverse(directory)
    return files


# =============================================================================
# Project Structure
# =============================================================================


def extract_project_structure(
    workspace_root: str | Path,
    cancel: CancellationToken | None = None,
    max_depth: int = DEFAULT_TREE_DEPTH,
    max_files: int = DEFAULT_MAX_FILES,
) -> str:
    """
    Summarize a workspace: tree, then per-file imports/classes/functions.

    Args:
        workspace_root: Directory to summarize
        cancel: Checked between files; on cancellation whatever has been
            accumulated so far (at least the tree) is returned
        max_depth: Tree depth bound
        max_files: Maximum number of files to outline

    Returns:
        The summary, or "" if the root is not a directory
    """
    root = Path(workspace_root)
    if not root.is_dir():
        return ""

    out = [f"**Project Tree:**\n{build_project_tree(root, max_depth)}\n\n"]
    out.append("**Files with Code Structure:**\n\n")

    outlined = 0
    for file_path in find_source_files(root, cancel)[:max_files]:
        if is_cancelled(cancel):
            logger.info("project_structure_cancelled", outlined=outlined)
            break
        try:
            rel_path = file_path.relative_to(root).as_posix()
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("project_structure_file_skipped", path=str(file_path), error=str(e))
            continue
        out.append(FileStructure.from_content(rel_path, content).render())
        outlined += 1

    logger.debug("project_structure_extracted", root=str(root), files=outlined)
    return "".join(out)


def _function_pattern(file_path: str, name: str) -> re.Pattern[str]:
    escaped = re.escape(name)
    family = _family(Path(file_path).suffix)
    if family == "jvm":
        return re.compile(rf"fun\s+{escaped}\s*\(")
    if family == "js":
        return re.compile(rf"(?:function|const|let|var)\s+{escaped}\s*[=(]")
    if family == "py":
        return re.compile(rf"def\s+{escaped}\s*\(")
    return re.compile(rf"{escaped}\s*\(")


def extract_code_sections(
    content: str,
    file_path: str,
    function_names: list[str] | None = None,
    line_ranges: list[tuple[int, int]] | None = None,
) -> str:
    """
    Pull targeted excerpts out of a file.

    Every line matching a named function's declaration pattern yields the
    match plus a fixed trailing window; each (start, end) range yields those
    1-based inclusive lines. Sections are joined with a '---' separator.
    """
    lines = content.splitlines()
    sections: list[str] = []

    for name in function_names or []:
        pattern = _function_pattern(file_path, name)
        for index, line in enumerate(lines):
            if pattern.search(line):
                window = lines[index:min(index + FUNCTION_WINDOW_LINES, len(lines))]
                sections.append(f"// Function: {name} (line {index + 1})\n" + "\n".join(window))

    for start, end in line_ranges or []:
        start_idx = max(start - 1, 0)
        end_idx = min(end, len(lines))
        if start_idx < end_idx:
            sections.append(f"// Lines {start}-{end}\n" + "\n".join(lines[start_idx:end_idx]))

    return "\n\n---\n\n".join(sections)
