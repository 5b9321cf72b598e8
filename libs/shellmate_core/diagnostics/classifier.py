"""
Error Classifier - Failure detection and triage for tool output.

Two pure, stateless operations:

- ``detect_failure_keywords`` is a cheap heuristic filter deciding whether
  some output should be treated as a failure signal at all.
- ``classify_error_type`` maps output + error message + command onto the
  closed ErrorType taxonomy. Categories are tested in a fixed order and the
  first match wins; recovery guidance is keyed off that first match.
"""

from __future__ import annotations

from collections.abc import Callable

from shellmate_core.schema import ErrorType

# =============================================================================
# Failure Keywords
# =============================================================================

FAILURE_KEYWORDS: tuple[str, ...] = (
    # General errors
    "error", "failed", "failure", "fatal", "exception", "crash", "abort",
    "cannot", "can't", "unable", "not found", "missing", "not available",
    "command not found", "permission denied", "access denied", "forbidden",
    "syntax error", "parse error", "type error", "reference error", "name error",
    "module not found", "package not found", "dependency", "import error",
    "exit code", "exit status", "non-zero", "returned 1", "returned 2",
    "failed to", "unexpected", "invalid", "bad", "wrong", "incorrect",
    "undefined", "null pointer", "null reference", "nullpointerexception",
    "timeout", "timed out", "connection refused", "connection reset",
    "eaddrinuse", "eacces", "enoent", "eexist", "eisdir", "enotdir",
    "segmentation fault", "segfault", "bus error", "stack overflow",
    "out of memory", "memory error", "allocation failed",
    "cannot read", "cannot write", "read-only", "readonly",
    "no such file", "no such directory", "file not found", "directory not found",
    "is a directory", "not a directory", "not a file",
    "already exists", "file exists", "directory exists",
    "broken pipe", "broken link", "symbolic link",
    "invalid argument", "invalid option", "invalid syntax",
    "uncaught exception", "unhandled exception", "uncaught error",
    "traceback", "stack trace", "call stack",
    "deprecated", "deprecation warning", "deprecation",
    "warning", "warn", "caution",
    # Exit codes
    "exit code 1", "exit code 2", "exit code 127", "exit code 128",
    "exit status 1", "exit status 2", "exit status 127",
    # Toolchain-specific
    "npm err", "yarn error", "pip error", "python error",
    "node: command not found", "npm: command not found",
    "python: command not found", "pip: command not found",
    "gcc: command not found", "make: command not found",
    "go: command not found", "cargo: command not found",
    "java: command not found", "javac: command not found",
    "mvn: command not found", "gradle: command not found",
    # Runtime exception names
    "syntaxerror", "indentationerror", "indentation error",
    "typeerror", "referenceerror", "nameerror", "attributeerror", "attribute error",
    "valueerror", "value error", "keyerror", "key error",
    "indexerror", "index error", "ioerror", "io error",
    "oserror", "os error", "runtimeerror", "runtime error",
    "zerodivisionerror", "zero division", "division by zero",
    "filenotfounderror", "file not found error",
    "permissionerror", "permission error",
    "importerror", "modulenotfounderror",
    "cannot import", "failed to import", "import failed",
    "undefined variable", "undefined function", "undefined method",
    "undefined is not a function", "cannot read property",
    "cannot read properties", "cannot access",
    "is not defined", "is not a function", "is not a constructor",
    "expected", "unexpected token", "unexpected end",
    "missing required", "required parameter",
    "invalid character", "invalid token",
    "unterminated", "unclosed", "missing closing",
    # Test failures
    "test failed", "tests failed", "test suite failed",
    "assertion failed", "assertionerror", "assert failed",
    "expected but got", "expected true but got false",
    "test error", "test exception", "test timeout",
)


def detect_failure_keywords(output: str) -> bool:
    """Return True when ``output`` contains any known failure indicator."""
    if not output:
        return False
    lowered = output.lower()
    return any(keyword in lowered for keyword in FAILURE_KEYWORDS)


# =============================================================================
# Category Predicates
# =============================================================================

COMMAND_RUNNER_TOKENS = (
    "node", "npm", "python", "pip", "go", "cargo", "java", "mvn", "gradle", "gcc", "make",
)

MISSING_MODULE_MARKERS = (
    "no module named", "modulenotfound", "module not found", "cannot find module",
)

CODE_ERROR_MARKERS = (
    "syntax error", "syntaxerror", "parse error", "parseerror",
    "type error", "typeerror", "reference error", "referenceerror",
    "name error", "nameerror", "attribute error", "attributeerror",
    "import error", "importerror", "cannot import", "failed to import",
    "undefined", "is not defined", "traceback", "stack trace",
    "uncaught exception", "unhandled exception", "runtime error", "runtimeerror",
    "null pointer", "nullpointer", "cannot read property", "cannot access",
)

DEPENDENCY_MARKERS = (
    "module not found", "modulenotfound", "package not found", "dependency",
    "missing dependency", "cannot find module", "cannot resolve",
    "npm err", "yarn error", "pip error", "no module named",
)

PERMISSION_MARKERS = (
    "permission denied", "permissionerror", "access denied", "forbidden",
    "eacces", "read-only", "cannot write", "cannot read",
)

NETWORK_MARKERS = (
    "connection refused", "connection reset", "timeout", "timed out",
    "network error", "dns", "econnrefused", "econnreset",
)

CONFIGURATION_MARKERS = (
    "invalid", "wrong", "incorrect", "bad", "configuration", "config error",
    "ejsonparse", "json parse",
)


def _has_any(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def _is_command_not_found(text: str) -> bool:
    if "command not found" in text:
        return True
    return "not found" in text and _has_any(text, COMMAND_RUNNER_TOKENS)


def _is_code_error(text: str) -> bool:
    # A missing module is a dependency problem even when it arrives wrapped
    # in a traceback.
    if _has_any(text, MISSING_MODULE_MARKERS):
        return False
    return _has_any(text, CODE_ERROR_MARKERS)


def _is_dependency_missing(text: str) -> bool:
    if _has_any(text, DEPENDENCY_MARKERS):
        return True
    return "package.json" in text and "not found" in text


def _is_permission_error(text: str) -> bool:
    return _has_any(text, PERMISSION_MARKERS)


def _is_network_error(text: str) -> bool:
    return _has_any(text, NETWORK_MARKERS)


def _is_configuration_error(text: str) -> bool:
    if _has_any(text, CONFIGURATION_MARKERS):
        return True
    if "npm" in text and "error" in text and "code" in text:
        return True
    return "package.json" in text and _has_any(text, ("parse", "json", "syntax"))


# Order is the tie-break: first match wins.
CATEGORY_PREDICATES: tuple[tuple[ErrorType, Callable[[str], bool]], ...] = (
    (ErrorType.COMMAND_NOT_FOUND, _is_command_not_found),
    (ErrorType.CODE_ERROR, _is_code_error),
    (ErrorType.DEPENDENCY_MISSING, _is_dependency_missing),
    (ErrorType.PERMISSION_ERROR, _is_permission_error),
    (ErrorType.NETWORK_ERROR, _is_network_error),
    (ErrorType.CONFIGURATION_ERROR, _is_configuration_error),
)


def classify_error_type(output: str, error_message: str = "", command: str = "") -> ErrorType:
    """
    Classify a failure into the ErrorType taxonomy.

    Args:
        output: Raw command/tool output
        error_message: Error message reported alongside the output
        command: The command that produced the output

    Returns:
        The first matching ErrorType, or ErrorType.UNKNOWN
    """
    combined = f"{output.lower()} {error_message.lower()} {command.lower()}"
    for error_type, predicate in CATEGORY_PREDICATES:
        if predicate(combined):
            return error_type
    return ErrorType.UNKNOWN


# =============================================================================
# Recovery Guidance
# =============================================================================

RECOVERY_HINTS: dict[ErrorType, str] = {
    ErrorType.COMMAND_NOT_FOUND: (
        "The command or runtime is not installed. Check it with `which <cmd>` and "
        "install it with the system package manager before retrying."
    ),
    ErrorType.CODE_ERROR: (
        "The code itself failed. Read the reported file and line, fix the syntax or "
        "runtime error, then run the command again."
    ),
    ErrorType.DEPENDENCY_MISSING: (
        "A dependency is missing. Install it with the project's package manager "
        "(pip install, npm install, ...) and retry."
    ),
    ErrorType.PERMISSION_ERROR: (
        "Access was denied. Check file permissions and ownership, and stay inside "
        "the workspace."
    ),
    ErrorType.NETWORK_ERROR: (
        "A network operation failed. Check connectivity, host and port, then retry "
        "or use an offline alternative."
    ),
    ErrorType.CONFIGURATION_ERROR: (
        "The configuration or arguments look wrong. Re-check option names, config "
        "files and tool parameters."
    ),
    ErrorType.UNKNOWN: (
        "The failure could not be classified. Inspect the full output before "
        "deciding on the next step."
    ),
}


def recovery_hint(error_type: ErrorType) -> str:
    return RECOVERY_HINTS[error_type]
