"""
Unit Tests for the Error Classifier

Tests failure keyword detection, category precedence and recovery hints.
"""

import pytest

from shellmate_core.diagnostics.classifier import (
    RECOVERY_HINTS,
    classify_error_type,
    detect_failure_keywords,
    recovery_hint,
)
from shellmate_core.schema import ErrorType


class TestDetectFailureKeywords:
    """Tests for detect_failure_keywords."""

    def test_empty_output_is_not_a_failure(self):
        """Test empty input returns False immediately."""
        assert detect_failure_keywords("") is False

    @pytest.mark.parametrize(
        "output",
        ["permission denied", "PERMISSION DENIED", "cp: x: Permission Denied (os error 13)"],
    )
    def test_permission_denied_any_case(self, output):
        """Test matching is case-insensitive."""
        assert detect_failure_keywords(output) is True

    @pytest.mark.parametrize(
        "output",
        [
            "ENOENT: no such file or directory",
            "Traceback (most recent call last):",
            "npm ERR! code E404",
            "zsh: cargo: command not found",
            "AssertionError: assert 1 == 2",
        ],
    )
    def test_known_indicators(self, output):
        """Test OS codes, runtime exceptions and toolchain messages are detected."""
        assert detect_failure_keywords(output) is True

    def test_clean_output(self):
        """Test ordinary output is not flagged."""
        assert detect_failure_keywords("3 passed in 0.12s") is False


class TestClassifyErrorType:
    """Tests for classify_error_type and its precedence order."""

    def test_command_not_found(self):
        """Test a shell 'command not found' message."""
        result = classify_error_type("bash: foo: command not found", "", "foo")

        assert result == ErrorType.COMMAND_NOT_FOUND

    def test_command_not_found_beats_code_error(self):
        """Test COMMAND_NOT_FOUND takes precedence over CODE_ERROR."""
        result = classify_error_type("syntax error near token; sh: x: command not found")

        assert result == ErrorType.COMMAND_NOT_FOUND

    def test_missing_python_module_is_dependency(self):
        """Test a missing module is a dependency problem, not a code error."""
        result = classify_error_type(
            "ModuleNotFoundError: No module named 'requests'", "", "python app.py"
        )

        assert result == ErrorType.DEPENDENCY_MISSING

    def test_missing_module_inside_traceback(self):
        """Test a traceback wrapping a missing module is still DEPENDENCY_MISSING."""
        output = (
            "Traceback (most recent call last):\n"
            '  File "app.py", line 1, in <module>\n'
            "ModuleNotFoundError: No module named 'flask'"
        )

        assert classify_error_type(output) == ErrorType.DEPENDENCY_MISSING

    def test_not_found_with_runner_token_is_command_not_found(self):
        """Test 'not found' plus a command runner token resolves to COMMAND_NOT_FOUND."""
        assert classify_error_type("npm: not found") == ErrorType.COMMAND_NOT_FOUND

    def test_code_error(self):
        """Test syntax and runtime errors."""
        assert classify_error_type("SyntaxError: invalid syntax") == ErrorType.CODE_ERROR
        assert classify_error_type("ReferenceError: x is not defined") == ErrorType.CODE_ERROR

    def test_permission_error(self):
        """Test access problems."""
        assert classify_error_type("open: Permission denied") == ErrorType.PERMISSION_ERROR

    def test_network_error(self):
        """Test connection problems."""
        assert classify_error_type("curl: (7) Connection refused") == ErrorType.NETWORK_ERROR

    def test_configuration_error(self):
        """Test bad options and settings."""
        assert classify_error_type("error: invalid option -- z") == ErrorType.CONFIGURATION_ERROR

    def test_unknown(self):
        """Test unclassifiable output falls back to UNKNOWN."""
        assert classify_error_type("something odd happened") == ErrorType.UNKNOWN

    def test_error_message_and_command_are_considered(self):
        """Test all three inputs are combined before matching."""
        result = classify_error_type("", "Permission denied", "")

        assert result == ErrorType.PERMISSION_ERROR


class TestRecoveryHints:
    """Tests for recovery_hint."""

    def test_every_type_has_a_hint(self):
        """Test the hint table covers the whole taxonomy."""
        assert set(RECOVERY_HINTS) == set(ErrorType)

    def test_hint_lookup(self):
        """Test hints are non-empty strings."""
        assert "install" in recovery_hint(ErrorType.DEPENDENCY_MISSING).lower()
