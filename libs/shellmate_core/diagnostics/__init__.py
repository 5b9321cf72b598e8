"""Shellmate Diagnostics - failure classification and recent logs."""

from shellmate_core.diagnostics.classifier import (
    classify_error_type,
    detect_failure_keywords,
    recovery_hint,
)
from shellmate_core.diagnostics.logs import LogBuffer, configure_logging, read_recent_logs

__all__ = [
    "classify_error_type",
    "detect_failure_keywords",
    "recovery_hint",
    "LogBuffer",
    "configure_logging",
    "read_recent_logs",
]
