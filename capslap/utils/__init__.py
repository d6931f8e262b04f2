"""Utility functions for capslap."""

from capslap.utils.helpers import ensure_dir, get_data_path
from capslap.utils.exceptions import (
    CapslapError,
    ConfigError,
    ErrorCategory,
    WorkerStartError,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "CapslapError",
    "ConfigError",
    "ErrorCategory",
    "WorkerStartError",
    "classify_exception",
    "sanitize_error_message",
]
