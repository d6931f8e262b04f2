"""
Exception hierarchy and error handling utilities for capslap.

Provides:
- Base exception class with error codes and categories
- Safe error message formatting (no API key leak into logs)
- Classification of spawn and pipe failures into stable codes
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


class CapslapError(Exception):
    """Base exception for all capslap errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.category in (ErrorCategory.RETRYABLE, ErrorCategory.RATE_LIMIT, ErrorCategory.TIMEOUT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigError(CapslapError):
    """Configuration file could not be loaded."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="CONFIG_ERROR", category=ErrorCategory.VALIDATION, details=details)


class WorkerStartError(CapslapError):
    """The worker executable could not be spawned."""

    def __init__(
        self,
        binary: str,
        reason: str,
        candidates: list[str] | None = None,
        cause: str | None = None,
    ):
        details: dict[str, Any] = {"binary": binary, "reason": reason, "candidates": list(candidates or [])}
        if cause:
            details["cause"] = cause
        super().__init__(
            f"Failed to start worker {binary}: {reason}",
            code="WORKER_START_FAILED",
            category=ErrorCategory.FATAL,
            details=details,
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)(\"?\s*[=:]\s*)['\"]?([^\s'\",}]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9_\-]{20,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information (API keys, bearer tokens) from a message."""
    sanitized = _SENSITIVE_PATTERNS[0].sub(lambda m: f"{m.group(1)}{m.group(2)}{replacement}", message)
    for pattern in _SENSITIVE_PATTERNS[1:]:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    if isinstance(exc, CapslapError):
        return exc.code, exc.category, exc.retryable

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, PermissionError):
        return "PERMISSION_DENIED", ErrorCategory.PERMISSION, False

    if isinstance(exc, BrokenPipeError):
        return "BROKEN_PIPE", ErrorCategory.FATAL, False

    if isinstance(exc, OSError):
        return "OS_ERROR", ErrorCategory.FATAL, False

    if isinstance(exc, (ValueError, TypeError)):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False
