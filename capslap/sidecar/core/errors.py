"""Classification of worker error strings into a stable error taxonomy."""

from __future__ import annotations

from enum import Enum
from typing import Any

from capslap.utils.exceptions import CapslapError, ErrorCategory


class WorkerErrorKind(str, Enum):
    """Stable error kinds callers branch on. Values are wire-stable codes."""

    CREDENTIALS_MISSING = "API_KEY_MISSING"
    CREDENTIALS_INVALID = "API_KEY_INVALID"
    LOCAL_RESOURCE_MISSING = "NO_LOCAL_MODELS"
    DEPENDENCY_MISSING = "BINARY_NOT_FOUND"
    NETWORK_FAILURE = "NETWORK_ERROR"
    RATE_LIMITED = "RATE_LIMIT"
    QUOTA_EXHAUSTED = "QUOTA_EXCEEDED"
    INPUT_NOT_FOUND = "FILE_NOT_FOUND"
    NATIVE_DEPENDENCY_MISSING = "BINARY_DEP_MISSING"
    WORKER_TERMINATED = "WORKER_TERMINATED"
    WORKER_UNAVAILABLE = "WORKER_UNAVAILABLE"
    TIMED_OUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN_ERROR"


# Order matters: the first rule with any matching substring wins.
ERROR_RULES: tuple[tuple[WorkerErrorKind, tuple[str, ...]], ...] = (
    (WorkerErrorKind.CREDENTIALS_MISSING, ("API key not provided", "didn't provide an API key")),
    (WorkerErrorKind.CREDENTIALS_INVALID, ("401 Unauthorized", "Unauthorized")),
    (WorkerErrorKind.LOCAL_RESOURCE_MISSING, ("No whisper models found", "No local whisper models available")),
    (WorkerErrorKind.DEPENDENCY_MISSING, ("whisper.cpp binary not found", "FFmpeg not found")),
    (WorkerErrorKind.NETWORK_FAILURE, ("Network", "fetch", "ENOTFOUND")),
    (WorkerErrorKind.RATE_LIMITED, ("rate limit", "Too Many Requests")),
    (WorkerErrorKind.QUOTA_EXHAUSTED, ("insufficient_quota", "quota")),
    (WorkerErrorKind.INPUT_NOT_FOUND, ("file not found", "No such file")),
    (WorkerErrorKind.NATIVE_DEPENDENCY_MISSING, ("Library not loaded", "image not found")),
)

FRIENDLY_MESSAGES: dict[WorkerErrorKind, str] = {
    WorkerErrorKind.CREDENTIALS_MISSING: "OpenAI API key is not configured. Add it in settings for better transcription quality.",
    WorkerErrorKind.CREDENTIALS_INVALID: "Invalid OpenAI API key. Please check the key in settings.",
    WorkerErrorKind.LOCAL_RESOURCE_MISSING: "Local models not found. Using online transcription via OpenAI API.",
    WorkerErrorKind.DEPENDENCY_MISSING: "System components not found. Try reinstalling the application.",
    WorkerErrorKind.NETWORK_FAILURE: "Internet connection problem. Check your connection and try again.",
    WorkerErrorKind.RATE_LIMITED: "OpenAI API rate limit exceeded. Try later or check your plan.",
    WorkerErrorKind.QUOTA_EXHAUSTED: "OpenAI API quota exhausted. Top up your account or use local models.",
    WorkerErrorKind.INPUT_NOT_FOUND: "File not found. Make sure the video file exists and is accessible.",
    WorkerErrorKind.NATIVE_DEPENDENCY_MISSING: (
        "Media tools are missing system libraries. Use static ffmpeg/ffprobe builds or reinstall."
    ),
    WorkerErrorKind.WORKER_TERMINATED: "The processing engine stopped unexpectedly. Restart the application and try again.",
    WorkerErrorKind.WORKER_UNAVAILABLE: "The processing engine is not running. Restart the application and try again.",
    WorkerErrorKind.TIMED_OUT: "The processing engine did not respond in time. Try again.",
}

_CATEGORIES: dict[WorkerErrorKind, ErrorCategory] = {
    WorkerErrorKind.CREDENTIALS_MISSING: ErrorCategory.PERMISSION,
    WorkerErrorKind.CREDENTIALS_INVALID: ErrorCategory.PERMISSION,
    WorkerErrorKind.LOCAL_RESOURCE_MISSING: ErrorCategory.NOT_FOUND,
    WorkerErrorKind.DEPENDENCY_MISSING: ErrorCategory.FATAL,
    WorkerErrorKind.NETWORK_FAILURE: ErrorCategory.RETRYABLE,
    WorkerErrorKind.RATE_LIMITED: ErrorCategory.RATE_LIMIT,
    WorkerErrorKind.QUOTA_EXHAUSTED: ErrorCategory.FATAL,
    WorkerErrorKind.INPUT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    WorkerErrorKind.NATIVE_DEPENDENCY_MISSING: ErrorCategory.FATAL,
    WorkerErrorKind.WORKER_TERMINATED: ErrorCategory.FATAL,
    WorkerErrorKind.WORKER_UNAVAILABLE: ErrorCategory.FATAL,
    WorkerErrorKind.TIMED_OUT: ErrorCategory.TIMEOUT,
    WorkerErrorKind.UNKNOWN: ErrorCategory.FATAL,
}


class WorkerError(CapslapError):
    """Raised (or set on a call's future) when a worker request fails."""

    def __init__(
        self,
        kind: WorkerErrorKind,
        message: str,
        *,
        raw: str = "",
        method: str | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"raw": raw, "method": method, "request_id": request_id}
        merged.update(details or {})
        super().__init__(message, code=kind.value, category=_CATEGORIES[kind], details=merged)
        self.kind = kind
        self.raw = raw
        self.method = method
        self.request_id = request_id


def classify_error_text(text: str) -> WorkerErrorKind:
    """Return the first matching kind for a raw worker error string."""
    for kind, needles in ERROR_RULES:
        if any(needle in text for needle in needles):
            return kind
    return WorkerErrorKind.UNKNOWN


def friendly_message(kind: WorkerErrorKind, raw: str = "") -> str:
    if kind is WorkerErrorKind.UNKNOWN:
        return f"An error occurred: {raw}"
    return FRIENDLY_MESSAGES[kind]


def to_worker_error(raw: str, *, method: str | None = None, request_id: str | None = None) -> WorkerError:
    """Classify a worker error string into a WorkerError."""
    kind = classify_error_text(raw)
    return WorkerError(kind, friendly_message(kind, raw), raw=raw, method=method, request_id=request_id)


def bridge_error(
    kind: WorkerErrorKind,
    reason: str,
    *,
    method: str | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> WorkerError:
    """Build an error that originates in the bridge rather than the worker."""
    return WorkerError(
        kind,
        friendly_message(kind, reason),
        raw=reason,
        method=method,
        request_id=request_id,
        details=details,
    )
