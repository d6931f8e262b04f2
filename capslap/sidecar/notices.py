"""User-facing notices for classified worker errors."""

from __future__ import annotations

from dataclasses import dataclass

from capslap.sidecar.core.errors import WorkerError, WorkerErrorKind


@dataclass(slots=True, frozen=True)
class Notice:
    level: str  # "error" | "warning"
    title: str
    description: str


_NOTICES: dict[WorkerErrorKind, Notice] = {
    WorkerErrorKind.CREDENTIALS_MISSING: Notice(
        "error", "API Key Not Configured", "Add OpenAI API key in settings for better transcription quality."
    ),
    WorkerErrorKind.CREDENTIALS_INVALID: Notice(
        "error", "Invalid API Key", "Please check your OpenAI API key in settings."
    ),
    WorkerErrorKind.LOCAL_RESOURCE_MISSING: Notice(
        "warning", "Using Online Transcription", "Local models not found. Transcription performed via OpenAI API."
    ),
    WorkerErrorKind.DEPENDENCY_MISSING: Notice(
        "error", "System Error", "Application components not found. Try reinstalling CapSlap."
    ),
    WorkerErrorKind.NATIVE_DEPENDENCY_MISSING: Notice(
        "error",
        "Missing System Libraries",
        "Media tools require static ffmpeg/ffprobe builds. Please reinstall or contact support.",
    ),
    WorkerErrorKind.NETWORK_FAILURE: Notice(
        "error", "Internet Connection Problem", "Check your network connection and try again."
    ),
    WorkerErrorKind.RATE_LIMITED: Notice(
        "error", "Rate Limit Exceeded", "Too many requests to OpenAI API. Try again later."
    ),
    WorkerErrorKind.QUOTA_EXHAUSTED: Notice(
        "error", "API Quota Exhausted", "Top up your OpenAI balance or use local models."
    ),
    WorkerErrorKind.INPUT_NOT_FOUND: Notice(
        "error", "File Not Found", "Make sure the video file exists and is accessible."
    ),
    WorkerErrorKind.WORKER_TERMINATED: Notice(
        "error", "Processing Engine Stopped", "The processing engine stopped unexpectedly. Restart CapSlap."
    ),
    WorkerErrorKind.WORKER_UNAVAILABLE: Notice(
        "error", "Processing Engine Unavailable", "The processing engine is not running. Restart CapSlap."
    ),
    WorkerErrorKind.TIMED_OUT: Notice(
        "error", "Request Timed Out", "The processing engine did not respond in time. Try again."
    ),
}


def describe_error(error: BaseException, count: int = 1) -> Notice:
    """Pick the notice to show for a failed call affecting ``count`` videos."""
    if isinstance(error, WorkerError):
        notice = _NOTICES.get(error.kind)
        if notice is not None:
            return notice
        message = error.message
    else:
        message = str(error)
    suffix = f" ({count} videos)" if count > 1 else ""
    return Notice("error", f"Error{suffix}", message or "An unexpected error occurred. Please try again.")
