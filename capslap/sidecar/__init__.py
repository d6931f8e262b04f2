"""Bridge to the core worker process (transcription, muxing, caption rendering)."""

from .bridge import ProgressCallback, SidecarBridge
from .client import CoreClient, GenerateCaptionsParams
from .core import ProgressEvent, WorkerError, WorkerErrorKind
from .manager import SidecarManager
from .notices import Notice, describe_error
from .supervisor import WorkerExit, WorkerSupervisor

__all__ = [
    "CoreClient",
    "GenerateCaptionsParams",
    "Notice",
    "ProgressCallback",
    "ProgressEvent",
    "SidecarBridge",
    "SidecarManager",
    "WorkerError",
    "WorkerErrorKind",
    "WorkerExit",
    "WorkerSupervisor",
    "describe_error",
]
