"""Shared sidecar protocol types and helpers."""

from .errors import (
    WorkerError,
    WorkerErrorKind,
    bridge_error,
    classify_error_text,
    friendly_message,
    to_worker_error,
)
from .protocol import InboundMessage, LogEvent, ProgressEvent, RpcFailure, RpcRequest, RpcResult
from .serialization import decode_line, decode_message, encode_request_line, safe_dict

__all__ = [
    "InboundMessage",
    "LogEvent",
    "ProgressEvent",
    "RpcFailure",
    "RpcRequest",
    "RpcResult",
    "WorkerError",
    "WorkerErrorKind",
    "bridge_error",
    "classify_error_text",
    "decode_line",
    "decode_message",
    "encode_request_line",
    "friendly_message",
    "safe_dict",
    "to_worker_error",
]
