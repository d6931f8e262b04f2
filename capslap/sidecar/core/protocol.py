"""Wire protocol models for the worker's line-delimited JSON stream."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(slots=True)
class RpcRequest:
    """Outbound request frame."""

    id: str
    method: str
    params: Any = None


@dataclass(slots=True)
class ProgressEvent:
    """Intermediate progress notification for one request."""

    id: str
    progress: float
    status: str = ""


@dataclass(slots=True)
class LogEvent:
    """Diagnostic log line the worker attaches to a request."""

    id: str
    message: str


@dataclass(slots=True)
class RpcResult:
    """Successful terminal response."""

    id: str
    result: Any = None


@dataclass(slots=True)
class RpcFailure:
    """Failed terminal response carrying the worker's free-form error text."""

    id: str
    error: str


InboundMessage = Union[ProgressEvent, LogEvent, RpcResult, RpcFailure]
