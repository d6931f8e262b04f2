"""Serialization helpers for worker RPC frames."""

from __future__ import annotations

import json
from typing import Any

from .protocol import InboundMessage, LogEvent, ProgressEvent, RpcFailure, RpcRequest, RpcResult


def safe_dict(value: Any) -> dict[str, Any]:
    """Return the value when dict-like, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def encode_request_line(request: RpcRequest) -> str:
    """Encode a request frame into one newline-terminated line of JSON."""
    payload = {"id": request.id, "method": request.method, "params": request.params}
    # Control characters are escaped, so the frame never spans lines. NaN and
    # Infinity are not JSON and raise ValueError.
    return json.dumps(payload, ensure_ascii=False, allow_nan=False) + "\n"


def _clamp_progress(value: Any) -> float:
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return 0.0
    if progress != progress:
        return 0.0
    return min(1.0, max(0.0, progress))


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error
    row = safe_dict(error)
    if isinstance(row.get("message"), str):
        return row["message"]
    return json.dumps(error, ensure_ascii=False)


def decode_message(payload: Any) -> InboundMessage | None:
    """Map a parsed JSON payload onto an inbound message, or None if it has no known shape."""
    row = safe_dict(payload)
    msg_id = row.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        return None
    event = row.get("event")
    if isinstance(event, str):
        kind = event.lower()
        if kind == "progress":
            return ProgressEvent(
                id=msg_id,
                progress=_clamp_progress(row.get("progress")),
                status=str(row.get("status") or ""),
            )
        if kind == "log":
            return LogEvent(id=msg_id, message=str(row.get("message") or ""))
        return None
    if "result" in row:
        return RpcResult(id=msg_id, result=row["result"])
    if row.get("error"):
        return RpcFailure(id=msg_id, error=_error_text(row["error"]))
    return None


def decode_line(line: str) -> InboundMessage | None:
    """Decode one line from the worker.

    Raises json.JSONDecodeError when the line is not JSON; returns None for JSON
    that is not a recognised message.
    """
    return decode_message(json.loads(line))
