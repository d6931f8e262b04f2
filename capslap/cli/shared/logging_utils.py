"""Loguru helpers for consistent console and file logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from capslap.utils.helpers import ensure_dir, get_data_path

_SINK_IDS: dict[str, int] = {}


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_dir = get_data_path() / "logs"
    log_path = log_dir / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    ensure_dir(log_dir)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path


def _stderr_sink(message: str) -> None:
    # Resolve sys.stderr per message; it may be swapped after configuration.
    sys.stderr.write(message)


def configure_console_logging(level: str = "INFO") -> None:
    """Replace loguru's default stderr sink with one at the requested level."""
    logger.remove()
    _SINK_IDS.clear()
    logger.add(
        _stderr_sink,
        level=level.upper(),
        colorize=sys.stderr.isatty(),
        format="<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>",
    )
