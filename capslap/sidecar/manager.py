"""Sidecar manager for worker lifecycle and calls."""

from __future__ import annotations

from typing import Any

from loguru import logger

from capslap.config.schema import SidecarConfig
from capslap.sidecar.bridge import SidecarBridge
from capslap.sidecar.client import CoreClient
from capslap.sidecar.supervisor import WorkerSupervisor


class SidecarManager:
    """Owns one worker supervisor and the bridge attached to it."""

    def __init__(self, config: SidecarConfig | None = None):
        if config is None:
            from capslap.config.loader import get_config

            config = get_config().sidecar
        self.config = config
        self.supervisor = WorkerSupervisor(config)
        self.bridge = SidecarBridge(self.supervisor)
        self.client = CoreClient(self.bridge)

    def start(self) -> "SidecarManager":
        self.bridge.start()
        return self

    def stop(self) -> None:
        self.bridge.close()
        self.supervisor.stop()
        logger.info("Sidecar stopped")

    def restart(self) -> None:
        """Replace a dead (or live) worker with a fresh process and bridge."""
        self.stop()
        self.bridge = SidecarBridge(self.supervisor)
        self.client = CoreClient(self.bridge)
        self.start()

    def call(self, method: str, params: Any = None, on_progress=None):
        return self.bridge.call(method, params, on_progress)

    def __enter__(self) -> "SidecarManager":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
