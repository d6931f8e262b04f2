"""Pytest hooks and fixtures."""

import sys
from pathlib import Path

import pytest

from capslap.config.schema import SidecarConfig
from capslap.sidecar.bridge import SidecarBridge
from capslap.sidecar.supervisor import WorkerSupervisor

FAKE_WORKER = Path(__file__).with_name("fake_worker.py")


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "spawns_worker: starts the fake worker executable (POSIX only)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests that exec a shebang script on platforms without shebang support."""
    if sys.platform != "win32":
        return
    skip = pytest.mark.skip(reason="Fake worker relies on a shebang executable")
    for item in items:
        if "spawns_worker" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def worker_binary(tmp_path: Path) -> Path:
    """Executable fake worker named ``core`` next to an empty ``bin/`` tool dir."""
    app_dir = tmp_path / "app"
    (app_dir / "bin").mkdir(parents=True)
    binary = app_dir / "core"
    binary.write_text(f"#!{sys.executable}\n" + FAKE_WORKER.read_text(encoding="utf-8"), encoding="utf-8")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def sidecar_config(worker_binary: Path, tmp_path: Path) -> SidecarConfig:
    return SidecarConfig(
        binary_path=str(worker_binary),
        app_root=str(tmp_path / "checkout"),
        write_delay_ms=0,
        stop_timeout_s=2.0,
        env={"CAPSLAP_TEST_EXTRA": "from-config"},
    )


@pytest.fixture
def started_bridge(sidecar_config: SidecarConfig):
    supervisor = WorkerSupervisor(sidecar_config)
    bridge = SidecarBridge(supervisor)
    bridge.start()
    yield bridge
    bridge.close()
    supervisor.stop()
