import os
import sys
import threading
from pathlib import Path

import pytest

from capslap.config.schema import SidecarConfig
from capslap.sidecar.bridge import SidecarBridge
from capslap.sidecar.supervisor import WorkerExit, WorkerSupervisor
from capslap.utils.exceptions import WorkerStartError

EXE = "core.exe" if sys.platform == "win32" else "core"


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")
    return path


def test_candidate_order_prefers_explicit_then_packaged_then_dev(tmp_path: Path):
    cfg = SidecarConfig(
        binary_path=str(tmp_path / "custom" / EXE),
        resources_path=str(tmp_path / "Resources"),
        app_root=str(tmp_path / "repo"),
    )
    candidates = WorkerSupervisor(cfg).candidate_paths()

    assert candidates[0] == (tmp_path / "custom" / EXE).resolve()
    assert candidates[1] == (tmp_path / "Resources" / EXE).resolve()
    assert candidates[2] == (tmp_path / "Resources" / "app.asar.unpacked" / "resources" / EXE).resolve()
    assert (tmp_path / "repo" / "rust" / "target" / "debug" / EXE).resolve() in candidates
    assert candidates.index((tmp_path / "repo" / "rust" / "target" / "release" / EXE).resolve()) < candidates.index(
        (tmp_path / "repo" / "rust" / "target" / "debug" / EXE).resolve()
    )


def test_locate_returns_first_existing_candidate(tmp_path: Path):
    dev = _touch(tmp_path / "repo" / "rust" / "target" / "debug" / EXE)
    cfg = SidecarConfig(resources_path=str(tmp_path / "Resources"), app_root=str(tmp_path / "repo"))

    assert WorkerSupervisor(cfg).locate() == dev.resolve()


def test_locate_falls_back_to_first_candidate(tmp_path: Path):
    cfg = SidecarConfig(resources_path=str(tmp_path / "Resources"), app_root=str(tmp_path / "repo"))
    supervisor = WorkerSupervisor(cfg)

    assert supervisor.locate() == supervisor.candidate_paths()[0]


def test_build_env_prepends_tool_dir_and_sets_ffmpeg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PATH", "/usr/bin")
    monkeypatch.setenv("ALREADY_SET", "keep")
    cfg = SidecarConfig(env={"ALREADY_SET": "override", "NEW_VAR": "1"})
    binary = tmp_path / "app" / EXE

    env = WorkerSupervisor(cfg).build_env(binary)

    tool_dir = tmp_path / "app" / "bin"
    assert env["PATH"] == f"{tool_dir}{os.pathsep}/usr/bin"
    assert env["FFMPEG_PATH"] == str(tool_dir / ("ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"))
    assert env["ALREADY_SET"] == "keep"
    assert env["NEW_VAR"] == "1"


def test_start_failure_is_raised_with_candidates(tmp_path: Path):
    cfg = SidecarConfig(binary_path=str(tmp_path / "missing" / EXE), app_root=str(tmp_path / "repo"))

    with pytest.raises(WorkerStartError) as info:
        WorkerSupervisor(cfg).start()

    assert info.value.code == "WORKER_START_FAILED"
    assert info.value.details["cause"] == "FILE_NOT_FOUND"
    assert str((tmp_path / "missing" / EXE).resolve()) in info.value.details["candidates"]


def test_requirements_report(sidecar_config: SidecarConfig, worker_binary: Path):
    report = WorkerSupervisor(sidecar_config).requirements_report()

    assert report["binary"] == str(worker_binary.resolve())
    assert report["checks"]["binaryExists"] is True
    assert report["checks"]["toolDirExists"] is True
    assert report["checks"]["ffmpegExists"] is False
    assert any("ffmpeg" in s for s in report["suggestions"])


def test_requirements_report_when_nothing_found(tmp_path: Path):
    cfg = SidecarConfig(app_root=str(tmp_path / "repo"))
    report = WorkerSupervisor(cfg).requirements_report()

    assert report["checks"]["binaryExists"] is False
    assert all(not row["exists"] for row in report["candidates"])
    assert any("binaryPath" in s for s in report["suggestions"])


@pytest.mark.spawns_worker
def test_worker_runs_in_binary_dir_with_bundled_env(sidecar_config: SidecarConfig, worker_binary: Path):
    supervisor = WorkerSupervisor(sidecar_config)
    bridge = SidecarBridge(supervisor)
    bridge.start()
    try:
        env = bridge.request("env", timeout=5)
    finally:
        bridge.close()
        supervisor.stop()

    tool_dir = worker_binary.resolve().parent / "bin"
    assert Path(env["cwd"]).resolve() == worker_binary.resolve().parent
    assert env["path"].split(os.pathsep)[0] == str(tool_dir)
    assert env["ffmpeg"] == str(tool_dir / "ffmpeg")
    assert env["extra"] == "from-config"


@pytest.mark.spawns_worker
def test_exit_listener_receives_status(sidecar_config: SidecarConfig):
    supervisor = WorkerSupervisor(sidecar_config)
    exited: list[WorkerExit] = []
    done = threading.Event()

    def _on_exit(status: WorkerExit) -> None:
        exited.append(status)
        done.set()

    supervisor.add_exit_listener(_on_exit)
    proc = supervisor.start()
    assert supervisor.start() is proc
    assert supervisor.is_running()

    supervisor.stop()

    assert done.wait(timeout=5)
    assert exited[0].pid == proc.pid
    assert exited[0].returncode is not None
    assert not supervisor.is_running()
