"""Locates, launches and watches the worker (core) executable."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable

from loguru import logger

from capslap.config.schema import SidecarConfig
from capslap.utils.exceptions import WorkerStartError, classify_exception


@dataclass(slots=True)
class WorkerExit:
    """How the worker process ended."""

    pid: int
    returncode: int | None
    signal_name: str | None = None

    def describe(self) -> str:
        if self.signal_name:
            return f"signal {self.signal_name}"
        return f"exit code {self.returncode}"

    @classmethod
    def from_returncode(cls, pid: int, returncode: int | None) -> "WorkerExit":
        return cls(pid=pid, returncode=returncode, signal_name=_signal_name(returncode))


ExitListener = Callable[[WorkerExit], None]


def _exe(name: str) -> str:
    return f"{name}.exe" if sys.platform == "win32" else name


def _signal_name(returncode: int | None) -> str | None:
    if returncode is None or returncode >= 0 or sys.platform == "win32":
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class WorkerSupervisor:
    """Owns the single long-lived worker process."""

    def __init__(self, config: SidecarConfig | None = None):
        self.config = config or SidecarConfig()
        self._proc: subprocess.Popen[str] | None = None
        self._binary: Path | None = None
        self._exit: WorkerExit | None = None
        self._listeners: list[ExitListener] = []
        self._lock = threading.RLock()

    # -- discovery -----------------------------------------------------------

    def _resources_path(self) -> Path | None:
        if self.config.resources_path:
            return Path(self.config.resources_path).expanduser()
        bundle = getattr(sys, "_MEIPASS", None)
        if getattr(sys, "frozen", False) and bundle:
            return Path(bundle)
        return None

    def _app_root(self) -> Path:
        if self.config.app_root:
            return Path(self.config.app_root).expanduser()
        return Path(__file__).resolve().parents[2]

    def candidate_paths(self) -> list[Path]:
        """Ordered worker locations: explicit override, packaged layouts, then dev builds."""
        name = _exe(self.config.binary_name)
        candidates: list[Path] = []
        if self.config.binary_path:
            candidates.append(Path(self.config.binary_path).expanduser())
        resources = self._resources_path()
        if resources is not None:
            candidates.append(resources / name)
            candidates.append(resources / "app.asar.unpacked" / "resources" / name)
        root = self._app_root()
        candidates.extend(
            [
                root / "resources" / name,
                root / "rust" / "target" / "release" / name,
                root / "rust" / "target" / "debug" / name,
                root / name,
            ]
        )
        return [path.resolve() for path in candidates]

    def locate(self) -> Path:
        """Return the first existing candidate, else the first candidate so spawn fails loudly."""
        candidates = self.candidate_paths()
        for path in candidates:
            if path.is_file():
                return path
        logger.warning("Worker binary not found in any candidate path: {}", [str(p) for p in candidates])
        return candidates[0]

    def tool_dir(self, binary: Path) -> Path:
        return binary.parent / self.config.tool_dir_name

    def ffmpeg_path(self, binary: Path) -> Path:
        return self.tool_dir(binary) / _exe("ffmpeg")

    def build_env(self, binary: Path) -> dict[str, str]:
        """Worker environment: bundled tool dir first on PATH, plus the direct ffmpeg path."""
        env = os.environ.copy()
        tool_dir = self.tool_dir(binary)
        current = env.get("PATH", "")
        env["PATH"] = f"{tool_dir}{os.pathsep}{current}" if current else str(tool_dir)
        env[self.config.ffmpeg_env_var] = str(self.ffmpeg_path(binary))
        for key, value in self.config.env.items():
            env.setdefault(key, value)
        return env

    def requirements_report(self) -> dict[str, Any]:
        """Collect worker discovery results and readiness checks."""
        candidates = self.candidate_paths()
        binary = self.locate()
        ffmpeg = self.ffmpeg_path(binary)
        checks = {
            "binaryExists": binary.is_file(),
            "binaryExecutable": binary.is_file() and os.access(binary, os.X_OK),
            "toolDirExists": self.tool_dir(binary).is_dir(),
            "ffmpegExists": ffmpeg.is_file(),
        }
        suggestions: list[str] = []
        if not checks["binaryExists"]:
            suggestions.append(
                "Build the worker (cd rust && cargo build) or set sidecar.binaryPath in ~/.capslap/config.json."
            )
        elif not checks["binaryExecutable"]:
            suggestions.append(f"Make the worker executable: chmod +x {binary}")
        if not checks["ffmpegExists"]:
            suggestions.append(f"Bundled ffmpeg missing at {ffmpeg}; the worker will fall back to PATH.")
        return {
            "binary": str(binary),
            "candidates": [{"path": str(p), "exists": p.is_file()} for p in candidates],
            "toolDir": str(self.tool_dir(binary)),
            "ffmpeg": str(ffmpeg),
            "checks": checks,
            "suggestions": suggestions,
        }

    # -- lifecycle -----------------------------------------------------------

    @property
    def binary(self) -> Path | None:
        return self._binary

    @property
    def process(self) -> subprocess.Popen[str] | None:
        return self._proc

    @property
    def stdin(self) -> IO[str] | None:
        return self._proc.stdin if self._proc else None

    @property
    def stdout(self) -> IO[str] | None:
        return self._proc.stdout if self._proc else None

    @property
    def exit_status(self) -> WorkerExit | None:
        return self._exit

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def add_exit_listener(self, listener: ExitListener) -> Callable[[], None]:
        """Register a callback for worker exit; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def start(self) -> subprocess.Popen[str]:
        """Spawn the worker (no-op while it is alive)."""
        with self._lock:
            if self.is_running():
                assert self._proc is not None
                return self._proc
            binary = self.locate()
            candidates = [str(p) for p in self.candidate_paths()]
            logger.info("Starting worker binary: {}", binary)
            try:
                proc = subprocess.Popen(
                    [str(binary)],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE if self.config.capture_stderr else None,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    cwd=str(binary.parent),
                    env=self.build_env(binary),
                    bufsize=1,
                )
            except OSError as exc:
                logger.error("Failed to spawn worker: {}", exc)
                logger.error("Binary path was: {}", binary)
                logger.error("Candidate paths tried: {}", candidates)
                raise WorkerStartError(str(binary), str(exc), candidates, cause=classify_exception(exc)[0]) from exc
            if not proc.stdout or not proc.stdin:
                proc.kill()
                raise WorkerStartError(str(binary), "worker stdio is unavailable", candidates)
            self._proc = proc
            self._binary = binary
            self._exit = None
            threading.Thread(target=self._watch, args=(proc,), name="capslap-worker-watch", daemon=True).start()
            if proc.stderr is not None:
                threading.Thread(
                    target=self._stderr_loop, args=(proc,), name="capslap-worker-stderr", daemon=True
                ).start()
            logger.info("Worker started (pid {})", proc.pid)
            return proc

    def _stderr_loop(self, proc: subprocess.Popen[str]) -> None:
        assert proc.stderr is not None
        for line in proc.stderr:
            text = line.rstrip()
            if text:
                logger.debug("[core] {}", text)

    def _watch(self, proc: subprocess.Popen[str]) -> None:
        returncode = proc.wait()
        status = WorkerExit.from_returncode(proc.pid, returncode)
        with self._lock:
            if proc is self._proc:
                self._exit = status
            listeners = list(self._listeners)
        if returncode == 0:
            logger.info("Worker exited ({})", status.describe())
        else:
            logger.warning("Worker exited ({})", status.describe())
        for listener in listeners:
            try:
                listener(status)
            except Exception:
                logger.exception("Worker exit listener failed")

    def stop(self, timeout: float | None = None) -> None:
        """Terminate the worker, killing it if it does not exit in time."""
        with self._lock:
            proc = self._proc
        if proc is None:
            return
        wait_for = self.config.stop_timeout_s if timeout is None else timeout
        try:
            if proc.poll() is None:
                if proc.stdin:
                    try:
                        proc.stdin.close()
                    except OSError:
                        pass
                proc.terminate()
                proc.wait(timeout=wait_for)
        except subprocess.TimeoutExpired:
            logger.warning("Worker did not stop within {}s; killing", wait_for)
            proc.kill()
            proc.wait()
