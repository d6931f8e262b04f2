"""Request/response correlation over the worker's line-delimited JSON stdio."""

from __future__ import annotations

import asyncio
import json
import queue
import subprocess
import threading
import time
import uuid
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import IO, Any, Callable

from loguru import logger

from capslap.sidecar.core.errors import WorkerError, WorkerErrorKind, bridge_error, to_worker_error
from capslap.sidecar.core.protocol import LogEvent, ProgressEvent, RpcFailure, RpcRequest, RpcResult
from capslap.sidecar.core.serialization import decode_line, encode_request_line
from capslap.sidecar.supervisor import WorkerExit, WorkerSupervisor
from capslap.utils.exceptions import classify_exception, sanitize_error_message

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(slots=True)
class _Pending:
    future: Future[Any]
    method: str


@dataclass(slots=True)
class _WriteJob:
    request_id: str
    method: str
    line: str


def _set_result(future: Future[Any], value: Any) -> None:
    try:
        future.set_result(value)
    except InvalidStateError:
        logger.debug("Result arrived for a cancelled call")


def _set_exception(future: Future[Any], exc: BaseException) -> None:
    try:
        future.set_exception(exc)
    except InvalidStateError:
        logger.debug("Error arrived for a cancelled call: {}", exc)


class SidecarBridge:
    """Line-delimited JSON RPC bridge to the worker process.

    One reader thread dispatches worker output sequentially; one writer thread
    drains a FIFO queue so concurrent callers never interleave frames. Both
    tables below are guarded by ``_lock``:

    - ``_pending``: request id -> future awaiting exactly one settlement
    - ``_progress``: request id -> progress callback (keys subset of ``_pending``)

    Progress callbacks run on the reader thread with the lock held, so a
    callback can never observe its request after settlement. Keep them short.
    """

    def __init__(
        self,
        supervisor: WorkerSupervisor,
        *,
        write_delay_ms: float | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.supervisor = supervisor
        delay = supervisor.config.write_delay_ms if write_delay_ms is None else write_delay_ms
        self._write_delay = max(0.0, float(delay)) / 1000.0
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._pending: dict[str, _Pending] = {}
        self._progress: dict[str, ProgressCallback] = {}
        self._listeners: list[ProgressCallback] = []
        self._lock = threading.RLock()
        self._writes: queue.Queue[_WriteJob | None] = queue.Queue()
        self._reader_thread: threading.Thread | None = None
        self._writer_thread: threading.Thread | None = None
        self._unsubscribe_exit: Callable[[], None] | None = None
        self._proc: subprocess.Popen[str] | None = None
        self._worker_exit: WorkerExit | None = None
        self._closed = False

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        """Launch the worker and the reader/writer threads.

        Raises WorkerStartError when the worker cannot be spawned.
        """
        with self._lock:
            if self._closed:
                raise bridge_error(WorkerErrorKind.WORKER_UNAVAILABLE, "bridge is closed")
            if self._proc is not None:
                return
            proc = self.supervisor.start()
            self._proc = proc
            self._unsubscribe_exit = self.supervisor.add_exit_listener(self._on_worker_exit)
            self._reader_thread = threading.Thread(
                target=self._reader_loop, args=(proc,), name="capslap-bridge-reader", daemon=True
            )
            self._writer_thread = threading.Thread(
                target=self._writer_loop, name="capslap-bridge-writer", daemon=True
            )
            self._reader_thread.start()
            self._writer_thread.start()
        logger.info("Sidecar bridge started")

    def close(self) -> None:
        """Stop the writer and fail every outstanding request. Does not stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            unsubscribe = self._unsubscribe_exit
            self._unsubscribe_exit = None
        self._writes.put(None)
        self._fail_all(WorkerErrorKind.WORKER_TERMINATED, "bridge closed")
        if unsubscribe is not None:
            unsubscribe()
        writer = self._writer_thread
        if writer is not None and writer is not threading.current_thread():
            writer.join(timeout=1.0)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _unavailable_reason(self) -> str | None:
        if self._closed:
            return "bridge is closed"
        if self._proc is None:
            return "worker is not started"
        if self._worker_exit is not None:
            return f"worker exited ({self._worker_exit.describe()})"
        return None

    # -- calls ---------------------------------------------------------------

    def call(
        self,
        method: str,
        params: Any = None,
        on_progress: ProgressCallback | None = None,
    ) -> Future[Any]:
        """Send a request; the returned future settles exactly once.

        It resolves with the worker's ``result`` or fails with a WorkerError.
        Cancelling the future abandons the request (the worker is not told).
        Params that cannot be encoded as JSON raise TypeError or ValueError
        before anything is registered.
        """
        _, future = self._submit(method, params, on_progress)
        return future

    async def acall(
        self,
        method: str,
        params: Any = None,
        on_progress: ProgressCallback | None = None,
    ) -> Any:
        """Awaitable form of call(); cancelling the task abandons the request."""
        return await asyncio.wrap_future(self.call(method, params, on_progress))

    def request(
        self,
        method: str,
        params: Any = None,
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Blocking call. Raises WorkerError (TIMED_OUT when no answer arrives in time)."""
        request_id, future = self._submit(method, params, on_progress)
        wait_for = timeout if timeout is not None else self.supervisor.config.request_timeout_s
        try:
            return future.result(timeout=wait_for)
        except FutureTimeoutError:
            if self._pop(request_id) is None:
                # Settled between the timeout and the pop.
                return future.result()
            err = bridge_error(
                WorkerErrorKind.TIMED_OUT,
                f"{method} timed out after {wait_for}s",
                method=method,
                request_id=request_id,
                details={"timeout_s": wait_for},
            )
            _set_exception(future, err)
            raise err from None

    def add_progress_listener(self, listener: ProgressCallback) -> Callable[[], None]:
        """Receive progress for every outstanding request; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def _submit(
        self,
        method: str,
        params: Any,
        on_progress: ProgressCallback | None,
    ) -> tuple[str, Future[Any]]:
        future: Future[Any] = Future()
        with self._lock:
            request_id = self._new_id()
            while request_id in self._pending:
                request_id = self._new_id()
            line = encode_request_line(RpcRequest(id=request_id, method=method, params=params))
            self._pending[request_id] = _Pending(future=future, method=method)
            if on_progress is not None:
                self._progress[request_id] = on_progress
            reason = self._unavailable_reason()
        future.add_done_callback(lambda f, rid=request_id: self._forget_cancelled(rid, f))
        if reason is not None:
            logger.error("Cannot send {} ({}): {}", method, request_id, reason)
            self._reject(request_id, bridge_error(
                WorkerErrorKind.WORKER_UNAVAILABLE, reason, method=method, request_id=request_id
            ))
            return request_id, future
        logger.debug("Sending request: {}", sanitize_error_message(line.rstrip("\n")))
        self._writes.put(_WriteJob(request_id=request_id, method=method, line=line))
        return request_id, future

    def _forget_cancelled(self, request_id: str, future: Future[Any]) -> None:
        if future.cancelled() and self._pop(request_id) is not None:
            logger.debug("Request {} cancelled by caller", request_id)

    # -- settlement ----------------------------------------------------------

    def _pop(self, request_id: str) -> _Pending | None:
        with self._lock:
            self._progress.pop(request_id, None)
            return self._pending.pop(request_id, None)

    def _resolve(self, request_id: str, result: Any) -> None:
        entry = self._pop(request_id)
        if entry is None:
            logger.debug("Dropping result for unknown request {}", request_id)
            return
        _set_result(entry.future, result)

    def _reject(self, request_id: str, error: WorkerError) -> None:
        entry = self._pop(request_id)
        if entry is None:
            logger.debug("Dropping error for unknown request {}: {}", request_id, error.raw)
            return
        _set_exception(entry.future, error)

    def _fail_all(self, kind: WorkerErrorKind, reason: str, details: dict[str, Any] | None = None) -> None:
        with self._lock:
            entries = list(self._pending.items())
            self._pending.clear()
            self._progress.clear()
        if entries:
            logger.warning("Failing {} pending request(s): {}", len(entries), reason)
        for request_id, entry in entries:
            _set_exception(
                entry.future,
                bridge_error(kind, reason, method=entry.method, request_id=request_id, details=details),
            )

    # -- inbound -------------------------------------------------------------

    def dispatch(self, line: str) -> None:
        """Handle one complete line of worker output."""
        try:
            message = decode_line(line)
        except json.JSONDecodeError:
            logger.warning("Worker sent invalid JSON: {}", line[:200])
            return
        if message is None:
            logger.debug("Ignoring unrecognised worker message: {}", line[:200])
            return
        if isinstance(message, ProgressEvent):
            self._deliver_progress(message)
        elif isinstance(message, LogEvent):
            logger.debug("[core {}] {}", message.id, message.message)
        elif isinstance(message, RpcResult):
            logger.debug("Success response for {}", message.id)
            self._resolve(message.id, message.result)
        elif isinstance(message, RpcFailure):
            with self._lock:
                entry = self._pending.get(message.id)
            method = entry.method if entry else None
            error = to_worker_error(message.error, method=method, request_id=message.id)
            logger.info(
                "Error response for {} ({}): {} -> {}",
                message.id,
                method,
                sanitize_error_message(message.error),
                error.kind.value,
            )
            self._reject(message.id, error)

    def _deliver_progress(self, event: ProgressEvent) -> None:
        with self._lock:
            if event.id not in self._pending:
                logger.debug("Dropping progress for unknown request {}", event.id)
                return
            callbacks: list[ProgressCallback] = []
            own = self._progress.get(event.id)
            if own is not None:
                callbacks.append(own)
            callbacks.extend(self._listeners)
            for callback in callbacks:
                try:
                    callback(event)
                except Exception:
                    logger.exception("Progress callback failed for {}", event.id)

    def _reader_loop(self, proc: subprocess.Popen[str]) -> None:
        stream = proc.stdout
        if stream is None:
            return
        try:
            for line in stream:
                text = line.strip()
                if text:
                    self.dispatch(text)
        except (OSError, ValueError) as exc:
            logger.warning("Worker stdout read failed: {}", exc)
        self._on_stream_closed(proc)

    def _on_stream_closed(self, proc: subprocess.Popen[str]) -> None:
        try:
            returncode = proc.wait(timeout=self.supervisor.config.stop_timeout_s)
        except subprocess.TimeoutExpired:
            returncode = None
        status = WorkerExit.from_returncode(proc.pid, returncode)
        with self._lock:
            if self._worker_exit is None:
                self._worker_exit = status
            status = self._worker_exit
        logger.debug("Worker stdout closed ({})", status.describe())
        self._fail_all(
            WorkerErrorKind.WORKER_TERMINATED,
            f"worker exited ({status.describe()})",
            details={"returncode": status.returncode, "signal": status.signal_name},
        )

    def _on_worker_exit(self, status: WorkerExit) -> None:
        with self._lock:
            if self._proc is None or status.pid != self._proc.pid:
                return
            self._worker_exit = status

    # -- outbound ------------------------------------------------------------

    def _writer_loop(self) -> None:
        while True:
            job = self._writes.get()
            if job is None:
                break
            with self._lock:
                if job.request_id not in self._pending:
                    continue
                reason = self._unavailable_reason()
                stream: IO[str] | None = self._proc.stdin if self._proc else None
            if reason is None and stream is None:
                reason = "worker stdin is unavailable"
            if reason is not None:
                self._reject(job.request_id, bridge_error(
                    WorkerErrorKind.WORKER_UNAVAILABLE, reason, method=job.method, request_id=job.request_id
                ))
                continue
            assert stream is not None
            try:
                stream.write(job.line)
                stream.flush()
            except (OSError, ValueError) as exc:
                cause, _, _ = classify_exception(exc)
                logger.error("Write to worker failed for {} ({}): {}", job.request_id, cause, exc)
                self._reject(job.request_id, bridge_error(
                    WorkerErrorKind.WORKER_UNAVAILABLE,
                    f"write failed: {exc}",
                    method=job.method,
                    request_id=job.request_id,
                    details={"cause": cause},
                ))
                continue
            if self._write_delay:
                time.sleep(self._write_delay)
