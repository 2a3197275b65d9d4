"""Blocking process backend built on subprocess.

Every capability runs to completion on the calling thread. Once a server
is ready its remaining output is drained by daemon threads so the server
never stalls on a full pipe; the threads end when the server closes its
output and are joined when it is stopped.
"""

from __future__ import annotations

import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, Any, Callable, TypeVar

from tmp_postgres.domain.entities import Command, ServerHandle, ServerState
from tmp_postgres.domain.services import classify_result, decode_output
from tmp_postgres.domain.value_objects import Port
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.ports.inbound import ExecSubprocessError, ProcessStopError, SpawnError

logger = get_logger(__name__)

T = TypeVar("T")


def _drain(stream: IO[bytes], port: int, stream_name: str) -> None:
    """Log every line of stream until it is closed."""
    for raw in iter(stream.readline, b""):
        logger.debug(
            "server_output",
            port=port,
            stream=stream_name,
            line=raw.decode("utf-8", errors="replace").rstrip("\n"),
        )


class SubprocessBackend:
    """ProcessBackend running everything on the calling thread."""

    mode = "blocking"

    def __init__(self, metrics: MetricsRegistry | None = None) -> None:
        self._metrics = metrics

    def acquire_permit(self) -> None:
        """The blocking model does not limit concurrent servers."""
        return None

    def run(self, command: Command) -> str:
        logger.debug("running_command", command=command.describe())
        try:
            result = subprocess.run(
                command.argv,
                env=command.environment(),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise ExecSubprocessError(command.describe(), e) from e
        return classify_result(command, result.returncode, result.stdout, result.stderr, self._metrics)

    def spawn(self, command: Command, port: Port, data_dir: Path) -> ServerHandle:
        try:
            process = subprocess.Popen(
                command.argv,
                env=command.environment(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"failed to start {command.describe()}: {e}") from e

        logger.info("server_spawned", pid=process.pid, port=port, data_dir=str(data_dir))
        return ServerHandle(port=port, data_dir=data_dir, process=process)

    def read_line(self, handle: ServerHandle) -> str | None:
        raw = handle.process.stderr.readline()
        if not raw:
            return None
        return decode_output(f"postgres (pid {handle.pid})", raw).rstrip("\n")

    def supervise(self, handle: ServerHandle, on_stopped: Callable[[], None]) -> None:
        handle.on_stopped = on_stopped
        for stream_name in ("stdout", "stderr"):
            thread = threading.Thread(
                target=_drain,
                args=(getattr(handle.process, stream_name), handle.port, stream_name),
                name=f"tmp-postgres-{handle.port}-{stream_name}",
                daemon=True,
            )
            thread.start()
            handle.watchers.append(thread)

    def stop(self, handle: ServerHandle) -> None:
        """Send SIGINT (fast shutdown) and wait for the server to exit."""
        if handle.state == ServerState.STOPPED:
            return

        process: subprocess.Popen[bytes] = handle.process
        if handle.begin_stop():
            logger.debug("server_stopping", pid=process.pid, port=handle.port)
            try:
                process.send_signal(signal.SIGINT)
            except OSError as e:
                raise ProcessStopError(f"failed to interrupt postgres (pid {process.pid}): {e}") from e

        try:
            returncode = process.wait()
        except OSError as e:
            raise ProcessStopError(f"failed to reap postgres (pid {process.pid}): {e}") from e
        handle.mark_stopped(returncode)

        for thread in handle.watchers:
            thread.join()
        handle.watchers.clear()
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()

        logger.info("server_stopped", pid=process.pid, port=handle.port, returncode=returncode)

        callback, handle.on_stopped = handle.on_stopped, None
        if callback is not None:
            callback()

    def offload(self, fn: Callable[..., T], *args: Any) -> T:
        return fn(*args)
