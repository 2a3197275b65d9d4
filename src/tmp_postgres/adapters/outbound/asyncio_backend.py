"""Cooperative process backend built on asyncio.

Commands and servers run as asyncio subprocesses, so waiting on them only
suspends the calling task. Two things differ from the blocking backend:

- A counting semaphore per event loop bounds how many servers run at once.
  A permit is taken before an instance allocates anything and is returned
  only after its server has been reaped.
- Each ready server is owned by a supervising task that races "the process
  exited" against "a stop was requested". A stop request interrupts the
  server with SIGINT and waits for it; an exit nobody asked for is logged
  as an error. In both cases the task finishes the instance's cleanup.
"""

from __future__ import annotations

import asyncio
import signal
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from tmp_postgres.domain.entities import Command, ServerHandle, ServerState
from tmp_postgres.domain.services import classify_result, decode_output
from tmp_postgres.domain.value_objects import Port
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.ports.inbound import ExecSubprocessError, ProcessStopError, SpawnError

logger = get_logger(__name__)

T = TypeVar("T")

MAX_CONCURRENT_PROCESSES = 8

_limiters: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[int, asyncio.Semaphore]] = (
    weakref.WeakKeyDictionary()
)


def get_limiter(capacity: int = MAX_CONCURRENT_PROCESSES) -> asyncio.Semaphore:
    """The running loop's semaphore of the given capacity.

    Limiters are per event loop because asyncio primitives cannot be
    shared between loops.
    """
    loop = asyncio.get_running_loop()
    by_capacity = _limiters.setdefault(loop, {})
    if capacity not in by_capacity:
        by_capacity[capacity] = asyncio.Semaphore(capacity)
    return by_capacity[capacity]


class SemaphorePermit:
    """One acquired slot of a limiter, returned exactly once.

    release() may be called from any thread; the semaphore itself is only
    touched on the loop that owns it.
    """

    def __init__(self, semaphore: asyncio.Semaphore) -> None:
        self._semaphore = semaphore
        self._loop = asyncio.get_running_loop()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._semaphore.release()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._semaphore.release)


@dataclass
class Supervision:
    """State of the task owning a ready server."""
    stop_requested: asyncio.Event
    task: asyncio.Task[None]


async def _drain(stream: asyncio.StreamReader, port: int, stream_name: str) -> None:
    while raw := await stream.readline():
        logger.debug(
            "server_output",
            port=port,
            stream=stream_name,
            line=raw.decode("utf-8", errors="replace").rstrip("\n"),
        )


def _interrupt(handle: ServerHandle) -> None:
    """Deliver SIGINT unless the process is already gone."""
    try:
        handle.process.send_signal(signal.SIGINT)
    except ProcessLookupError:
        pass
    except OSError as e:
        raise ProcessStopError(f"failed to interrupt postgres (pid {handle.pid}): {e}") from e


class AsyncioBackend:
    """AsyncProcessBackend on the running event loop."""

    mode = "cooperative"

    def __init__(
        self,
        max_concurrent_processes: int = MAX_CONCURRENT_PROCESSES,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._capacity = max_concurrent_processes
        self._metrics = metrics
        # The event loop only keeps weak references to tasks.
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def capacity(self) -> int:
        return self._capacity

    async def acquire_permit(self) -> SemaphorePermit:
        semaphore = get_limiter(self._capacity)
        if semaphore.locked():
            logger.debug("waiting_for_permit", capacity=self._capacity)
        await semaphore.acquire()
        return SemaphorePermit(semaphore)

    async def run(self, command: Command) -> str:
        logger.debug("running_command", command=command.describe())
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                env=command.environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecSubprocessError(command.describe(), e) from e
        stdout, stderr = await process.communicate()
        return classify_result(command, process.returncode, stdout, stderr, self._metrics)

    async def spawn(self, command: Command, port: Port, data_dir: Path) -> ServerHandle:
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                env=command.environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"failed to start {command.describe()}: {e}") from e

        logger.info("server_spawned", pid=process.pid, port=port, data_dir=str(data_dir))
        return ServerHandle(port=port, data_dir=data_dir, process=process)

    async def read_line(self, handle: ServerHandle) -> str | None:
        raw = await handle.process.stderr.readline()
        if not raw:
            return None
        return decode_output(f"postgres (pid {handle.pid})", raw).rstrip("\n")

    async def supervise(self, handle: ServerHandle, on_stopped: Callable[[], None]) -> None:
        handle.on_stopped = on_stopped
        for stream_name in ("stdout", "stderr"):
            stream = getattr(handle.process, stream_name)
            handle.watchers.append(asyncio.create_task(_drain(stream, handle.port, stream_name)))
        stop_requested = asyncio.Event()
        task = asyncio.create_task(
            self._supervise(handle, stop_requested),
            name=f"tmp-postgres-supervisor-{handle.port}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        handle.supervisor = Supervision(stop_requested=stop_requested, task=task)

    async def _supervise(self, handle: ServerHandle, stop_requested: asyncio.Event) -> None:
        exited = asyncio.ensure_future(handle.process.wait())
        requested = asyncio.ensure_future(stop_requested.wait())
        try:
            await asyncio.wait({exited, requested}, return_when=asyncio.FIRST_COMPLETED)
            if requested.done():
                handle.begin_stop()
                if not exited.done():
                    _interrupt(handle)
            else:
                logger.error(
                    "server_exited_early",
                    pid=handle.pid,
                    port=handle.port,
                    returncode=handle.process.returncode,
                )
            await exited
            await self._finish(handle, offload=True)
        except asyncio.CancelledError:
            # The loop is shutting down with the guard still live.
            if handle.begin_stop():
                _interrupt(handle)
            await handle.process.wait()
            await self._finish(handle, offload=False)
            raise
        finally:
            requested.cancel()
            exited.cancel()

    async def _finish(self, handle: ServerHandle, offload: bool) -> None:
        if handle.state == ServerState.STOPPED:
            return
        handle.mark_stopped(handle.process.returncode)
        logger.info(
            "server_stopped",
            pid=handle.pid,
            port=handle.port,
            returncode=handle.returncode,
            unexpected=handle.exited_unexpectedly,
        )
        callback, handle.on_stopped = handle.on_stopped, None
        if callback is None:
            return
        if offload:
            await asyncio.to_thread(callback)
        else:
            # The default executor may already be shutting down.
            callback()

    def request_stop(self, handle: ServerHandle) -> None:
        """Ask the supervising task to stop the server without waiting."""
        if handle.supervisor is not None:
            handle.supervisor.stop_requested.set()

    async def stop(self, handle: ServerHandle) -> None:
        """Stop the server and wait until it has been reaped."""
        supervision: Supervision | None = handle.supervisor
        if supervision is None:
            # Never became ready; nothing else owns it.
            if handle.state == ServerState.STOPPED:
                return
            if handle.begin_stop():
                _interrupt(handle)
            returncode = await handle.process.wait()
            handle.mark_stopped(returncode)
            logger.info("server_stopped", pid=handle.pid, port=handle.port, returncode=returncode)
            return

        supervision.stop_requested.set()
        await asyncio.shield(supervision.task)
        if handle.watchers:
            await asyncio.gather(*handle.watchers, return_exceptions=True)
            handle.watchers.clear()

    async def offload(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)
