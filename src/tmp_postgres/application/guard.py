"""Caller-held guards owning one running instance each.

Dropping the last reference to a guard (or interpreter exit) stops its
server through a weakref.finalize fallback, but callers should close
guards explicitly:

    with factory.new_instance() as guard:
        connect(guard.connection_string)

    async with await factory.new_instance_async() as guard:
        await connect(guard.connection_string)

The server is always reaped before its data directory is removed.
"""

from __future__ import annotations

import asyncio
import tempfile
import threading
import weakref
from dataclasses import dataclass, field
from pathlib import Path

from tmp_postgres.domain.entities import ServerHandle, ServerState
from tmp_postgres.domain.services import DirectoryRef
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.infrastructure.tracing import trace_span
from tmp_postgres.ports.outbound import AsyncProcessBackend, Permit, ProcessBackend

logger = get_logger(__name__)


@dataclass
class InstanceResources:
    """Everything an instance holds besides its process.

    Released in order: data directory, socket directory reference, permit.
    """
    data_dir: tempfile.TemporaryDirectory | None = None
    socket_ref: DirectoryRef | None = None
    permit: Permit | None = None
    metrics: MetricsRegistry | None = None
    running: bool = False
    _claimed: bool = field(default=False, repr=False)
    _finished: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def path(self) -> Path:
        return Path(self.data_dir.name)

    @property
    def released(self) -> bool:
        """True once every resource has been released."""
        return self._finished

    def cleanup(self) -> None:
        """Release every resource; later calls are no-ops."""
        with self._lock:
            if self._claimed:
                return
            self._claimed = True
        try:
            if self.data_dir is not None:
                self.data_dir.cleanup()
        finally:
            if self.socket_ref is not None:
                self.socket_ref.release()
            if self.permit is not None:
                self.permit.release()
            if self.running and self.metrics is not None:
                self.metrics.instances_running.dec()
            self._finished = True
        logger.debug("instance_resources_released", data_dir=str(self.path) if self.data_dir else None)


def _stop_blocking(backend: ProcessBackend, handle: ServerHandle) -> None:
    with trace_span("tmp_postgres.instance.stop", {"port": handle.port, "mode": backend.mode}):
        backend.stop(handle)


def _request_stop(
    loop: asyncio.AbstractEventLoop,
    backend: AsyncProcessBackend,
    handle: ServerHandle,
) -> None:
    if loop.is_closed():
        # Shutting the loop down cancelled the supervising task, which
        # already interrupted and reaped the server.
        return
    loop.call_soon_threadsafe(backend.request_stop, handle)


class _GuardBase:
    def __init__(
        self,
        handle: ServerHandle,
        resources: InstanceResources,
        socket_dir: Path,
        connection_string: str,
    ) -> None:
        self._handle = handle
        self._resources = resources
        self._socket_dir = socket_dir
        self._connection_string = connection_string

    @property
    def connection_string(self) -> str:
        """libpq URI connecting as the demo role to the demo database."""
        return self._connection_string

    @property
    def port(self) -> int:
        return self._handle.port

    @property
    def pid(self) -> int:
        return self._handle.pid

    @property
    def data_directory(self) -> Path:
        return self._resources.path

    @property
    def socket_directory(self) -> Path:
        return self._socket_dir

    @property
    def state(self) -> ServerState:
        return self._handle.state

    @property
    def handle(self) -> ServerHandle:
        return self._handle

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(port={self.port}, state={self.state.value}, "
            f"data_directory={str(self.data_directory)!r})"
        )


class ProcessGuard(_GuardBase):
    """Owns a server started by the blocking model.

    close() interrupts the server with SIGINT, waits for it to exit, then
    removes its data directory and drops its socket directory reference.
    """

    def __init__(
        self,
        handle: ServerHandle,
        backend: ProcessBackend,
        resources: InstanceResources,
        socket_dir: Path,
        connection_string: str,
    ) -> None:
        super().__init__(handle, resources, socket_dir, connection_string)
        self._finalizer = weakref.finalize(self, _stop_blocking, backend, handle)

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def close(self) -> None:
        """Stop the server and release its storage.

        Raises:
            ProcessStopError: If the server cannot be signalled or reaped.
                Teardown is not attempted again.
        """
        self._finalizer()

    def __enter__(self) -> ProcessGuard:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncProcessGuard(_GuardBase):
    """Owns a server started by the cooperative model.

    A supervising task on the creating event loop owns the process. The
    guard only asks it to stop: release() returns immediately, aclose()
    waits until the server is reaped and its storage removed.
    """

    def __init__(
        self,
        handle: ServerHandle,
        backend: AsyncProcessBackend,
        resources: InstanceResources,
        socket_dir: Path,
        connection_string: str,
    ) -> None:
        super().__init__(handle, resources, socket_dir, connection_string)
        self._backend = backend
        loop = asyncio.get_running_loop()
        self._finalizer = weakref.finalize(self, _request_stop, loop, backend, handle)

    @property
    def closed(self) -> bool:
        return self._resources.released

    def release(self) -> None:
        """Request shutdown without waiting for it."""
        self._finalizer()

    async def aclose(self) -> None:
        """Request shutdown and wait until cleanup has finished.

        Raises:
            ProcessStopError: If the server cannot be signalled.
        """
        self._finalizer.detach()
        with trace_span("tmp_postgres.instance.stop", {"port": self.port, "mode": self._backend.mode}):
            await self._backend.stop(self._handle)

    async def __aenter__(self) -> AsyncProcessGuard:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
