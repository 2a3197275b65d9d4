"""Outbound ports - capabilities the factory needs from the host.

The instance lifecycle is written once and performs every operation that
touches a process through one of these capability sets:

- ProcessBackend: blocking calls on the current thread
- AsyncProcessBackend: the same operations as coroutines
- BinaryLocator: finds the engine's executables
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Protocol, TypeVar

if TYPE_CHECKING:
    from tmp_postgres.domain.entities import Command, ServerHandle
    from tmp_postgres.domain.value_objects import Port

T = TypeVar("T")


# =============================================================================
# Concurrency Permit
# =============================================================================


class Permit(Protocol):
    """A slot in a concurrency limiter held for an instance's lifetime."""

    @abstractmethod
    def release(self) -> None:
        """Return the slot. Calling it more than once has no effect."""
        ...


# =============================================================================
# Process Backends
# =============================================================================


class ProcessBackend(Protocol):
    """Blocking process capabilities.

    Every call completes on the calling thread. There is no concurrency
    limit; acquire_permit() always returns None.
    """

    mode: str

    @abstractmethod
    def acquire_permit(self) -> Permit | None:
        ...

    @abstractmethod
    def run(self, command: Command) -> str:
        """Run command to completion.

        Returns:
            Decoded stdout.

        Raises:
            ExecSubprocessError: If the command cannot be launched.
            CommandFailedError: If it exits unsuccessfully.
            OutputDecodeError: If its output is not UTF-8.
        """
        ...

    @abstractmethod
    def spawn(self, command: Command, port: Port, data_dir: Path) -> ServerHandle:
        """Start the server with stdout and stderr piped.

        Raises:
            SpawnError: If the server cannot be launched.
        """
        ...

    @abstractmethod
    def read_line(self, handle: ServerHandle) -> str | None:
        """Next line of the server's stderr, None once it is closed."""
        ...

    @abstractmethod
    def supervise(self, handle: ServerHandle, on_stopped: Callable[[], None]) -> None:
        """Take ownership of a ready server's remaining output and exit."""
        ...

    @abstractmethod
    def stop(self, handle: ServerHandle) -> None:
        """Interrupt the server and wait until it is reaped.

        Raises:
            ProcessStopError: If it cannot be signalled or reaped.
        """
        ...

    @abstractmethod
    def offload(self, fn: Callable[..., T], *args: Any) -> T:
        """Run filesystem work such as a tree copy."""
        ...


class AsyncProcessBackend(Protocol):
    """Cooperative process capabilities.

    Each call suspends only the calling task. acquire_permit() waits for a
    free slot in a limiter bounding the servers running on the event loop.
    """

    mode: str

    @abstractmethod
    async def acquire_permit(self) -> Permit | None:
        ...

    @abstractmethod
    async def run(self, command: Command) -> str:
        ...

    @abstractmethod
    async def spawn(self, command: Command, port: Port, data_dir: Path) -> ServerHandle:
        ...

    @abstractmethod
    async def read_line(self, handle: ServerHandle) -> str | None:
        ...

    @abstractmethod
    async def supervise(self, handle: ServerHandle, on_stopped: Callable[[], None]) -> None:
        """Start a task racing spontaneous exit against a stop request.

        on_stopped runs in that task once the server has been reaped.
        """
        ...

    @abstractmethod
    def request_stop(self, handle: ServerHandle) -> None:
        """Ask the supervising task to stop the server; does not wait."""
        ...

    @abstractmethod
    async def stop(self, handle: ServerHandle) -> None:
        ...

    @abstractmethod
    async def offload(self, fn: Callable[..., T], *args: Any) -> T:
        """Run filesystem work in a worker thread, off the event loop."""
        ...


# =============================================================================
# Binary Locator
# =============================================================================


class BinaryLocator(Protocol):
    """Resolves PostgreSQL executables on the host."""

    @abstractmethod
    def find(self, name: str) -> Path:
        """Locate a server-side executable such as initdb or postgres.

        Raises:
            BinaryNotFoundError: If it cannot be found.
        """
        ...

    @abstractmethod
    def client_command(self, name: str) -> str | Path:
        """Executable for a client tool such as createuser or createdb."""
        ...


__all__ = [
    "Permit",
    "ProcessBackend",
    "AsyncProcessBackend",
    "BinaryLocator",
]
