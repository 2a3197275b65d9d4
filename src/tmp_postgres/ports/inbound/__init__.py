"""Inbound ports - the contract offered to test suites.

Defines the errors surfaced by factories and guards, and the protocol an
instance factory satisfies in either scheduling model.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from tmp_postgres.application.guard import AsyncProcessGuard, ProcessGuard


# =============================================================================
# Errors
# =============================================================================


@dataclass(frozen=True)
class ProcessCapture:
    """Captured output of a command that ran and failed."""
    stdout: str
    stderr: str


class TmpPostgresError(Exception):
    """Base class for every error raised by tmp_postgres."""
    pass


class BinaryNotFoundError(TmpPostgresError):
    """A PostgreSQL executable could not be located."""

    def __init__(self, name: str, searched: list[str] | None = None) -> None:
        self.name = name
        self.searched = searched or []
        super().__init__(f"could not find PostgreSQL executable {name!r}")


class DirectoryCreationError(TmpPostgresError):
    """A temporary directory could not be created."""

    def __init__(self, purpose: str, cause: OSError) -> None:
        self.purpose = purpose
        super().__init__(f"failed to create {purpose} directory: {cause}")


class ConfigWriteError(TmpPostgresError):
    """postgresql.conf could not be written."""
    pass


class SpawnError(TmpPostgresError):
    """The postgres server process could not be launched."""
    pass


class ExecSubprocessError(TmpPostgresError):
    """A command could not be launched at all."""

    def __init__(self, command: str, cause: OSError) -> None:
        self.command = command
        super().__init__(f"failed to execute {command}: {cause}")


class OutputDecodeError(TmpPostgresError):
    """A command produced output that is not valid UTF-8."""

    def __init__(self, command: str, cause: UnicodeDecodeError) -> None:
        self.command = command
        super().__init__(f"output of {command} is not valid UTF-8: {cause}")


class CommandFailedError(TmpPostgresError):
    """A command ran and exited unsuccessfully.

    Subclasses name the call site; all carry the captured output.
    """

    action = "command"

    def __init__(self, command: str, capture: ProcessCapture, returncode: int | None = None) -> None:
        self.command = command
        self.capture = capture
        self.returncode = returncode
        message = f"{self.action} failed ({command}, exit status {returncode})"
        if capture.stderr.strip():
            message = f"{message}: {capture.stderr.strip()}"
        super().__init__(message)

    @property
    def stdout(self) -> str:
        return self.capture.stdout

    @property
    def stderr(self) -> str:
        return self.capture.stderr


class InitDbError(CommandFailedError):
    """initdb failed while building the template."""
    action = "initdb"


class CopyError(TmpPostgresError):
    """Materializing the template into an instance directory failed."""
    pass


class TemplateNotFoundError(CopyError):
    """The template directory is missing or unreadable."""
    pass


class CopyTemplateError(CommandFailedError, CopyError):
    """cp failed while copying the template."""
    action = "copying the cached data directory"


class CreateRoleError(CommandFailedError):
    """createuser failed against a ready server."""
    action = "createuser"


class CreateDatabaseError(CommandFailedError):
    """createdb failed against a ready server."""
    action = "createdb"


class EmptyDataDirectoryError(TmpPostgresError):
    """A materialized directory has no PG_VERSION marker."""
    pass


class ServerExitedEarlyError(TmpPostgresError):
    """The server's output ended before it reported readiness."""
    pass


class ProcessStopError(TmpPostgresError):
    """A running server could not be stopped and reaped."""
    pass


class InstanceStateError(TmpPostgresError):
    """A server handle was asked for an illegal lifecycle transition."""
    pass


# =============================================================================
# Instance Factory Port
# =============================================================================


class InstanceFactoryPort(Protocol):
    """Protocol for creating isolated, disposable PostgreSQL instances.

    A factory is built once (running initdb) and then hands out any number
    of independent instances, each cloned from the same template.
    """

    @abstractmethod
    def new_instance(self) -> ProcessGuard:
        """Start an instance, blocking the calling thread until it is ready.

        Returns:
            Guard whose close() stops the server and removes its storage.

        Raises:
            TmpPostgresError: If any creation step fails. Nothing allocated
                by the failed call is left behind.
        """
        ...

    @abstractmethod
    async def new_instance_async(self) -> AsyncProcessGuard:
        """Start an instance without blocking the event loop.

        Suspends until a concurrency permit is free.

        Returns:
            Guard whose aclose() stops the server and removes its storage.

        Raises:
            TmpPostgresError: If any creation step fails.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Remove the template and release the factory's socket directory."""
        ...


__all__ = [
    "ProcessCapture",
    "TmpPostgresError",
    "BinaryNotFoundError",
    "DirectoryCreationError",
    "ConfigWriteError",
    "SpawnError",
    "ExecSubprocessError",
    "OutputDecodeError",
    "CommandFailedError",
    "InitDbError",
    "CopyError",
    "TemplateNotFoundError",
    "CopyTemplateError",
    "CreateRoleError",
    "CreateDatabaseError",
    "EmptyDataDirectoryError",
    "ServerExitedEarlyError",
    "ProcessStopError",
    "InstanceStateError",
    "InstanceFactoryPort",
]
