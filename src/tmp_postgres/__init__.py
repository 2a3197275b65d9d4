"""
tmp_postgres - Disposable PostgreSQL instances for tests

Runs initdb once per factory, then starts any number of isolated servers
cloned from that template, each reachable over a private UNIX socket.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"

from tmp_postgres.application import (
    AsyncProcessGuard,
    PostgresFactory,
    ProcessGuard,
    new_default_process,
    new_default_process_async,
)
from tmp_postgres.ports.inbound import (
    BinaryNotFoundError,
    CommandFailedError,
    ConfigWriteError,
    CopyError,
    CopyTemplateError,
    CreateDatabaseError,
    CreateRoleError,
    DirectoryCreationError,
    EmptyDataDirectoryError,
    ExecSubprocessError,
    InitDbError,
    InstanceStateError,
    OutputDecodeError,
    ProcessCapture,
    ProcessStopError,
    ServerExitedEarlyError,
    SpawnError,
    TemplateNotFoundError,
    TmpPostgresError,
)

__all__ = [
    "__version__",
    "PostgresFactory",
    "ProcessGuard",
    "AsyncProcessGuard",
    "new_default_process",
    "new_default_process_async",
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
]
