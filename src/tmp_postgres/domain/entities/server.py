"""Server process entity and its lifecycle."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from tmp_postgres.domain.value_objects import Port
from tmp_postgres.ports.inbound import InstanceStateError


class ServerState(Enum):
    """Server lifecycle state."""
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class ServerHandle:
    """One running postgres server and where it is in its lifecycle.

    The process object is whatever the scheduling backend spawned
    (subprocess.Popen or asyncio.subprocess.Process); the handle only
    tracks state so that the server is signalled and reaped exactly once.
    """
    port: Port
    data_dir: Path
    process: Any
    state: ServerState = ServerState.STARTING
    started_at: float = field(default_factory=time.monotonic)
    ready_at: float | None = None
    stopped_at: float | None = None
    returncode: int | None = None
    exited_unexpectedly: bool = False
    # Owned by the scheduling backend: cleanup to run once reaped, output
    # readers, and any supervising task state.
    on_stopped: Callable[[], None] | None = None
    watchers: list[Any] = field(default_factory=list)
    supervisor: Any = None

    @property
    def pid(self) -> int:
        """OS process ID of the server."""
        return self.process.pid

    def mark_ready(self) -> None:
        """Record that the readiness marker was seen."""
        if self.state != ServerState.STARTING:
            raise InstanceStateError(f"Cannot mark server ready in state {self.state.value}")
        self.state = ServerState.READY
        self.ready_at = time.monotonic()

    def begin_stop(self) -> bool:
        """Move to STOPPING.

        Returns:
            True if the caller must now signal the process, False if a stop
            is already under way or finished.
        """
        if self.state in (ServerState.STOPPING, ServerState.STOPPED):
            return False
        self.state = ServerState.STOPPING
        return True

    def mark_stopped(self, returncode: int | None) -> None:
        """Record that the process has been reaped.

        A process reaped without a stop request exited on its own.
        """
        if self.state == ServerState.STOPPED:
            raise InstanceStateError("Server already reaped")
        self.exited_unexpectedly = self.state != ServerState.STOPPING
        self.state = ServerState.STOPPED
        self.returncode = returncode
        self.stopped_at = time.monotonic()

    def is_running(self) -> bool:
        """Check if the server may still accept work or is shutting down."""
        return self.state != ServerState.STOPPED

    def get_startup_seconds(self) -> float:
        """Seconds from spawn to readiness, 0 if never ready."""
        if self.ready_at is None:
            return 0.0
        return self.ready_at - self.started_at
