"""Reference-counted temporary directory."""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path

from tmp_postgres.ports.inbound import DirectoryCreationError, InstanceStateError


class SharedDirectory:
    """A temporary directory removed when its last holder releases it.

    The creator holds the first reference. Every acquire() must be matched
    by exactly one release() on the returned DirectoryRef.
    """

    def __init__(self, prefix: str, root: Path | None = None, purpose: str = "socket") -> None:
        try:
            self._tmp = tempfile.TemporaryDirectory(prefix=prefix, dir=root)
        except OSError as e:
            raise DirectoryCreationError(purpose, e) from e
        self._path = Path(self._tmp.name)
        self._count = 0
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def refcount(self) -> int:
        with self._lock:
            return self._count

    def acquire(self) -> DirectoryRef:
        """Take a reference that keeps the directory alive.

        Raises:
            InstanceStateError: If the directory was already removed.
        """
        with self._lock:
            if self._count == 0 and not self._path.exists():
                raise InstanceStateError(f"{self._path} has already been removed")
            self._count += 1
        return DirectoryRef(self)

    def _release(self) -> None:
        with self._lock:
            self._count -= 1
            remove = self._count == 0
        if remove:
            self._tmp.cleanup()


class DirectoryRef:
    """One holder's reference to a SharedDirectory."""

    def __init__(self, owner: SharedDirectory) -> None:
        self._owner = owner
        self._released = False
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._owner.path

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Drop this reference; later calls are no-ops."""
        with self._lock:
            if self._released:
                return
            self._released = True
        self._owner._release()
