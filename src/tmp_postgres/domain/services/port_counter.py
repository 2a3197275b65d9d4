"""Monotonic port allocation."""

from __future__ import annotations

import threading

from tmp_postgres.domain.value_objects import Port

DEFAULT_BASE_PORT = 5432


class PortCounter:
    """Hands out strictly increasing ports, never reusing one.

    Thread Safety:
        allocate() is atomic; concurrent callers always get distinct ports.
    """

    def __init__(self, base: int = DEFAULT_BASE_PORT) -> None:
        self._next = base
        self._lock = threading.Lock()

    def allocate(self) -> Port:
        """Return the next port and advance the counter."""
        with self._lock:
            port = self._next
            self._next += 1
        return Port(port)

    def peek(self) -> Port:
        """Return the port the next allocate() will hand out."""
        with self._lock:
            return Port(self._next)
