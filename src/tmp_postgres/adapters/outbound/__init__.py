"""Outbound adapters - implementations of outbound ports.

These adapters talk to the host: launching PostgreSQL tools either on the
calling thread or on the event loop, and finding their executables.
"""

from tmp_postgres.adapters.outbound.asyncio_backend import (
    MAX_CONCURRENT_PROCESSES,
    AsyncioBackend,
    SemaphorePermit,
    get_limiter,
)
from tmp_postgres.adapters.outbound.binary_locator import PathBinaryLocator
from tmp_postgres.adapters.outbound.subprocess_backend import SubprocessBackend

__all__ = [
    "MAX_CONCURRENT_PROCESSES",
    "AsyncioBackend",
    "SemaphorePermit",
    "get_limiter",
    "PathBinaryLocator",
    "SubprocessBackend",
]
