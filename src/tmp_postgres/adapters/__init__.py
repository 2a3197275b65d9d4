"""Adapters layer - concrete implementations of port interfaces.

Only outbound adapters exist: the factory is used as a library, so the
inbound side is the application layer itself.
"""

from tmp_postgres.adapters.outbound import (
    AsyncioBackend,
    PathBinaryLocator,
    SubprocessBackend,
)

__all__ = [
    # Outbound adapters
    "AsyncioBackend",
    "PathBinaryLocator",
    "SubprocessBackend",
]
