"""Identifiers and fixed names for temporary instances."""

from __future__ import annotations

from pathlib import Path
from typing import NewType

# Type-safe identifiers
Port = NewType("Port", int)

# Role and database created in every instance.
DEFAULT_ROLE = "demo"
DEFAULT_DATABASE = "demo"

# Written by initdb at the root of every data directory.
VERSION_MARKER = "PG_VERSION"

CONFIG_FILENAME = "postgresql.conf"

# Logged by the postmaster once it accepts connections.
READY_MARKER = "database system is ready to accept connections"


def build_connection_uri(
    port: Port,
    socket_dir: Path,
    role: str = DEFAULT_ROLE,
    database: str = DEFAULT_DATABASE,
) -> str:
    """Build a libpq connection URI that connects over the UNIX socket.

    Args:
        port: Port the server listens on (selects the socket file).
        socket_dir: Absolute path of the socket directory.
        role: Role to connect as.
        database: Database to connect to.

    Returns:
        URI of the form postgresql://role@localhost:port/database?host=socket_dir.
    """
    return f"postgresql://{role}@localhost:{port}/{database}?host={socket_dir}"
