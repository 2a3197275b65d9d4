"""Value objects for temporary instances.

Exports:
    - Port: Type-safe server port
    - DEFAULT_ROLE, DEFAULT_DATABASE: Names bootstrapped in every instance
    - VERSION_MARKER, CONFIG_FILENAME, READY_MARKER: Engine file and log markers
    - build_connection_uri: Connection URI for an instance
"""

from tmp_postgres.domain.value_objects.identifiers import (
    CONFIG_FILENAME,
    DEFAULT_DATABASE,
    DEFAULT_ROLE,
    READY_MARKER,
    VERSION_MARKER,
    Port,
    build_connection_uri,
)

__all__ = [
    "Port",
    "DEFAULT_ROLE",
    "DEFAULT_DATABASE",
    "VERSION_MARKER",
    "CONFIG_FILENAME",
    "READY_MARKER",
    "build_connection_uri",
]
