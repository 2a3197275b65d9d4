"""Domain entities."""

from tmp_postgres.domain.entities.command import Command
from tmp_postgres.domain.entities.server import ServerHandle, ServerState

__all__ = [
    "Command",
    "ServerHandle",
    "ServerState",
]
