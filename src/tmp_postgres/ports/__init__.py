"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: what test suites use (the instance factory and its errors)
- Outbound ports: what the factory needs (process backends, binary lookup)

Adapters implement these ports with concrete functionality.
"""

from tmp_postgres.ports.inbound import InstanceFactoryPort, TmpPostgresError
from tmp_postgres.ports.outbound import (
    AsyncProcessBackend,
    BinaryLocator,
    Permit,
    ProcessBackend,
)

__all__ = [
    # Inbound ports
    "InstanceFactoryPort",
    "TmpPostgresError",
    # Outbound ports
    "AsyncProcessBackend",
    "BinaryLocator",
    "Permit",
    "ProcessBackend",
]
