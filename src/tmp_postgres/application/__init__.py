"""Application layer for tmp_postgres.

Orchestrates the domain services and process backends into use cases.

Exports:
    Factory:
        - PostgresFactory: Builds a template once, creates instances from it
    Guards:
        - ProcessGuard: Blocking-model handle on a running instance
        - AsyncProcessGuard: Cooperative-model handle on a running instance
        - InstanceResources: Storage and permits released after the server
    Default factory:
        - new_default_process, new_default_process_async
        - get_default_factory, get_default_factory_async
    Scheduling:
        - Call, run_blocking, run_cooperative
"""

from tmp_postgres.application.default import (
    get_default_factory,
    get_default_factory_async,
    new_default_process,
    new_default_process_async,
)
from tmp_postgres.application.factory import PostgresFactory
from tmp_postgres.application.guard import AsyncProcessGuard, InstanceResources, ProcessGuard
from tmp_postgres.application.scheduling import Call, run_blocking, run_cooperative

__all__ = [
    "PostgresFactory",
    "ProcessGuard",
    "AsyncProcessGuard",
    "InstanceResources",
    "new_default_process",
    "new_default_process_async",
    "get_default_factory",
    "get_default_factory_async",
    "Call",
    "run_blocking",
    "run_cooperative",
]
