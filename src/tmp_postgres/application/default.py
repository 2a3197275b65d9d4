"""Process-wide default factory.

The first call to either entry point builds one factory (running initdb
once); every later call in any thread or event loop reuses it. Callers that
arrive while the build is in flight wait on the same future: blocking callers
through ``result()``, cooperative callers through ``asyncio.wrap_future`` so
their loop keeps running. A failed build is reported to everyone waiting on
it and the next call tries again.

The factory is never closed: its template and socket directory are removed
when the interpreter exits.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future

from tmp_postgres.application.factory import PostgresFactory
from tmp_postgres.application.guard import AsyncProcessGuard, ProcessGuard
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.ports.inbound import InstanceStateError

logger = get_logger(__name__)

_pending: Future[PostgresFactory] | None = None
_lock = threading.Lock()


def _claim() -> tuple[Future[PostgresFactory], bool]:
    """The shared build future, and whether the caller must run the build."""
    global _pending
    with _lock:
        if _pending is not None:
            return _pending, False
        future: Future[PostgresFactory] = Future()
        future.set_running_or_notify_cancel()
        _pending = future
        return future, True


def _fail(future: Future[PostgresFactory], exc: BaseException) -> None:
    global _pending
    with _lock:
        if _pending is future:
            _pending = None
    if not isinstance(exc, Exception):
        exc = InstanceStateError(f"default factory construction interrupted: {type(exc).__name__}")
    future.set_exception(exc)


def get_default_factory() -> PostgresFactory:
    """The shared factory, built on first use."""
    future, owner = _claim()
    if not owner:
        return future.result()
    logger.info("building_default_factory", mode="blocking")
    try:
        factory = PostgresFactory.create()
    except BaseException as exc:
        _fail(future, exc)
        raise
    future.set_result(factory)
    return factory


async def get_default_factory_async() -> PostgresFactory:
    """The shared factory, built on first use without blocking the loop."""
    future, owner = _claim()
    if not owner:
        return await asyncio.wrap_future(future)
    logger.info("building_default_factory", mode="cooperative")
    try:
        factory = await PostgresFactory.create_async()
    except BaseException as exc:
        _fail(future, exc)
        raise
    future.set_result(factory)
    return factory


def new_default_process() -> ProcessGuard:
    """Start an instance from the shared factory, blocking until ready."""
    return get_default_factory().new_instance()


async def new_default_process_async() -> AsyncProcessGuard:
    """Start an instance from the shared factory without blocking the loop."""
    factory = await get_default_factory_async()
    return await factory.new_instance_async()
