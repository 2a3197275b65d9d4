"""Instance factory - the main entry point of tmp_postgres.

A factory runs initdb once into a template directory, then creates any
number of independent instances from it. Each instance gets its own copy
of the template, its own port, and a server listening only on a UNIX
socket in a directory shared by every instance of the factory.

Usage:
    from tmp_postgres import PostgresFactory

    with PostgresFactory.create() as factory:
        with factory.new_instance() as guard:
            conn = psycopg2.connect(guard.connection_string)

    factory = await PostgresFactory.create_async()
    async with await factory.new_instance_async() as guard:
        ...

Both scheduling models run the same steps (see scheduling.py); a factory
constructed either way serves new_instance() and new_instance_async().
"""

from __future__ import annotations

import tempfile
import time
from pathlib import Path

from tmp_postgres.adapters.outbound import AsyncioBackend, PathBinaryLocator, SubprocessBackend
from tmp_postgres.application.guard import AsyncProcessGuard, InstanceResources, ProcessGuard
from tmp_postgres.application.scheduling import Call, Steps, run_blocking, run_cooperative
from tmp_postgres.domain.entities import ServerHandle
from tmp_postgres.domain.services import (
    DirectoryRef,
    InstanceMaterializer,
    PortCounter,
    SharedDirectory,
    build_config,
    create_database_command,
    create_instance_dir,
    create_role_command,
    initdb_command,
    is_ready_line,
    server_command,
    write_config,
)
from tmp_postgres.domain.value_objects import DEFAULT_DATABASE, DEFAULT_ROLE, build_connection_uri
from tmp_postgres.infrastructure.config import Config
from tmp_postgres.infrastructure.container import Container
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry, get_metrics
from tmp_postgres.infrastructure.tracing import trace_span
from tmp_postgres.ports.inbound import InstanceStateError, ServerExitedEarlyError, TmpPostgresError
from tmp_postgres.ports.outbound import AsyncProcessBackend, BinaryLocator, ProcessBackend

logger = get_logger(__name__)


class PostgresFactory:
    """Creates disposable PostgreSQL instances from one initdb template.

    Use create() or create_async() rather than the constructor; they run
    initdb and clean up after themselves when it fails.

    Thread Safety:
        new_instance() may be called from several threads at once; port
        allocation and socket directory reference counting are locked.
    """

    def __init__(
        self,
        config: Config,
        locator: BinaryLocator,
        socket_dir: SharedDirectory,
        socket_ref: DirectoryRef,
        template: tempfile.TemporaryDirectory,
        backend: ProcessBackend,
        async_backend: AsyncProcessBackend,
        metrics: MetricsRegistry,
    ) -> None:
        self._config = config
        self._locator = locator
        self._socket_dir = socket_dir
        self._socket_ref = socket_ref
        self._template = template
        self._backend = backend
        self._async_backend = async_backend
        self._metrics = metrics
        self._materializer = InstanceMaterializer(Path(template.name))
        self._ports = PortCounter(config.postgres.base_port)
        self._closed = False

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @staticmethod
    def _collaborators(
        config: Config | None,
        locator: BinaryLocator | None,
        metrics: MetricsRegistry | None,
    ) -> tuple[Config, BinaryLocator, MetricsRegistry]:
        if config is None:
            container = Container.get()
            config = container.config
            metrics = metrics or container.metrics
        config.ensure_directories()
        metrics = metrics or get_metrics()
        locator = locator or PathBinaryLocator(config.postgres.bin_dir)
        return config, locator, metrics

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        *,
        locator: BinaryLocator | None = None,
        backend: ProcessBackend | None = None,
        async_backend: AsyncProcessBackend | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> PostgresFactory:
        """Build a factory, blocking while initdb runs.

        Args:
            config: Settings; the shared container's when None.
            locator: Executable lookup; searches config.postgres.bin_dir,
                PATH and well-known prefixes when None.
            backend: Blocking process backend for new_instance().
            async_backend: Cooperative process backend for new_instance_async().
            metrics: Registry to record into.

        Raises:
            DirectoryCreationError: If a temporary directory cannot be created.
            BinaryNotFoundError: If initdb cannot be found.
            InitDbError: If initdb fails.
        """
        config, locator, metrics = cls._collaborators(config, locator, metrics)
        backend = backend or SubprocessBackend(metrics)
        async_backend = async_backend or AsyncioBackend(config.postgres.max_concurrent_processes, metrics)
        with trace_span("tmp_postgres.factory.create", {"mode": backend.mode}):
            steps = cls._construct(config, locator, backend, async_backend, metrics)
            return run_blocking(steps, backend)

    @classmethod
    async def create_async(
        cls,
        config: Config | None = None,
        *,
        locator: BinaryLocator | None = None,
        backend: ProcessBackend | None = None,
        async_backend: AsyncProcessBackend | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> PostgresFactory:
        """Build a factory without blocking the event loop while initdb runs.

        Takes the same arguments and raises the same errors as create().
        """
        config, locator, metrics = cls._collaborators(config, locator, metrics)
        backend = backend or SubprocessBackend(metrics)
        async_backend = async_backend or AsyncioBackend(config.postgres.max_concurrent_processes, metrics)
        with trace_span("tmp_postgres.factory.create", {"mode": async_backend.mode}):
            steps = cls._construct(config, locator, backend, async_backend, metrics)
            return await run_cooperative(steps, async_backend)

    @classmethod
    def _construct(
        cls,
        config: Config,
        locator: BinaryLocator,
        backend: ProcessBackend,
        async_backend: AsyncProcessBackend,
        metrics: MetricsRegistry,
    ) -> Steps[PostgresFactory]:
        storage = config.storage
        socket_dir = SharedDirectory(storage.socket_prefix, storage.temp_root, purpose="socket")
        socket_ref = socket_dir.acquire()
        template: tempfile.TemporaryDirectory | None = None
        started = time.monotonic()
        try:
            template = create_instance_dir(storage.cache_prefix, storage.temp_root, purpose="cache")
            initdb = locator.find("initdb")
            logger.debug("initializing_template", template=template.name)
            yield Call("run", (initdb_command(initdb, Path(template.name), config.postgres.admin_user),))
        except BaseException:
            metrics.template_initializations_total.labels(status="error").inc()
            if template is not None:
                template.cleanup()
            socket_ref.release()
            raise

        elapsed = time.monotonic() - started
        metrics.template_initializations_total.labels(status="success").inc()
        metrics.template_init_seconds.observe(elapsed)
        logger.info(
            "template_initialized",
            template=template.name,
            socket_dir=str(socket_dir.path),
            seconds=round(elapsed, 3),
        )
        return cls(
            config=config,
            locator=locator,
            socket_dir=socket_dir,
            socket_ref=socket_ref,
            template=template,
            backend=backend,
            async_backend=async_backend,
            metrics=metrics,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> Config:
        return self._config

    @property
    def socket_dir(self) -> Path:
        """Directory holding the UNIX sockets of every instance."""
        return self._socket_dir.path

    @property
    def template_dir(self) -> Path:
        return Path(self._template.name)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def next_port(self) -> int:
        """Port the next instance will listen on."""
        return self._ports.peek()

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def new_instance(self) -> ProcessGuard:
        """Start an instance, blocking until it accepts connections.

        Returns:
            Guard owning the server; close it to stop the server and remove
            its data directory.

        Raises:
            TmpPostgresError: If any step fails. Everything the failed call
                allocated has been released by then.
        """
        self._check_open()
        backend = self._backend
        started = time.monotonic()
        with trace_span("tmp_postgres.instance.create", {"mode": backend.mode}) as span:
            try:
                handle, resources = run_blocking(self._provision(), backend)
            except BaseException:
                self._metrics.instances_created_total.labels(mode=backend.mode, status="error").inc()
                raise
            span.set_attribute("port", handle.port)
        guard = ProcessGuard(handle, backend, resources, self.socket_dir, self._connection_uri(handle))
        self._record_ready(backend.mode, handle, started)
        return guard

    async def new_instance_async(self) -> AsyncProcessGuard:
        """Start an instance without blocking the event loop.

        Waits for a free concurrency permit first. The permit is held until
        the instance's server has been reaped.

        Returns:
            Guard owning the server; aclose() it to stop the server and
            remove its data directory.

        Raises:
            TmpPostgresError: If any step fails.
        """
        self._check_open()
        backend = self._async_backend
        started = time.monotonic()
        with trace_span("tmp_postgres.instance.create", {"mode": backend.mode}) as span:
            try:
                handle, resources = await run_cooperative(self._provision(), backend)
            except BaseException:
                self._metrics.instances_created_total.labels(mode=backend.mode, status="error").inc()
                raise
            span.set_attribute("port", handle.port)
        guard = AsyncProcessGuard(handle, backend, resources, self.socket_dir, self._connection_uri(handle))
        self._record_ready(backend.mode, handle, started)
        return guard

    def _provision(self) -> Steps[tuple[ServerHandle, InstanceResources]]:
        """Steps creating one ready instance.

        Every failure stops and reaps a spawned server before the data
        directory, socket directory reference and permit are released.
        """
        settings = self._config.postgres
        storage = self._config.storage
        permit = yield Call("acquire_permit")
        resources = InstanceResources(permit=permit, metrics=self._metrics)
        handle: ServerHandle | None = None
        try:
            resources.data_dir = create_instance_dir(storage.data_prefix, storage.temp_root)
            data_dir = resources.path

            self._materializer.prepare(data_dir)
            if self._materializer.uses_cp:
                copy = self._materializer.copy_command(data_dir)
                if copy is not None:
                    yield Call("run", (copy,))
            else:
                yield Call("offload", (self._materializer.copy_in_process, data_dir))
            self._materializer.verify(data_dir)

            write_config(data_dir, build_config(self.socket_dir, settings.shared_buffers))

            port = self._ports.allocate()
            postgres = self._locator.find("postgres")
            resources.socket_ref = self._socket_dir.acquire()
            handle = yield Call("spawn", (server_command(postgres, data_dir, port), port, data_dir))

            while True:
                line = yield Call("read_line", (handle,))
                if line is None:
                    raise ServerExitedEarlyError(
                        f"postgres on port {port} exited before accepting connections"
                    )
                logger.debug("server_output", port=port, stream="stderr", line=line)
                if is_ready_line(line):
                    break
            handle.mark_ready()

            createuser = self._locator.client_command("createuser")
            createdb = self._locator.client_command("createdb")
            admin = settings.admin_user
            yield Call("run", (create_role_command(createuser, self.socket_dir, port, admin, DEFAULT_ROLE),))
            yield Call(
                "run",
                (create_database_command(createdb, self.socket_dir, port, admin, DEFAULT_ROLE, DEFAULT_DATABASE),),
            )

            yield Call("supervise", (handle, resources.cleanup))
            resources.running = True
            self._metrics.instances_running.inc()
        except BaseException as e:
            logger.warning("instance_creation_failed", error=str(e), error_type=type(e).__name__)
            reaped = True
            if handle is not None:
                try:
                    yield Call("stop", (handle,))
                except TmpPostgresError as stop_error:
                    reaped = False
                    logger.error("server_stop_failed", pid=handle.pid, error=str(stop_error))
            if reaped:
                resources.cleanup()
            raise

        return handle, resources

    def _connection_uri(self, handle: ServerHandle) -> str:
        return build_connection_uri(handle.port, self.socket_dir, DEFAULT_ROLE, DEFAULT_DATABASE)

    def _record_ready(self, mode: str, handle: ServerHandle, started: float) -> None:
        elapsed = time.monotonic() - started
        self._metrics.instances_created_total.labels(mode=mode, status="success").inc()
        self._metrics.instance_startup_seconds.observe(elapsed)
        logger.info(
            "instance_ready",
            mode=mode,
            pid=handle.pid,
            port=handle.port,
            data_dir=str(handle.data_dir),
            seconds=round(elapsed, 3),
        )

    def _check_open(self) -> None:
        if self._closed:
            raise InstanceStateError("factory is closed")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Remove the template and drop the factory's socket directory reference.

        Instances still running keep the socket directory alive until they
        are closed. Calling close() again has no effect.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._template.cleanup()
        finally:
            self._socket_ref.release()
        logger.info("factory_closed", template=self._template.name)

    def __enter__(self) -> PostgresFactory:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def __aenter__(self) -> PostgresFactory:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
