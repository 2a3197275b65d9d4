"""Unit tests for PostgresFactory in the blocking model.

The fake executables from conftest stand in for PostgreSQL, so the whole
lifecycle runs: initdb into a template, cp into an instance directory, a
server process reporting readiness, createuser and createdb.
"""

from __future__ import annotations

import gc
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from tmp_postgres.adapters.outbound import PathBinaryLocator
from tmp_postgres.application import PostgresFactory, ProcessGuard
from tmp_postgres.domain.entities import ServerState
from tmp_postgres.infrastructure.config import Config
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.ports.inbound import (
    BinaryNotFoundError,
    CreateDatabaseError,
    CreateRoleError,
    EmptyDataDirectoryError,
    InitDbError,
    InstanceStateError,
    ServerExitedEarlyError,
)


def sample(metrics: MetricsRegistry, name: str, labels: dict[str, str] | None = None) -> float | None:
    return metrics._registry.get_sample_value(name, labels or {})


def entries(root: Path) -> list[Path]:
    return sorted(root.iterdir())


@pytest.mark.unit
class TestFactoryConstruction:
    """Tests for PostgresFactory.create."""

    def test_runs_initdb_once(
        self, factory: PostgresFactory, fake_postgres, metrics_registry: MetricsRegistry
    ) -> None:
        assert fake_postgres.calls("initdb") == ["initdb --username=postgres"]
        assert (factory.template_dir / "PG_VERSION").read_text() == "16\n"
        assert factory.socket_dir.is_dir()
        assert sample(metrics_registry, "tmp_postgres_template_initializations_total", {"status": "success"}) == 1

    def test_directories_under_temp_root(self, factory: PostgresFactory, temp_root: Path) -> None:
        assert factory.template_dir.parent == temp_root
        assert factory.template_dir.name.startswith("tmp-postgres-cache")
        assert factory.socket_dir.parent == temp_root
        assert factory.socket_dir.name.startswith("tmp-postgres-socket")

    def test_close_removes_everything(self, test_config: Config, temp_root: Path) -> None:
        factory = PostgresFactory.create(test_config)
        factory.close()
        factory.close()

        assert factory.closed
        assert entries(temp_root) == []

    def test_context_manager(self, test_config: Config, temp_root: Path) -> None:
        with PostgresFactory.create(test_config) as factory:
            assert factory.template_dir.exists()
        assert entries(temp_root) == []

    def test_initdb_failure_cleans_up(
        self, test_config: Config, fake_postgres, temp_root: Path, metrics_registry: MetricsRegistry
    ) -> None:
        fake_postgres.fail("initdb", "initdb: could not create directory")

        with pytest.raises(InitDbError) as exc_info:
            PostgresFactory.create(test_config, metrics=metrics_registry)

        assert "could not create directory" in exc_info.value.stderr
        assert entries(temp_root) == []
        assert sample(metrics_registry, "tmp_postgres_template_initializations_total", {"status": "error"}) == 1

    def test_initdb_not_found(self, test_config: Config, temp_dir: Path, temp_root: Path) -> None:
        empty = temp_dir / "empty-bin"
        empty.mkdir()
        locator = PathBinaryLocator(bin_dir=empty, patterns=())
        original_which = shutil.which

        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(shutil, "which", lambda name, *a, **kw: None if name == "initdb" else original_which(name))
            with pytest.raises(BinaryNotFoundError):
                PostgresFactory.create(test_config, locator=locator)

        assert entries(temp_root) == []


@pytest.mark.unit
class TestNewInstance:
    """Tests for PostgresFactory.new_instance."""

    def test_instance_is_ready(self, factory: PostgresFactory, fake_postgres) -> None:
        with factory.new_instance() as guard:
            assert isinstance(guard, ProcessGuard)
            assert guard.state == ServerState.READY
            assert guard.port == 15432
            assert guard.socket_directory == factory.socket_dir
            assert guard.connection_string == (
                f"postgresql://demo@localhost:15432/demo?host={factory.socket_dir}"
            )
            assert fake_postgres.calls("createuser") == [
                f"createuser -h {factory.socket_dir} -p 15432 -U postgres --superuser --echo demo"
            ]
            assert fake_postgres.calls("createdb") == [
                f"createdb -h {factory.socket_dir} -p 15432 -U postgres -O demo --echo demo"
            ]

    def test_data_directory_contents(self, factory: PostgresFactory) -> None:
        with factory.new_instance() as guard:
            data_dir = guard.data_directory
            assert data_dir.name.startswith("tmp-postgres-db")
            assert (data_dir / "PG_VERSION").read_text() == "16\n"
            assert (data_dir / "base" / "1" / "1259").read_text() == "relation\n"
            assert (data_dir / "postgresql.conf").read_text() == (
                "shared_buffers = '12MB'\n"
                "listen_addresses = ''\n"
                f"unix_socket_directories = '{factory.socket_dir}'\n"
            )
        # The template itself is never modified.
        assert (factory.template_dir / "postgresql.conf").read_text() == "# default configuration\n"

    def test_ports_strictly_increase(self, factory: PostgresFactory) -> None:
        first = factory.new_instance()
        second = factory.new_instance()
        try:
            assert (first.port, second.port) == (15432, 15433)
            assert first.data_directory != second.data_directory
            assert factory.next_port == 15434
        finally:
            first.close()
            second.close()

        with factory.new_instance() as third:
            assert third.port == 15434

    def test_close_reaps_and_removes(self, factory: PostgresFactory, metrics_registry: MetricsRegistry) -> None:
        guard = factory.new_instance()
        data_dir = guard.data_directory
        assert sample(metrics_registry, "tmp_postgres_instances_running") == 1

        guard.close()

        assert guard.closed
        assert guard.state == ServerState.STOPPED
        assert guard.handle.returncode == 0
        assert not data_dir.exists()
        assert factory.socket_dir.exists()
        assert sample(metrics_registry, "tmp_postgres_instances_running") == 0
        assert sample(
            metrics_registry, "tmp_postgres_instances_created_total", {"mode": "blocking", "status": "success"}
        ) == 1

        guard.close()

    def test_garbage_collected_guard_is_stopped(self, factory: PostgresFactory) -> None:
        guard = factory.new_instance()
        data_dir = guard.data_directory
        handle = guard.handle

        del guard
        gc.collect()

        assert handle.state == ServerState.STOPPED
        assert not data_dir.exists()

    def test_live_instance_outlives_factory(self, test_config: Config, temp_root: Path) -> None:
        factory = PostgresFactory.create(test_config)
        guard = factory.new_instance()
        socket_dir = factory.socket_dir

        factory.close()
        assert not factory.template_dir.exists()
        assert socket_dir.exists()
        assert guard.state == ServerState.READY

        guard.close()
        assert entries(temp_root) == []

    def test_closed_factory(self, test_config: Config) -> None:
        factory = PostgresFactory.create(test_config)
        factory.close()

        with pytest.raises(InstanceStateError):
            factory.new_instance()

    def test_concurrent_threads(self, factory: PostgresFactory) -> None:
        with ThreadPoolExecutor(max_workers=4) as pool:
            guards = list(pool.map(lambda _: factory.new_instance(), range(4)))
        try:
            assert sorted(g.port for g in guards) == [15432, 15433, 15434, 15435]
            assert len({g.data_directory for g in guards}) == 4
        finally:
            for g in guards:
                g.close()

    def test_in_process_copy_without_cp(self, test_config: Config, monkeypatch: pytest.MonkeyPatch) -> None:
        original_which = shutil.which
        monkeypatch.setattr(shutil, "which", lambda name, *a, **kw: None if name == "cp" else original_which(name))

        with PostgresFactory.create(test_config) as factory:
            with factory.new_instance() as guard:
                assert (guard.data_directory / "global" / "pg_control").read_text() == "control\n"


@pytest.mark.unit
class TestNewInstanceFailures:
    """Failed creations release everything they allocated."""

    def assert_only_factory_dirs(self, factory: PostgresFactory, temp_root: Path) -> None:
        assert entries(temp_root) == sorted([factory.template_dir, factory.socket_dir])

    def test_server_exits_before_ready(
        self, factory: PostgresFactory, fake_postgres, temp_root: Path, metrics_registry: MetricsRegistry
    ) -> None:
        fake_postgres.write("postgres", "#!/bin/sh\necho 'FATAL:  lock file exists' >&2\nexit 1\n")

        with pytest.raises(ServerExitedEarlyError):
            factory.new_instance()

        self.assert_only_factory_dirs(factory, temp_root)
        assert fake_postgres.calls("createuser") == []
        assert sample(
            metrics_registry, "tmp_postgres_instances_created_total", {"mode": "blocking", "status": "error"}
        ) == 1

    def test_create_role_failure(self, factory: PostgresFactory, fake_postgres, temp_root: Path) -> None:
        fake_postgres.fail("createuser", "createuser: error: role exists")

        with pytest.raises(CreateRoleError) as exc_info:
            factory.new_instance()

        assert "role exists" in exc_info.value.stderr
        self.assert_only_factory_dirs(factory, temp_root)

    def test_create_database_failure(self, factory: PostgresFactory, fake_postgres, temp_root: Path) -> None:
        fake_postgres.fail("createdb", "createdb: error: database creation failed")

        with pytest.raises(CreateDatabaseError):
            factory.new_instance()

        self.assert_only_factory_dirs(factory, temp_root)

    def test_missing_version_marker(self, test_config: Config, fake_postgres, temp_root: Path) -> None:
        fake_postgres.write("initdb", '#!/bin/sh\nmkdir -p "$PGDATA"\necho "# conf" > "$PGDATA/postgresql.conf"\n')

        with PostgresFactory.create(test_config) as factory:
            with pytest.raises(EmptyDataDirectoryError):
                factory.new_instance()
            self.assert_only_factory_dirs(factory, temp_root)
            assert fake_postgres.calls("postgres") == []

    def test_failure_does_not_affect_factory(self, factory: PostgresFactory, fake_postgres) -> None:
        fake_postgres.fail("createdb")
        with pytest.raises(CreateDatabaseError):
            factory.new_instance()

        fake_postgres.write("createdb", "#!/bin/sh\nexit 0\n")
        with factory.new_instance() as guard:
            assert guard.state == ServerState.READY
            # The failed attempt consumed a port; ports are never reused.
            assert guard.port == 15433

    def test_error_inside_block_still_tears_down(self, factory: PostgresFactory) -> None:
        with pytest.raises(ZeroDivisionError):
            with factory.new_instance() as guard:
                handle = guard.handle
                data_dir = guard.data_directory
                1 / 0

        assert handle.returncode is not None
        assert handle.state == ServerState.STOPPED
        assert not data_dir.exists()
