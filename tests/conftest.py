"""Pytest configuration and fixtures for tmp_postgres tests."""

from __future__ import annotations

import stat
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from tmp_postgres.application import PostgresFactory
from tmp_postgres.infrastructure.config import Config, PostgresConfig, StorageConfig
from tmp_postgres.infrastructure.container import Container
from tmp_postgres.infrastructure.metrics import MetricsRegistry

FAKE_INITDB = """\
#!/bin/sh
echo "initdb $*" >> "$(dirname "$0")/calls.log"
mkdir -p "$PGDATA/base/1" "$PGDATA/global"
chmod 700 "$PGDATA"
echo 16 > "$PGDATA/PG_VERSION"
echo "# default configuration" > "$PGDATA/postgresql.conf"
echo "relation" > "$PGDATA/base/1/1259"
echo "control" > "$PGDATA/global/pg_control"
echo "Success. You can now start the database server."
"""

FAKE_POSTGRES = """\
#!/bin/sh
trap 'exit 0' INT
echo "postgres $*" >> "$(dirname "$0")/calls.log"
echo "LOG:  starting PostgreSQL 16 (fake)" >&2
echo "LOG:  listening on Unix socket" >&2
echo "LOG:  database system is ready to accept connections" >&2
while :; do sleep 0.05 </dev/null >/dev/null 2>&1; done
"""

FAKE_CLIENT = """\
#!/bin/sh
echo "$(basename "$0") $*" >> "$(dirname "$0")/calls.log"
echo "SELECT 1;"
"""


class FakePostgres:
    """A bin directory of shell scripts standing in for PostgreSQL tools."""

    def __init__(self, bin_dir: Path) -> None:
        self.bin_dir = bin_dir
        bin_dir.mkdir(parents=True, exist_ok=True)
        self.write("initdb", FAKE_INITDB)
        self.write("postgres", FAKE_POSTGRES)
        self.write("createuser", FAKE_CLIENT)
        self.write("createdb", FAKE_CLIENT)

    def write(self, name: str, script: str) -> Path:
        path = self.bin_dir / name
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    def fail(self, name: str, message: str = "boom", status: int = 1) -> Path:
        """Replace name with a script that prints message and exits status."""
        return self.write(name, f'#!/bin/sh\necho "{message}" >&2\nexit {status}\n')

    def calls(self, name: str | None = None) -> list[str]:
        log = self.bin_dir / "calls.log"
        if not log.exists():
            return []
        lines = log.read_text().splitlines()
        if name is None:
            return lines
        return [line for line in lines if line.split(" ", 1)[0] == name]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_postgres(temp_dir: Path) -> FakePostgres:
    """Scripted initdb/postgres/createuser/createdb executables."""
    return FakePostgres(temp_dir / "bin")


@pytest.fixture
def temp_root(temp_dir: Path) -> Path:
    """Parent directory of every directory a factory creates."""
    root = temp_dir / "tmp"
    root.mkdir()
    return root


@pytest.fixture
def test_config(fake_postgres: FakePostgres, temp_root: Path) -> Config:
    """Provide a test configuration pointing at the fake executables."""
    return Config(
        postgres=PostgresConfig(
            bin_dir=fake_postgres.bin_dir,
            base_port=15432,
            max_concurrent_processes=8,
        ),
        storage=StorageConfig(temp_root=temp_root),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def factory(test_config: Config, metrics_registry: MetricsRegistry) -> Generator[PostgresFactory, None, None]:
    """A factory whose template was built by the fake initdb."""
    f = PostgresFactory.create(test_config, metrics=metrics_registry)
    yield f
    f.close()


@pytest.fixture
def container() -> Generator[Container, None, None]:
    """Provide a fresh DI container for each test."""
    Container.reset()
    yield Container.get()
    Container.reset()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
