"""pytest fixtures providing disposable PostgreSQL instances.

Loaded automatically through the ``pytest11`` entry point once tmp-postgres
is installed:

    def test_query(postgres_url):
        conn = psycopg2.connect(postgres_url)

The factory is shared by the whole session so initdb runs once; every test
requesting an instance gets its own server and data directory.
"""

from __future__ import annotations

from typing import Generator

import pytest

from tmp_postgres.application import PostgresFactory, ProcessGuard


@pytest.fixture(scope="session")
def postgres_factory() -> Generator[PostgresFactory, None, None]:
    """Session-wide factory configured from TMP_POSTGRES_* variables."""
    factory = PostgresFactory.create()
    yield factory
    factory.close()


@pytest.fixture
def postgres_instance(postgres_factory: PostgresFactory) -> Generator[ProcessGuard, None, None]:
    """A running instance, stopped and removed after the test."""
    with postgres_factory.new_instance() as guard:
        yield guard


@pytest.fixture
def postgres_url(postgres_instance: ProcessGuard) -> str:
    """Connection URI of postgres_instance."""
    return postgres_instance.connection_string
