"""Unit tests for command construction."""

from __future__ import annotations

from pathlib import Path

import pytest

from tmp_postgres.domain.entities import Command
from tmp_postgres.domain.services import (
    create_database_command,
    create_role_command,
    initdb_command,
    server_command,
)
from tmp_postgres.domain.value_objects import Port
from tmp_postgres.ports.inbound import (
    CommandFailedError,
    CreateDatabaseError,
    CreateRoleError,
    InitDbError,
)


@pytest.mark.unit
class TestCommand:
    """Tests for the Command entity."""

    def test_defaults(self) -> None:
        command = Command(program="/usr/bin/true")

        assert command.argv == ["/usr/bin/true"]
        assert command.name == "true"
        assert command.failure is CommandFailedError

    def test_label_overrides_name(self) -> None:
        assert Command(program="/bin/cp", label="copy").name == "copy"

    def test_environment_overlays_inherited(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INHERITED", "yes")
        monkeypatch.setenv("PGDATA", "/old")

        env = Command(program="x", env={"PGDATA": "/new"}).environment()

        assert env["INHERITED"] == "yes"
        assert env["PGDATA"] == "/new"

    def test_describe_quotes(self) -> None:
        command = Command(program="initdb", args=("--username=postgres",), env={"PGDATA": "/a b"})
        assert command.describe() == "PGDATA='/a b' initdb --username=postgres"


@pytest.mark.unit
class TestPostgresCommands:
    """Tests for the PostgreSQL tool invocations."""

    def test_initdb(self) -> None:
        command = initdb_command(Path("/pg/bin/initdb"), Path("/cache"), "postgres")

        assert command.argv == ["/pg/bin/initdb", "--username=postgres"]
        assert command.env == {"PGDATA": "/cache"}
        assert command.failure is InitDbError

    def test_server(self) -> None:
        command = server_command(Path("/pg/bin/postgres"), Path("/data"), Port(5433))

        assert command.argv == ["/pg/bin/postgres", "-p", "5433"]
        assert command.env == {"PGDATA": "/data"}

    def test_create_role(self) -> None:
        command = create_role_command("createuser", Path("/sock"), Port(5433), "postgres", "demo")

        assert command.argv == [
            "createuser", "-h", "/sock", "-p", "5433", "-U", "postgres", "--superuser", "--echo", "demo",
        ]
        assert command.failure is CreateRoleError

    def test_create_database(self) -> None:
        command = create_database_command("createdb", Path("/sock"), Port(5433), "postgres", "demo", "demo")

        assert command.argv == [
            "createdb", "-h", "/sock", "-p", "5433", "-U", "postgres", "-O", "demo", "--echo", "demo",
        ]
        assert command.failure is CreateDatabaseError
