"""Command lines for the PostgreSQL tools used by a factory."""

from __future__ import annotations

from pathlib import Path

from tmp_postgres.domain.entities import Command
from tmp_postgres.domain.value_objects import Port
from tmp_postgres.ports.inbound import CreateDatabaseError, CreateRoleError, InitDbError


def initdb_command(initdb: Path, data_dir: Path, admin_user: str) -> Command:
    """initdb creating an empty cluster owned by admin_user in data_dir."""
    return Command(
        program=initdb,
        args=(f"--username={admin_user}",),
        env={"PGDATA": str(data_dir)},
        failure=InitDbError,
        label="initdb",
    )


def server_command(postgres: Path, data_dir: Path, port: Port) -> Command:
    """The postmaster for data_dir listening on port."""
    return Command(
        program=postgres,
        args=("-p", str(port)),
        env={"PGDATA": str(data_dir)},
        label="postgres",
    )


def create_role_command(
    createuser: str | Path,
    socket_dir: Path,
    port: Port,
    admin_user: str,
    role: str,
) -> Command:
    """createuser making role a superuser."""
    return Command(
        program=createuser,
        args=(
            "-h", str(socket_dir),
            "-p", str(port),
            "-U", admin_user,
            "--superuser",
            "--echo",
            role,
        ),
        failure=CreateRoleError,
        label="createuser",
    )


def create_database_command(
    createdb: str | Path,
    socket_dir: Path,
    port: Port,
    admin_user: str,
    owner: str,
    database: str,
) -> Command:
    """createdb making database owned by owner."""
    return Command(
        program=createdb,
        args=(
            "-h", str(socket_dir),
            "-p", str(port),
            "-U", admin_user,
            "-O", owner,
            "--echo",
            database,
        ),
        failure=CreateDatabaseError,
        label="createdb",
    )
