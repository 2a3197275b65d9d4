"""Domain services."""

from tmp_postgres.domain.services.commands import (
    create_database_command,
    create_role_command,
    initdb_command,
    server_command,
)
from tmp_postgres.domain.services.config_emitter import build_config, write_config
from tmp_postgres.domain.services.materializer import InstanceMaterializer, create_instance_dir
from tmp_postgres.domain.services.port_counter import PortCounter
from tmp_postgres.domain.services.process_runner import classify_result, decode_output
from tmp_postgres.domain.services.readiness import is_ready_line
from tmp_postgres.domain.services.shared_directory import DirectoryRef, SharedDirectory

__all__ = [
    "initdb_command",
    "server_command",
    "create_role_command",
    "create_database_command",
    "build_config",
    "write_config",
    "InstanceMaterializer",
    "create_instance_dir",
    "PortCounter",
    "classify_result",
    "decode_output",
    "is_ready_line",
    "DirectoryRef",
    "SharedDirectory",
]
