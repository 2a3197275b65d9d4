"""postgresql.conf generation for disposable instances."""

from __future__ import annotations

from pathlib import Path

from tmp_postgres.domain.value_objects import CONFIG_FILENAME
from tmp_postgres.ports.inbound import ConfigWriteError

DEFAULT_SHARED_BUFFERS = "12MB"


def build_config(socket_dir: Path, shared_buffers: str = DEFAULT_SHARED_BUFFERS) -> str:
    """Build the configuration text for one instance.

    TCP is disabled and the server listens only on a UNIX socket in
    socket_dir. Shared buffers are kept small so many instances fit in
    the host's shared memory limits.
    """
    lines = [
        f"shared_buffers = '{shared_buffers}'",
        "listen_addresses = ''",
        f"unix_socket_directories = '{socket_dir}'",
    ]
    return "\n".join(lines) + "\n"


def write_config(data_dir: Path, config: str) -> Path:
    """Replace the data directory's postgresql.conf with config.

    Raises:
        ConfigWriteError: If the file cannot be written.
    """
    path = data_dir / CONFIG_FILENAME
    try:
        path.write_text(config, encoding="utf-8")
    except OSError as e:
        raise ConfigWriteError(f"failed to write {path}: {e}") from e
    return path
