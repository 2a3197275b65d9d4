"""Filesystem lookup of PostgreSQL executables.

Distributions install the server tools outside PATH (Debian keeps them in
/usr/lib/postgresql/<major>/bin, RHEL in /usr/pgsql-<major>/bin), so after
an explicitly configured directory and PATH the well-known prefixes are
globbed, newest major version first.
"""

from __future__ import annotations

import glob
import os
import re
import shutil
from pathlib import Path

from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.ports.inbound import BinaryNotFoundError

logger = get_logger(__name__)

SEARCH_PATTERNS = (
    "/usr/lib/postgresql/*/bin",
    "/usr/pgsql-*/bin",
    "/usr/local/pgsql/bin",
    "/usr/local/opt/postgresql*/bin",
    "/opt/homebrew/opt/postgresql*/bin",
    "/Applications/Postgres.app/Contents/Versions/*/bin",
)


def _version_key(path: str) -> tuple[int, ...]:
    """Sort key ordering directories by the version numbers they contain."""
    return tuple(int(part) for part in re.findall(r"\d+", path))


class PathBinaryLocator:
    """Finds executables in bin_dir, on PATH, then in known install prefixes."""

    def __init__(
        self,
        bin_dir: Path | None = None,
        patterns: tuple[str, ...] = SEARCH_PATTERNS,
    ) -> None:
        """Initialize the locator.

        Args:
            bin_dir: Directory searched first, and the only source of client
                tools when set.
            patterns: Glob patterns of candidate bin directories.
        """
        self._bin_dir = bin_dir
        self._patterns = patterns
        self._cache: dict[str, Path] = {}

    def candidates(self) -> list[Path]:
        """Known-prefix directories that exist, newest version first."""
        found: list[str] = []
        for pattern in self._patterns:
            found.extend(glob.glob(pattern))
        return [Path(p) for p in sorted(set(found), key=_version_key, reverse=True)]

    def find(self, name: str) -> Path:
        """Locate a server-side executable.

        Args:
            name: Executable name, e.g. "initdb".

        Returns:
            Absolute path of the executable.

        Raises:
            BinaryNotFoundError: If no candidate location has it.
        """
        if name in self._cache:
            return self._cache[name]

        searched: list[str] = []

        if self._bin_dir is not None:
            candidate = self._bin_dir / name
            searched.append(str(self._bin_dir))
            if os.access(candidate, os.X_OK):
                return self._remember(name, candidate)

        on_path = shutil.which(name)
        searched.append("PATH")
        if on_path is not None:
            return self._remember(name, Path(on_path))

        for directory in self.candidates():
            candidate = directory / name
            searched.append(str(directory))
            if os.access(candidate, os.X_OK):
                return self._remember(name, candidate)

        raise BinaryNotFoundError(name, searched)

    def client_command(self, name: str) -> str | Path:
        """Client tools come from bin_dir when set, otherwise from PATH."""
        if self._bin_dir is not None:
            return self._bin_dir / name
        return name

    def _remember(self, name: str, path: Path) -> Path:
        logger.debug("binary_located", name=name, path=str(path))
        self._cache[name] = path
        return path
