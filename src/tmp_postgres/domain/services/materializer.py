"""Template materialization into per-instance data directories.

A template is a data directory produced by initdb that is never started.
Every instance gets its own copy:

1. The destination root takes the template root's permission bits
   (postgres refuses to start on group/world accessible directories).
2. All top-level entries are copied with cp, preferring copy-on-write
   (--reflink=auto on Linux, -c on macOS). cp falls back to a full copy
   itself when the filesystem cannot share extents.
3. Without a cp executable the copy is done in-process.
4. The copy must contain PG_VERSION before anything is started on it.

Partial copies are left for the owner of the destination to remove.
"""

from __future__ import annotations

import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

from tmp_postgres.domain.entities import Command
from tmp_postgres.domain.value_objects import VERSION_MARKER
from tmp_postgres.ports.inbound import (
    CopyError,
    CopyTemplateError,
    DirectoryCreationError,
    EmptyDataDirectoryError,
    TemplateNotFoundError,
)


def create_instance_dir(
    prefix: str,
    root: Path | None = None,
    purpose: str = "data",
) -> tempfile.TemporaryDirectory:
    """Create a fresh, empty, private instance directory.

    Raises:
        DirectoryCreationError: If the directory cannot be created.
    """
    try:
        return tempfile.TemporaryDirectory(prefix=prefix, dir=root)
    except OSError as e:
        raise DirectoryCreationError(purpose, e) from e


class InstanceMaterializer:
    """Copies a template data directory into instance directories."""

    def __init__(self, template: Path, cp: str | None = None) -> None:
        """Initialize the materializer.

        Args:
            template: Root of the initdb output.
            cp: cp executable, looked up on PATH when None.
        """
        self._template = template
        self._cp = cp if cp is not None else shutil.which("cp")

    @property
    def template(self) -> Path:
        return self._template

    @property
    def uses_cp(self) -> bool:
        return self._cp is not None

    def _entries(self) -> list[Path]:
        try:
            return sorted(self._template.iterdir())
        except OSError as e:
            raise TemplateNotFoundError(f"cannot read template {self._template}: {e}") from e

    def prepare(self, destination: Path) -> None:
        """Give destination the template root's permission bits."""
        try:
            mode = stat.S_IMODE(self._template.stat().st_mode)
        except OSError as e:
            raise TemplateNotFoundError(f"cannot stat template {self._template}: {e}") from e
        try:
            os.chmod(destination, mode)
        except OSError as e:
            raise CopyError(f"cannot set permissions on {destination}: {e}") from e

    def copy_command(self, destination: Path) -> Command | None:
        """The cp invocation copying every template entry into destination.

        Returns:
            None when the template is empty (nothing to copy).

        Raises:
            TemplateNotFoundError: If the template cannot be listed.
        """
        entries = self._entries()
        if not entries:
            return None
        reflink = "-c" if sys.platform == "darwin" else "--reflink=auto"
        return Command(
            program=self._cp or "cp",
            args=("-R", reflink, *(str(entry) for entry in entries), str(destination)),
            failure=CopyTemplateError,
            label="cp",
        )

    def copy_in_process(self, destination: Path) -> None:
        """Recursively copy the template without an external cp."""
        for entry in self._entries():
            target = destination / entry.name
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.copytree(entry, target, symlinks=True)
                else:
                    shutil.copy2(entry, target, follow_symlinks=False)
            except OSError as e:
                raise CopyError(f"failed to copy {entry} to {target}: {e}") from e

    @staticmethod
    def verify(destination: Path) -> None:
        """Check destination looks like a data directory.

        Raises:
            EmptyDataDirectoryError: If PG_VERSION is missing.
        """
        if not (destination / VERSION_MARKER).exists():
            raise EmptyDataDirectoryError(f"{destination} has no {VERSION_MARKER} file")
