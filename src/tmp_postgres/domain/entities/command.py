"""External command entity."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from tmp_postgres.ports.inbound import CommandFailedError


@dataclass(frozen=True)
class Command:
    """An external command to run once.

    Attributes:
        program: Executable name or path.
        args: Arguments after the program.
        env: Variables added to the inherited environment.
        failure: Error raised when the command exits unsuccessfully.
        label: Short name used in logs and metrics.
    """
    program: str | Path
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    failure: type[CommandFailedError] = CommandFailedError
    label: str = ""

    @property
    def argv(self) -> list[str]:
        return [str(self.program), *self.args]

    @property
    def name(self) -> str:
        return self.label or Path(self.program).name

    def environment(self) -> dict[str, str]:
        """Inherited environment overlaid with this command's variables."""
        return {**os.environ, **self.env}

    def describe(self) -> str:
        """Shell-like rendering for error messages."""
        assignments = [f"{key}={shlex.quote(value)}" for key, value in self.env.items()]
        return " ".join([*assignments, *(shlex.quote(part) for part in self.argv)])
