"""Readiness detection from server log output."""

from __future__ import annotations

from tmp_postgres.domain.value_objects import READY_MARKER


def is_ready_line(line: str) -> bool:
    """Check whether a stderr line announces the server accepts connections."""
    return READY_MARKER in line
