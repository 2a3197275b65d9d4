"""Outcome classification for external commands.

Both scheduling backends launch commands their own way, then hand the raw
exit status and output here so that success and failure are judged
identically:

- exit status 0: stdout is returned, each line logged at debug level
- anything else: the command's classified CommandFailedError is raised

Output must be valid UTF-8. Undecodable output raises OutputDecodeError
rather than being dropped or replaced.
"""

from __future__ import annotations

from tmp_postgres.domain.entities import Command
from tmp_postgres.infrastructure.logging import get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.ports.inbound import OutputDecodeError, ProcessCapture

logger = get_logger(__name__)


def decode_output(description: str, data: bytes | None) -> str:
    """Decode captured output strictly as UTF-8."""
    if not data:
        return ""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise OutputDecodeError(description, e) from e


def classify_result(
    command: Command,
    returncode: int,
    stdout: bytes | None,
    stderr: bytes | None,
    metrics: MetricsRegistry | None = None,
) -> str:
    """Turn a finished command into its stdout or a classified error.

    Args:
        command: The command that ran.
        returncode: Its exit status.
        stdout: Raw captured stdout.
        stderr: Raw captured stderr.
        metrics: Registry to count the outcome in.

    Returns:
        Decoded stdout of a successful command.

    Raises:
        CommandFailedError: Subclass chosen by command.failure.
        OutputDecodeError: If output is not valid UTF-8.
    """
    description = command.describe()
    out = decode_output(description, stdout)
    err = decode_output(description, stderr)

    if returncode == 0:
        if metrics is not None:
            metrics.commands_total.labels(command=command.name, status="success").inc()
        for line in out.splitlines():
            logger.debug("command_output", command=command.name, line=line)
        return out

    if metrics is not None:
        metrics.commands_total.labels(command=command.name, status="error").inc()
    logger.warning(
        "command_failed",
        command=command.name,
        returncode=returncode,
        stderr=err.strip(),
    )
    raise command.failure(description, ProcessCapture(stdout=out, stderr=err), returncode)
