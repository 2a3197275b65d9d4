"""Unit tests for command outcome classification."""

from __future__ import annotations

import pytest

from tmp_postgres.domain.entities import Command
from tmp_postgres.domain.services import classify_result, decode_output, is_ready_line
from tmp_postgres.infrastructure.metrics import MetricsRegistry
from tmp_postgres.ports.inbound import CreateRoleError, OutputDecodeError


def counter_value(metrics: MetricsRegistry, command: str, status: str) -> float:
    return metrics._registry.get_sample_value(
        "tmp_postgres_commands_total", {"command": command, "status": status}
    )


@pytest.mark.unit
class TestClassifyResult:
    """Tests for classify_result."""

    def test_success_returns_stdout(self, metrics_registry: MetricsRegistry) -> None:
        command = Command(program="createuser", failure=CreateRoleError)

        out = classify_result(command, 0, b"CREATE ROLE demo\n", b"", metrics_registry)

        assert out == "CREATE ROLE demo\n"
        assert counter_value(metrics_registry, "createuser", "success") == 1

    def test_failure_raises_classified_error(self, metrics_registry: MetricsRegistry) -> None:
        command = Command(program="createuser", args=("demo",), failure=CreateRoleError)

        with pytest.raises(CreateRoleError) as exc_info:
            classify_result(command, 1, b"partial\n", b"role exists\n", metrics_registry)

        error = exc_info.value
        assert error.returncode == 1
        assert error.stdout == "partial\n"
        assert error.stderr == "role exists\n"
        assert error.command == "createuser demo"
        assert "role exists" in str(error)
        assert counter_value(metrics_registry, "createuser", "error") == 1

    def test_invalid_utf8(self) -> None:
        command = Command(program="initdb")
        with pytest.raises(OutputDecodeError):
            classify_result(command, 0, b"\xff\xfe", b"")

    def test_invalid_utf8_on_failure(self) -> None:
        command = Command(program="initdb")
        with pytest.raises(OutputDecodeError):
            classify_result(command, 1, b"", b"\xc3\x28")


@pytest.mark.unit
class TestDecodeOutput:
    """Tests for decode_output."""

    def test_empty(self) -> None:
        assert decode_output("x", b"") == ""
        assert decode_output("x", None) == ""

    def test_utf8(self) -> None:
        assert decode_output("x", "données".encode()) == "données"


@pytest.mark.unit
class TestReadiness:
    """Tests for readiness detection."""

    def test_ready_line(self) -> None:
        line = "2024-01-01 00:00:00.000 UTC [1] LOG:  database system is ready to accept connections"
        assert is_ready_line(line)

    def test_other_lines(self) -> None:
        assert not is_ready_line("LOG:  database system was shut down at 2024-01-01")
        assert not is_ready_line("")
