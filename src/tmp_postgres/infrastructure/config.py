"""Configuration management for temporary PostgreSQL instances."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PostgresConfig(BaseModel):
    """PostgreSQL server configuration."""

    bin_dir: Path | None = Field(
        default=None, description="Directory holding initdb/postgres (searched when unset)"
    )
    admin_user: str = Field(default="postgres", description="Role created by initdb")
    shared_buffers: str = Field(default="12MB", description="Shared buffers per instance")
    base_port: int = Field(default=5432, ge=1, le=65535, description="First port handed out")
    max_concurrent_processes: int = Field(
        default=8, ge=1, description="Running servers allowed per event loop (async only)"
    )


class StorageConfig(BaseModel):
    """Temporary directory configuration."""

    temp_root: Path | None = Field(
        default=None, description="Parent of all temporary directories (system default if unset)"
    )
    socket_prefix: str = Field(default="tmp-postgres-socket", description="Socket dir prefix")
    cache_prefix: str = Field(default="tmp-postgres-cache", description="Template dir prefix")
    data_prefix: str = Field(default="tmp-postgres-db", description="Instance dir prefix")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="console", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="tmp_postgres", description="Service name for tracing")
    metrics_port: int | None = Field(
        default=None, ge=1, le=65535, description="Serve Prometheus metrics on this port"
    )


class Config(BaseSettings):
    """Main configuration for tmp_postgres."""

    model_config = SettingsConfigDict(
        env_prefix="TMP_POSTGRES_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    def ensure_directories(self) -> None:
        """Ensure the temporary root exists when one is configured."""
        if self.storage.temp_root is not None:
            self.storage.temp_root.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    config = Config()
    config.ensure_directories()
    return config
