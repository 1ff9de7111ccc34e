"""Configuration for pgbind.

Settings come from explicit arguments first, then ``PGBIND_*`` environment
variables, then defaults.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, Field

from pgbind.core.connection import build_url

DATABASE_URL_ENV = "PGBIND_DATABASE_URL"


class ContainerRuntime(StrEnum):
    """Container runtimes able to host the ephemeral database."""

    DOCKER = "docker"
    PODMAN = "podman"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid runtime values."""
        return [r.value for r in cls]


class ProvisionerSettings(BaseModel):
    """Settings for the ephemeral PostgreSQL container."""

    image: str = Field(default="docker.io/library/postgres:latest", description="Image to run")
    container_name: str = Field(default="pgbind_postgres", description="Container name")
    host: str = Field(default="127.0.0.1", description="Host the port is published on")
    port: int = Field(default=5435, description="Host port mapped to the container's 5432")
    user: str = "postgres"
    password: str = "postgres"
    database: str = "postgres"
    ready_timeout: float = Field(default=60.0, gt=0, description="Seconds to wait for readiness")
    poll_interval: float = Field(default=0.25, gt=0, description="First readiness poll delay")
    max_poll_interval: float = Field(default=2.0, gt=0, description="Backoff ceiling")
    backoff: float = Field(default=1.5, ge=1.0, description="Poll delay growth factor")

    model_config = {"frozen": True}

    @property
    def url(self) -> str:
        """Connection URL of the ephemeral database."""
        return build_url(self.user, self.password, self.host, self.port, self.database)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ProvisionerSettings:
        """Build settings, reading overrides from ``PGBIND_*`` variables."""
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for var, key in (
            ("PGBIND_IMAGE", "image"),
            ("PGBIND_CONTAINER_NAME", "container_name"),
            ("PGBIND_PORT", "port"),
            ("PGBIND_READY_TIMEOUT", "ready_timeout"),
        ):
            if value := env.get(var):
                values[key] = value
        return cls.model_validate(values)


def get_database_url(url: str | None) -> str | None:
    """Resolve a database URL from a CLI argument or the environment.

    Priority:
    1. Explicit URL argument
    2. PGBIND_DATABASE_URL environment variable
    """
    if url:
        return url
    return os.getenv(DATABASE_URL_ENV) or None
