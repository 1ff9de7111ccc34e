"""The generate pipeline: read, (provision, migrate,) introspect, generate.

Two workflows share everything after the connection is established:

- transient: start an ephemeral container, apply the migrations, generate,
  and always remove the container again;
- live: generate against a database the caller already runs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from pgbind.codegen import generate
from pgbind.config import ContainerRuntime, ProvisionerSettings
from pgbind.container import Provisioner, ephemeral_database
from pgbind.core.connection import DatabaseConnection
from pgbind.core.types import MigrationFile, QueryModule
from pgbind.introspect import LiveCatalog, prepare_modules
from pgbind.queries import read_query_modules
from pgbind.registrar import TypeRegistrar
from pgbind.schema import run_migrations

logger = logging.getLogger(__name__)


def introspect_and_generate(
    db: DatabaseConnection,
    modules: Sequence[QueryModule],
    destination: str | Path,
    is_async: bool = True,
) -> list[Path]:
    """Prepare every query on ``db`` and write the generated package.

    A new registrar is created for each call; nothing carries over between runs.
    """
    registrar = TypeRegistrar()
    with db.connect() as conn:
        prepared = prepare_modules(LiveCatalog(conn), registrar, modules)
    return generate(registrar, prepared, destination, is_async)


def generate_live(
    url: str,
    queries_path: str | Path,
    destination: str | Path,
    is_async: bool = True,
    echo: bool = False,
) -> list[Path]:
    """Generate against an existing database; no container, no migrations."""
    modules = read_query_modules(queries_path)
    db = DatabaseConnection(url, echo=echo)
    logger.info(f"Generating against {db.url}")
    try:
        return introspect_and_generate(db, modules, destination, is_async)
    finally:
        db.close()


def generate_transient(
    migrations_path: str | Path,
    queries_path: str | Path,
    destination: str | Path,
    is_async: bool = True,
    runtime: ContainerRuntime = ContainerRuntime.DOCKER,
    settings: ProvisionerSettings | None = None,
    provisioner: Provisioner | None = None,
    echo: bool = False,
) -> list[Path]:
    """Generate against a freshly provisioned, migrated ephemeral database.

    Queries are read before the container starts so that syntax errors fail
    fast. The container is removed on every exit path once it was started.
    """
    modules = read_query_modules(queries_path)
    with ephemeral_database(runtime, settings, provisioner) as url:
        db = DatabaseConnection(url, echo=echo)
        try:
            run_migrations(db, migrations_path)
            return introspect_and_generate(db, modules, destination, is_async)
        finally:
            db.close()


def migrate(url: str, migrations_path: str | Path, echo: bool = False) -> list[MigrationFile]:
    """Apply every migration in ``migrations_path`` to the database at ``url``."""
    db = DatabaseConnection(url, echo=echo)
    try:
        return run_migrations(db, migrations_path)
    finally:
        db.close()
