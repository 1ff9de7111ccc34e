"""Schema migrations for the database pgbind generates against.

Migrations are plain ``<unix-timestamp>_<name>.sql`` files applied in
ascending timestamp order, one transaction per file. No ledger of applied
migrations is kept: every run applies every file, so migrations must be
idempotent or the target database disposable.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psycopg

from pgbind.core.types import MigrationFile
from pgbind.exceptions import FileSystemError, MigrationError, ParseError

if TYPE_CHECKING:
    from pgbind.core.connection import DatabaseConnection

logger = logging.getLogger(__name__)

MIGRATION_FILENAME = re.compile(r"^(?P<timestamp>\d+)_(?P<name>\w+)\.sql$")
MIGRATION_TEMPLATE = "-- Write your migration SQL here\n"


def read_migrations(directory: str | Path) -> list[MigrationFile]:
    """Read all migration files in ``directory``, sorted by timestamp.

    Raises:
        FileSystemError: If the directory or a file cannot be read
        ParseError: If a ``.sql`` file does not follow the naming scheme
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileSystemError(directory, "migrations directory does not exist")

    migrations = []
    try:
        paths = [p for p in directory.iterdir() if p.suffix == ".sql" and p.is_file()]
    except OSError as e:
        raise FileSystemError(directory, str(e)) from e

    for path in paths:
        match = MIGRATION_FILENAME.match(path.name)
        if not match:
            raise ParseError(
                path, None, "migration files must be named <unix-timestamp>_<name>.sql"
            )
        try:
            sql = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileSystemError(path, str(e)) from e
        migrations.append(
            MigrationFile(
                timestamp=int(match.group("timestamp")),
                name=match.group("name"),
                path=path,
                sql=sql,
            )
        )

    return sorted(migrations, key=lambda m: m.sort_key)


def apply_migrations(conn: Any, migrations: Sequence[MigrationFile]) -> list[MigrationFile]:
    """Apply migrations in order on a psycopg connection.

    Each file runs in its own transaction. The first failure stops the run;
    files applied before it stay committed.

    Returns the list of applied migrations.
    """
    applied: list[MigrationFile] = []
    for migration in migrations:
        logger.info(f"Applying migration {migration.path.name}")
        try:
            with conn.transaction():
                conn.execute(migration.sql)
        except psycopg.Error as e:
            logger.error(f"Migration {migration.path.name} failed: {e}")
            raise MigrationError(migration.path, str(e).strip()) from e
        applied.append(migration)

    logger.info(f"Applied {len(applied)} migration(s)")
    return applied


def run_migrations(db: DatabaseConnection, directory: str | Path) -> list[MigrationFile]:
    """Read and apply every migration in ``directory`` against ``db``."""
    migrations = read_migrations(directory)
    with db.connect() as conn:
        return apply_migrations(db.driver_connection(conn), migrations)


def new_migration(directory: str | Path, name: str, now: datetime | None = None) -> Path:
    """Write an empty migration file named after the current unix timestamp.

    Raises:
        ParseError: If ``name`` is not made of word characters
        FileSystemError: If the file exists or cannot be written
    """
    if not re.fullmatch(r"\w+", name):
        raise ParseError(name, None, "migration names may only contain letters, digits and _")

    timestamp = int((now or datetime.now(UTC)).timestamp())
    path = Path(directory) / f"{timestamp}_{name}.sql"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("x", encoding="utf-8") as f:
            f.write(MIGRATION_TEMPLATE)
    except FileExistsError as e:
        raise FileSystemError(path, "migration file already exists") from e
    except OSError as e:
        raise FileSystemError(path, str(e)) from e

    logger.info(f"Created migration {path}")
    return path
