"""Schema migrations for pgbind."""

from pgbind.schema.migrations import (
    apply_migrations,
    new_migration,
    read_migrations,
    run_migrations,
)

__all__ = [
    "apply_migrations",
    "new_migration",
    "read_migrations",
    "run_migrations",
]
