"""Live type introspection against a migrated database."""

from pgbind.introspect.catalog import (
    AttributeRow,
    Catalog,
    ColumnDescription,
    LiveCatalog,
    StatementDescription,
    TypeRow,
)
from pgbind.introspect.prepare import prepare_modules, prepare_query

__all__ = [
    "AttributeRow",
    "Catalog",
    "ColumnDescription",
    "LiveCatalog",
    "StatementDescription",
    "TypeRow",
    "prepare_modules",
    "prepare_query",
]
