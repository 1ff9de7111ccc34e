"""Core components: connection management and shared types."""

from pgbind.core.connection import DatabaseConnection
from pgbind.core.types import (
    GeneratedKind,
    GeneratedType,
    MigrationFile,
    PreparedModule,
    PreparedQuery,
    QueryDeclaration,
    QueryModule,
    ResultShape,
    TypeIdentity,
    TypeKind,
)

__all__ = [
    "DatabaseConnection",
    "GeneratedKind",
    "GeneratedType",
    "MigrationFile",
    "PreparedModule",
    "PreparedQuery",
    "QueryDeclaration",
    "QueryModule",
    "ResultShape",
    "TypeIdentity",
    "TypeKind",
]
