"""Custom exceptions for pgbind.

Every error names the offending file, statement or type so the fix is
obvious: add an override, add a mapping, fix a migration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class PgBindError(Exception):
    """Base exception for all pgbind errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict for machine consumption."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class FileSystemError(PgBindError):
    """A query or migration path could not be read."""

    def __init__(self, path: str | Path, reason: str) -> None:
        message = f"Cannot read '{path}': {reason}"
        super().__init__(message, {"path": str(path), "reason": reason})
        self.path = str(path)
        self.reason = reason


class ParseError(PgBindError):
    """Malformed annotation or SQL statement boundary."""

    def __init__(self, file: str | Path, statement: str | None, reason: str) -> None:
        if statement:
            message = f"{file}: in statement '{statement}': {reason}"
        else:
            message = f"{file}: {reason}"
        super().__init__(
            message, {"file": str(file), "statement": statement, "reason": reason}
        )
        self.file = str(file)
        self.statement = statement
        self.reason = reason


class DatabaseError(PgBindError):
    """Connection, prepare or migration failure."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to connect to the database."""

    pass


class MigrationError(DatabaseError):
    """A migration file failed to apply."""

    def __init__(self, file: str | Path, reason: str) -> None:
        message = (
            f"Migration '{Path(file).name}' failed: {reason}. "
            "Fix the migration; files applied before it were kept."
        )
        super().__init__(message, {"file": str(file), "reason": reason})
        self.file = str(file)
        self.reason = reason


class PrepareError(DatabaseError):
    """A query could not be prepared against the migrated schema."""

    def __init__(self, module: str, query: str, reason: str) -> None:
        message = f"Query '{module}.{query}' could not be prepared: {reason}"
        super().__init__(message, {"module": module, "query": query, "reason": reason})
        self.module = module
        self.query = query
        self.reason = reason


class TypeResolutionError(PgBindError):
    """A database type has no Python mapping, or resolution recursed too deep."""

    def __init__(self, type_name: str, reason: str | None = None) -> None:
        reason = reason or "no Python mapping exists for this type"
        message = (
            f"Cannot resolve database type '{type_name}': {reason}. "
            "Cast the value to a supported type or add a parameter override."
        )
        super().__init__(message, {"type_name": type_name, "reason": reason})
        self.type_name = type_name
        self.reason = reason


class ProvisioningError(PgBindError):
    """The ephemeral database container could not be started or removed."""

    pass


class ReadinessTimeoutError(ProvisioningError):
    """The container did not accept connections within the allowed time."""

    def __init__(self, container: str, timeout: float) -> None:
        message = (
            f"Container '{container}' was not ready after {timeout:.1f}s. "
            "Check the container runtime logs or raise PGBIND_READY_TIMEOUT."
        )
        super().__init__(message, {"container": container, "timeout": timeout})
        self.container = container
        self.timeout = timeout


class WriteError(PgBindError):
    """Generated code could not be written to its destination."""

    def __init__(self, path: str | Path, reason: str) -> None:
        message = f"Cannot write generated code to '{path}': {reason}"
        super().__init__(message, {"path": str(path), "reason": reason})
        self.path = str(path)
        self.reason = reason
