"""PostgreSQL catalog access for type introspection.

:class:`LiveCatalog` prepares statements through libpq (psycopg's ``pq``
layer) to learn their parameter and column types without executing them,
and answers ``pg_type`` / ``pg_attribute`` / ``pg_enum`` lookups through
SQLAlchemy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from psycopg import pq
from sqlalchemy import Connection, CursorResult, TextClause, text
from sqlalchemy.exc import SQLAlchemyError

from pgbind.exceptions import DatabaseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnDescription:
    """One result column as reported by the server."""

    name: str
    type_oid: int
    table_oid: int = 0
    column_number: int = 0


@dataclass(frozen=True)
class StatementDescription:
    param_oids: tuple[int, ...]
    columns: tuple[ColumnDescription, ...]


@dataclass(frozen=True)
class TypeRow:
    """The ``pg_type`` facts pgbind needs about one type."""

    oid: int
    name: str
    schema: str
    typtype: str  # b=base, c=composite, d=domain, e=enum, p=pseudo, r=range, m=multirange
    category: str
    base_oid: int = 0
    not_null: bool = False
    element_oid: int = 0
    relid: int = 0


@dataclass(frozen=True)
class AttributeRow:
    """A table column or composite attribute."""

    name: str
    type_oid: int
    not_null: bool


class Catalog(Protocol):
    """What the introspector needs from a live database."""

    def describe(self, sql: str, param_oids: Sequence[int]) -> StatementDescription: ...

    def lookup_type(self, oid: int) -> TypeRow | None: ...

    def enum_labels(self, oid: int) -> list[str]: ...

    def composite_fields(self, relid: int) -> list[AttributeRow]: ...

    def column_info(self, table_oid: int, column_number: int) -> AttributeRow | None: ...

    def type_oid(self, type_name: str) -> int | None: ...


TYPE_QUERY = text(
    """
    SELECT t.oid, t.typname, n.nspname, t.typtype, t.typcategory,
           t.typbasetype, t.typnotnull, t.typelem, t.typrelid
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    WHERE t.oid = :oid
    """
)

ENUM_QUERY = text(
    """
    SELECT enumlabel FROM pg_catalog.pg_enum
    WHERE enumtypid = :oid
    ORDER BY enumsortorder
    """
)

ATTRIBUTES_QUERY = text(
    """
    SELECT attname, atttypid, attnotnull FROM pg_catalog.pg_attribute
    WHERE attrelid = :relid AND attnum > 0 AND NOT attisdropped
    ORDER BY attnum
    """
)

COLUMN_QUERY = text(
    """
    SELECT attname, atttypid, attnotnull FROM pg_catalog.pg_attribute
    WHERE attrelid = :relid AND attnum = :attnum AND NOT attisdropped
    """
)

REGTYPE_QUERY = text("SELECT to_regtype(:name)::oid")

# The unnamed prepared statement, replaced by each describe
_STATEMENT = b""


class LiveCatalog:
    """Catalog backed by a SQLAlchemy connection using the psycopg driver."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._driver = conn.connection.driver_connection

    def describe(self, sql: str, param_oids: Sequence[int]) -> StatementDescription:
        """Prepare ``sql`` server-side and describe it; it is never executed.

        Raises:
            DatabaseError: With the server's message if the statement is invalid
        """
        logger.debug(f"Describing statement ({len(param_oids)} declared parameter types)")
        pgconn = self._driver.pgconn
        encoding = self._driver.info.encoding
        result = pgconn.prepare(_STATEMENT, sql.encode(encoding), list(param_oids) or None)
        self._check(result, encoding)
        desc = pgconn.describe_prepared(_STATEMENT)
        self._check(desc, encoding)

        params = tuple(desc.param_type(i) for i in range(desc.nparams))
        columns = tuple(
            ColumnDescription(
                name=(desc.fname(i) or b"").decode(encoding),
                type_oid=desc.ftype(i),
                table_oid=desc.ftable(i),
                column_number=desc.ftablecol(i),
            )
            for i in range(desc.nfields)
        )
        return StatementDescription(param_oids=params, columns=columns)

    def lookup_type(self, oid: int) -> TypeRow | None:
        row = self._fetch(TYPE_QUERY, {"oid": oid}).first()
        if row is None:
            return None
        return TypeRow(
            oid=row[0],
            name=row[1],
            schema=row[2],
            typtype=row[3],
            category=row[4],
            base_oid=row[5],
            not_null=row[6],
            element_oid=row[7],
            relid=row[8],
        )

    def enum_labels(self, oid: int) -> list[str]:
        return [row[0] for row in self._fetch(ENUM_QUERY, {"oid": oid})]

    def composite_fields(self, relid: int) -> list[AttributeRow]:
        return [
            AttributeRow(name=row[0], type_oid=row[1], not_null=row[2])
            for row in self._fetch(ATTRIBUTES_QUERY, {"relid": relid})
        ]

    def column_info(self, table_oid: int, column_number: int) -> AttributeRow | None:
        row = self._fetch(COLUMN_QUERY, {"relid": table_oid, "attnum": column_number}).first()
        if row is None:
            return None
        return AttributeRow(name=row[0], type_oid=row[1], not_null=row[2])

    def type_oid(self, type_name: str) -> int | None:
        return self._fetch(REGTYPE_QUERY, {"name": type_name}).scalar()

    def _fetch(self, query: TextClause, params: dict[str, Any]) -> CursorResult[Any]:
        try:
            return self._conn.execute(query, params)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Catalog lookup failed: {e}") from e

    @staticmethod
    def _check(result: Any, encoding: str) -> None:
        if result.status != pq.ExecStatus.COMMAND_OK:
            message = result.error_message.decode(encoding, "replace").strip()
            raise DatabaseError(message or "prepare failed")
