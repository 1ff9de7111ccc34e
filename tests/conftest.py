"""Shared test fixtures for pgbind."""

import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from pgbind.exceptions import DatabaseError
from pgbind.introspect.catalog import (
    AttributeRow,
    ColumnDescription,
    StatementDescription,
    TypeRow,
)
from pgbind.queries import parse_query_module

# pg_catalog scalar and array OIDs used by the fake catalog
BUILTIN_TYPES = {
    16: ("bool", "b", "B", 0),
    20: ("int8", "b", "N", 0),
    21: ("int2", "b", "N", 0),
    23: ("int4", "b", "N", 0),
    25: ("text", "b", "S", 0),
    114: ("json", "b", "U", 0),
    142: ("xml", "b", "U", 0),
    700: ("float4", "b", "N", 0),
    701: ("float8", "b", "N", 0),
    1043: ("varchar", "b", "S", 0),
    1082: ("date", "b", "D", 0),
    1184: ("timestamptz", "b", "D", 0),
    1700: ("numeric", "b", "N", 0),
    2950: ("uuid", "b", "U", 0),
    3802: ("jsonb", "b", "U", 0),
    3904: ("int4range", "r", "R", 0),
    1007: ("_int4", "b", "A", 23),
    1009: ("_text", "b", "A", 25),
}


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


class FakeCatalog:
    """In-memory stand-in for a migrated database's catalog."""

    def __init__(self) -> None:
        self.types: dict[int, TypeRow] = {}
        self.enums: dict[int, list[str]] = {}
        self.relations: dict[int, list[AttributeRow]] = {}
        self.names: dict[str, int] = {}
        self.statements: dict[str, StatementDescription] = {}
        self.described: list[tuple[str, list[int]]] = []
        self._next_oid = 16384
        for oid, (name, typtype, category, element) in BUILTIN_TYPES.items():
            self.types[oid] = TypeRow(
                oid=oid,
                name=name,
                schema="pg_catalog",
                typtype=typtype,
                category=category,
                element_oid=element,
            )
            self.names[name] = oid
        for alias, name in (("integer", "int4"), ("bigint", "int8"), ("boolean", "bool")):
            self.names[alias] = self.names[name]

    def _oid(self) -> int:
        self._next_oid += 1
        return self._next_oid

    def add_enum(self, name: str, labels: list[str], schema: str = "public") -> int:
        oid = self._oid()
        self.types[oid] = TypeRow(oid=oid, name=name, schema=schema, typtype="e", category="E")
        self.enums[oid] = labels
        self.names[name] = oid
        return oid

    def add_domain(self, name: str, base: int, not_null: bool = False) -> int:
        oid = self._oid()
        self.types[oid] = TypeRow(
            oid=oid,
            name=name,
            schema="public",
            typtype="d",
            category=self.types[base].category,
            base_oid=base,
            not_null=not_null,
        )
        self.names[name] = oid
        return oid

    def add_array(self, element: int) -> int:
        oid = self._oid()
        element_row = self.types[element]
        self.types[oid] = TypeRow(
            oid=oid,
            name=f"_{element_row.name}",
            schema=element_row.schema,
            typtype="b",
            category="A",
            element_oid=element,
        )
        return oid

    def add_table(self, name: str, columns: list[tuple[str, int, bool]]) -> int:
        """Add a table (or composite type) and return its relation oid."""
        relid = self._oid()
        self.relations[relid] = [AttributeRow(n, t, nn) for n, t, nn in columns]
        return relid

    def add_composite(self, name: str, fields: list[tuple[str, int, bool]]) -> int:
        relid = self.add_table(name, fields)
        oid = self._oid()
        self.types[oid] = TypeRow(
            oid=oid, name=name, schema="public", typtype="c", category="C", relid=relid
        )
        self.names[name] = oid
        return oid

    def statement(
        self,
        sql: str,
        params: Sequence[int] = (),
        columns: Sequence[ColumnDescription] = (),
    ) -> None:
        self.statements[_normalize(sql)] = StatementDescription(tuple(params), tuple(columns))

    # === Catalog protocol ===

    def describe(self, sql: str, param_oids: Sequence[int]) -> StatementDescription:
        self.described.append((sql, list(param_oids)))
        desc = self.statements.get(_normalize(sql))
        if desc is None:
            raise DatabaseError(f'relation "{sql.split()[-1]}" does not exist')
        params = list(desc.param_oids)
        for i, oid in enumerate(param_oids):
            if oid:
                if i < len(params):
                    params[i] = oid
                else:
                    params.append(oid)
        return StatementDescription(tuple(params), desc.columns)

    def lookup_type(self, oid: int) -> TypeRow | None:
        return self.types.get(oid)

    def enum_labels(self, oid: int) -> list[str]:
        return list(self.enums[oid])

    def composite_fields(self, relid: int) -> list[AttributeRow]:
        return list(self.relations[relid])

    def column_info(self, table_oid: int, column_number: int) -> AttributeRow | None:
        columns = self.relations.get(table_oid, [])
        if 1 <= column_number <= len(columns):
            return columns[column_number - 1]
        return None

    def type_oid(self, type_name: str) -> int | None:
        return self.names.get(type_name)


def column(name: str, type_oid: int, table_oid: int = 0, number: int = 0) -> ColumnDescription:
    return ColumnDescription(
        name=name, type_oid=type_oid, table_oid=table_oid, column_number=number
    )


def module_from(text: str, name: str = "queries"):
    """Parse query file text as if read from ``<name>.sql``."""
    return parse_query_module(text, Path(f"{name}.sql"), name)


@pytest.fixture
def catalog() -> FakeCatalog:
    """Fake catalog with the pg_catalog scalars."""
    return FakeCatalog()


@pytest.fixture
def example_catalog() -> FakeCatalog:
    """Catalog after ``create type my_enum as enum ('a', 'b')`` and
    ``create table t (id int primary key, label text, tag my_enum)``."""
    fake = FakeCatalog()
    enum_oid = fake.add_enum("my_enum", ["a", "b"])
    table = fake.add_table("t", [("id", 23, True), ("label", 25, False), ("tag", enum_oid, False)])
    fake.statement(
        "select id, label, tag from t where id = $1",
        params=[23],
        columns=[
            column("id", 23, table, 1),
            column("label", 25, table, 2),
            column("tag", enum_oid, table, 3),
        ],
    )
    return fake


class FakeRuntime:
    """Records container runtime invocations and answers them from a script."""

    def __init__(self, ready_after: int = 0, fail: set[str] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.ready_after = ready_after
        self.fail = fail or set()
        self.probes = 0

    def __call__(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        args = list(args)
        self.calls.append(args)
        verb = args[1]
        if verb in self.fail:
            return subprocess.CompletedProcess(args, 1, "", f"{verb} failed")
        if verb == "exec":
            self.probes += 1
            ok = self.probes > self.ready_after
            return subprocess.CompletedProcess(args, 0 if ok else 2, "", "")
        if verb == "run":
            return subprocess.CompletedProcess(args, 0, "abc123\n", "")
        return subprocess.CompletedProcess(args, 0, "", "")

    def verbs(self) -> list[str]:
        return [call[1] for call in self.calls]


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    try:
        from pgbind.core.connection import DatabaseConnection

        conn = DatabaseConnection(url)
        result = conn.test_connection()
        conn.close()
        return result
    except Exception:
        return False


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from TEST_DATABASE_URL, skipping when unreachable.

    The database is used as a scratch schema: tests create and drop their
    own objects in it.
    """
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")

    if not _psycopg_available():
        pytest.skip("psycopg not installed")

    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")

    return url
