"""Fixed mapping from PostgreSQL scalar types to Python types.

Annotations are written module-qualified so generated code only needs
plain ``import`` lines and never clashes with generated class names.
"""

from __future__ import annotations

from typing import NamedTuple


class ScalarMapping(NamedTuple):
    annotation: str
    imports: tuple[str, ...] = ()
    param_wrapper: str | None = None


_DATETIME = ("import datetime",)
_IPADDRESS = ("import ipaddress",)
_JSON = ("import typing", "import psycopg.types.json")

SCALAR_TYPES: dict[str, ScalarMapping] = {
    "bool": ScalarMapping("bool"),
    "int2": ScalarMapping("int"),
    "int4": ScalarMapping("int"),
    "int8": ScalarMapping("int"),
    "oid": ScalarMapping("int"),
    "float4": ScalarMapping("float"),
    "float8": ScalarMapping("float"),
    "numeric": ScalarMapping("decimal.Decimal", ("import decimal",)),
    "money": ScalarMapping("str"),
    "text": ScalarMapping("str"),
    "varchar": ScalarMapping("str"),
    "bpchar": ScalarMapping("str"),
    "char": ScalarMapping("str"),
    "name": ScalarMapping("str"),
    "citext": ScalarMapping("str"),
    "xml": ScalarMapping("str"),
    "macaddr": ScalarMapping("str"),
    "macaddr8": ScalarMapping("str"),
    "bytea": ScalarMapping("bytes"),
    "date": ScalarMapping("datetime.date", _DATETIME),
    "time": ScalarMapping("datetime.time", _DATETIME),
    "timetz": ScalarMapping("datetime.time", _DATETIME),
    "timestamp": ScalarMapping("datetime.datetime", _DATETIME),
    "timestamptz": ScalarMapping("datetime.datetime", _DATETIME),
    "interval": ScalarMapping("datetime.timedelta", _DATETIME),
    "uuid": ScalarMapping("uuid.UUID", ("import uuid",)),
    "inet": ScalarMapping("ipaddress.IPv4Interface | ipaddress.IPv6Interface", _IPADDRESS),
    "cidr": ScalarMapping("ipaddress.IPv4Network | ipaddress.IPv6Network", _IPADDRESS),
    "json": ScalarMapping("typing.Any", _JSON, "psycopg.types.json.Json"),
    "jsonb": ScalarMapping("typing.Any", _JSON, "psycopg.types.json.Jsonb"),
}

# Scalars that live outside pg_catalog but are still mapped by name
EXTENSION_TYPES = frozenset({"citext"})


def scalar_mapping(schema: str, name: str) -> ScalarMapping | None:
    """Look up the Python mapping for a scalar type, or None if unmapped."""
    if schema != "pg_catalog" and name not in EXTENSION_TYPES:
        return None
    return SCALAR_TYPES.get(name)
