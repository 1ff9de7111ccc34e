"""Source text templates for generated Python modules."""

from __future__ import annotations

import re
from collections.abc import Sequence

from pgbind.core.types import GeneratedKind, GeneratedType, PreparedQuery, ResultShape
from pgbind.queries.reader import sql_constant_name
from pgbind.queries.sql import to_pyformat

GENERATED_HEADER = "# This file was generated by pgbind. Do not edit."

MAX_LINE = 99


def string_literal(text: str) -> str:
    """Python literal for ``text``, triple-quoted when that stays readable."""
    if '"""' in text or "\\" in text or text.endswith('"') or text.startswith('"'):
        return repr(text)
    if "\n" not in text:
        return f'"{text}"' if '"' not in text else repr(text)
    return f'"""{text}"""'


def variant_names(labels: Sequence[str]) -> list[str]:
    """Enum member names for PostgreSQL enum labels."""
    names: list[str] = []
    for label in labels:
        name = re.sub(r"\W+", "_", label).strip("_").upper() or "EMPTY"
        if name[0].isdigit():
            name = f"V_{name}"
        candidate, n = name, 2
        while candidate in names:
            candidate = f"{name}_{n}"
            n += 1
        names.append(candidate)
    return names


def render_enum(t: GeneratedType) -> str:
    lines = [f"class {t.name}(enum.Enum):"]
    if t.pg_name:
        lines.append(f'    """PostgreSQL enum ``{t.pg_name}``."""')
        lines.append("")
    if not t.variants:
        lines.append("    pass")
    for name, label in zip(variant_names(t.variants), t.variants, strict=True):
        lines.append(f"    {name} = {string_literal(label)}")
    return "\n".join(lines)


def render_struct(t: GeneratedType) -> str:
    lines = ["@dataclasses.dataclass", f"class {t.name}:"]
    if t.pg_name:
        lines.append(f'    """PostgreSQL composite type ``{t.pg_name}``."""')
        lines.append("")
    if not t.fields:
        lines.append("    pass")
    for f in t.fields:
        lines.append(f"    {f.name}: {f.type.annotation}")
    return "\n".join(lines)


def render_definition(t: GeneratedType) -> str:
    if t.kind == GeneratedKind.ENUM:
        return render_enum(t)
    return render_struct(t)


def render_register_types(definitions: Sequence[GeneratedType], is_async: bool) -> str:
    """The ``register_types`` function teaching psycopg the generated classes."""
    conn_type = "psycopg.AsyncConnection" if is_async else "psycopg.Connection"
    prefix = "async def" if is_async else "def"
    fetch = "await " if is_async else ""
    lines = [
        f"{prefix} register_types(conn: {conn_type}[typing.Any]) -> None:",
        '    """Register the database types above with ``conn``.',
        "",
        "    Call once per connection, before using any query binding, so that",
        "    enum and composite values load as the generated classes.",
        '    """',
    ]
    for t in definitions:
        name = string_literal(t.pg_name or t.name)
        if t.kind == GeneratedKind.ENUM:
            lines += [
                f"    info = {fetch}psycopg.types.enum.EnumInfo.fetch(conn, {name})",
                "    psycopg.types.enum.register_enum(",
                f"        _require(info, {name}), conn, {t.name}, "
                f"mapping={{m: m.value for m in {t.name}}}",
                "    )",
            ]
        else:
            lines += [
                f"    info = {fetch}psycopg.types.composite.CompositeInfo.fetch(conn, {name})",
                "    psycopg.types.composite.register_composite("
                f"_require(info, {name}), conn, {t.name})",
            ]
    return "\n".join(lines)


REQUIRE_HELPER = '''\
_Info = typing.TypeVar("_Info")


def _require(info: _Info | None, name: str) -> _Info:
    if info is None:
        raise psycopg.ProgrammingError(f"database type {name!r} not found; run the migrations")
    return info'''


def sql_constant(query: PreparedQuery) -> str:
    return sql_constant_name(query.name)


def render_query(query: PreparedQuery, is_async: bool) -> str:
    """SQL constant plus the binding function for one prepared query."""
    decl = query.declaration
    sql = to_pyformat(decl.sql, [p.name for p in query.params])
    constant = sql_constant(query)

    conn_type = "psycopg.AsyncConnection" if is_async else "psycopg.Connection"
    args = [f"conn: {conn_type}[typing.Any]"]
    args += [f"{p.name}: {p.type.annotation}" for p in query.params]

    row = query.row
    if decl.shape == ResultShape.ONE:
        assert row is not None
        returns = f"{row.name} | None"
        fetch = "fetchone()"
    elif decl.shape == ResultShape.MANY:
        assert row is not None
        returns = f"list[{row.name}]"
        fetch = "fetchall()"
    else:
        returns = "int"
        fetch = None

    prefix = "async def" if is_async else "def"
    aw = "await " if is_async else ""
    signature = f"{prefix} {decl.name}({', '.join(args)}) -> {returns}:"
    if len(signature) > MAX_LINE:
        signature = "\n".join(
            [f"{prefix} {decl.name}(", *(f"    {a}," for a in args), f") -> {returns}:"]
        )

    cursor = "conn.cursor()"
    if row is not None and fetch is not None:
        cursor = f"conn.cursor(row_factory=psycopg.rows.args_row({row.name}))"

    lines = [
        f"{constant} = {string_literal(sql)}",
        "",
        "",
        signature,
        f'    """Run ``{decl.name}`` from the ``{decl.module}`` queries."""',
        f"    {'async ' if is_async else ''}with {cursor} as cur:",
        f"        {aw}cur.execute({constant}, {_params_dict(query)})",
    ]
    if fetch is None:
        lines.append("        return cur.rowcount")
    else:
        lines.append(f"        return {aw}cur.{fetch}")
    return "\n".join(lines)


def _params_dict(query: PreparedQuery) -> str:
    items = []
    for p in query.params:
        value = p.name
        wrapper = p.base.param_wrapper
        if wrapper:
            value = f"{wrapper}({p.name})"
            if p.nullable:
                value = f"None if {p.name} is None else {value}"
        items.append(f'"{p.name}": {value}')
    return "{" + ", ".join(items) + "}"
