"""Query source reader.

Reads a directory tree of annotated ``.sql`` files into query modules.
Each statement in a file becomes one declaration, in file order. The
comment lines leading a statement may carry annotations::

    -- name: get_author :one
    -- param: id int8
    -- nullable: bio
    -- not_null: name
    select id, name, bio from authors where id = :id;

Column nullability comes from the catalog: a column of a ``NOT NULL`` table
column or ``NOT NULL`` domain is typed as never ``None``. The catalog does
not know about outer joins, so a ``NOT NULL`` column read from the nullable
side of a ``LEFT``/``RIGHT``/``FULL JOIN`` still needs ``-- nullable: col``.
"""

from __future__ import annotations

import keyword
import logging
import re
from pathlib import Path

from pgbind.core.types import ParamOverride, QueryDeclaration, QueryModule, ResultShape
from pgbind.exceptions import FileSystemError, ParseError
from pgbind.queries import sql as sqltext

logger = logging.getLogger(__name__)

# Files of the generated package that query modules may not replace
RESERVED_MODULES = frozenset({"types", "__init__", "__main__"})

# Names generated modules already bind: imported modules, the connection
# and cursor variables of each binding
RESERVED_NAMES = frozenset(
    {
        "conn",
        "cur",
        "dataclasses",
        "datetime",
        "decimal",
        "enum",
        "ipaddress",
        "psycopg",
        "register_types",
        "types",
        "typing",
        "uuid",
    }
)

_ANNOTATION = re.compile(r"^--\s*(name|param|nullable|not_null)\s*:\s*(.*?)\s*$")
_NAME_VALUE = re.compile(r"^(?P<name>[A-Za-z_]\w*)(?:\s+(?P<marker>:\w+))?$")
_PARAM_VALUE = re.compile(r"^(?P<key>\$?\d+|[A-Za-z_]\w*)(?:\s+(?P<override>.+))?$")
_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")


def is_identifier(name: str) -> bool:
    """Whether ``name`` is usable as a Python identifier."""
    return bool(_IDENTIFIER.match(name)) and not keyword.iskeyword(name)


def sql_constant_name(query_name: str) -> str:
    """Module-level name of the SQL text constant generated for a query."""
    return f"{query_name.upper()}_SQL"


def param_position(override: ParamOverride, param_names: list[str] | tuple[str, ...]) -> int:
    """1-based position of the parameter an override applies to."""
    if isinstance(override.key, int):
        return override.key
    return list(param_names).index(override.key) + 1


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def module_name_for(root: Path, path: Path) -> str:
    """Derive a module name from a query file path relative to ``root``."""
    relative = path.relative_to(root).with_suffix("")
    return re.sub(r"\W", "_", "_".join(relative.parts))


def read_query_modules(root: str | Path) -> list[QueryModule]:
    """Read every ``.sql`` file under ``root`` into a query module.

    Files are visited in sorted relative-path order so the result does not
    depend on filesystem listing order.

    Raises:
        FileSystemError: If ``root`` or a file cannot be read
        ParseError: If a file holds a malformed annotation or statement
    """
    root = Path(root)
    if not root.exists():
        raise FileSystemError(root, "directory does not exist")
    if not root.is_dir():
        raise FileSystemError(root, "not a directory")

    try:
        paths = sorted(root.rglob("*.sql"), key=lambda p: p.relative_to(root).as_posix())
    except OSError as e:
        raise FileSystemError(root, str(e)) from e

    modules: list[QueryModule] = []
    seen: dict[str, Path] = {}
    for path in paths:
        if not path.is_file():
            continue
        name = module_name_for(root, path)
        if not is_identifier(name) or name in RESERVED_MODULES or _is_dunder(name):
            raise ParseError(path, None, f"'{name}' is not a usable module name; rename the file")
        if name in seen:
            raise ParseError(path, None, f"module name '{name}' collides with {seen[name]}")
        seen[name] = path
        modules.append(read_query_file(path, name))

    logger.debug(f"Read {len(modules)} query module(s) from {root}")
    return modules


def read_query_file(path: str | Path, module: str | None = None) -> QueryModule:
    """Read one query file into a module named after the file by default."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileSystemError(path, str(e)) from e
    return parse_query_module(text, path, module or path.stem)


def parse_query_module(text: str, path: Path, module: str) -> QueryModule:
    """Parse query file text into a module, preserving statement order."""
    try:
        chunks = sqltext.split_statements(text)
    except sqltext.SqlScanError as e:
        raise ParseError(path, f"line {sqltext.line_of(text, e.offset)}", e.reason) from e

    queries: list[QueryDeclaration] = []
    # Every name a query binds in the generated module: function and SQL constant
    bound: dict[str, str] = {}
    for chunk in chunks:
        query = _parse_statement(chunk, text, path, module, len(queries) + 1)
        if query is None:
            continue
        if query.name in {q.name for q in queries}:
            raise ParseError(path, query.name, "duplicate query name in this file")
        for name in (query.name, sql_constant_name(query.name)):
            if name in bound:
                raise ParseError(
                    path,
                    query.name,
                    f"generated name '{name}' collides with query '{bound[name]}'; rename one",
                )
        bound[query.name] = query.name
        bound[sql_constant_name(query.name)] = query.name
        queries.append(query)

    return QueryModule(name=module, path=path, queries=tuple(queries))


def _parse_statement(
    chunk: sqltext.Chunk, text: str, path: Path, module: str, index: int
) -> QueryDeclaration | None:
    annotations: list[tuple[str, str, int]] = []
    lines = chunk.text.split("\n")
    offset = chunk.offset
    body_start = len(lines)
    for i, raw in enumerate(lines):
        stripped = raw.strip()
        if stripped and not stripped.startswith("--"):
            body_start = i
            break
        match = _ANNOTATION.match(stripped)
        if match:
            annotations.append((match.group(1), match.group(2), sqltext.line_of(text, offset)))
        offset += len(raw) + 1

    body = "\n".join(lines[body_start:]).strip()
    line = sqltext.line_of(text, offset)
    if not body:
        if annotations:
            key, value, at = annotations[0]
            raise ParseError(path, f"line {at}", f"annotation '{key}: {value}' has no statement")
        return None

    name = f"query_{index}"
    shape = ResultShape.NONE
    statement = f"line {line}"
    named = [a for a in annotations if a[0] == "name"]
    if len(named) > 1:
        raise ParseError(path, statement, "more than one 'name' annotation")
    if named:
        name, shape = _parse_name(named[0][1], path, statement)
        statement = name

    param_names, sql = _parse_placeholders(body, path, statement)
    overrides: dict[int, ParamOverride] = {}
    nullability: dict[str, bool] = {}
    for key, value, _ in annotations:
        if key == "param":
            override = _parse_param(value, param_names, path, statement)
            position = param_position(override, param_names)
            if position in overrides:
                raise ParseError(path, statement, f"parameter '{value}' overridden twice")
            overrides[position] = override
        elif key in ("nullable", "not_null"):
            forced = key == "nullable"
            for column in (c.strip() for c in value.split(",")):
                if not column:
                    raise ParseError(path, statement, f"empty column in '{key}: {value}'")
                if nullability.get(column, forced) != forced:
                    raise ParseError(
                        path, statement, f"column '{column}' marked both nullable and not_null"
                    )
                nullability[column] = forced

    return QueryDeclaration(
        name=name,
        module=module,
        file=path,
        line=line,
        sql=sql,
        param_names=tuple(param_names),
        param_overrides=tuple(overrides.values()),
        nullability=nullability,
        shape=shape,
    )


def _parse_name(value: str, path: Path, statement: str) -> tuple[str, ResultShape]:
    match = _NAME_VALUE.match(value)
    if not match:
        raise ParseError(path, statement, f"malformed name annotation '{value}'")
    name = match.group("name")
    if not is_identifier(name) or name in RESERVED_NAMES:
        raise ParseError(path, statement, f"query name '{name}' is not usable")
    marker = match.group("marker") or ":exec"
    if marker not in ResultShape.markers():
        raise ParseError(
            path,
            name,
            f"unknown result marker '{marker}'. Valid markers: {', '.join(ResultShape.markers())}",
        )
    return name, ResultShape.from_marker(marker)


def _parse_placeholders(body: str, path: Path, statement: str) -> tuple[list[str], str]:
    try:
        positional = sqltext.positional_placeholders(body)
        named = sqltext.named_placeholders(body)
    except sqltext.SqlScanError as e:
        raise ParseError(path, statement, e.reason) from e

    if positional and named:
        raise ParseError(path, statement, "mixes $n and :name placeholders; use one style")
    if named:
        sql, names = sqltext.named_to_positional(body)
        for name in names:
            if not is_identifier(name) or name in RESERVED_NAMES:
                raise ParseError(path, statement, f"parameter name '{name}' is not usable")
        return names, sql
    count = max(positional, default=0)
    return [f"arg{i}" for i in range(1, count + 1)], body


def _parse_param(
    value: str, param_names: list[str], path: Path, statement: str
) -> ParamOverride:
    match = _PARAM_VALUE.match(value)
    if not match:
        raise ParseError(path, statement, f"malformed param annotation '{value}'")

    raw_key = match.group("key")
    key: int | str
    if raw_key.lstrip("$").isdigit():
        key = int(raw_key.lstrip("$"))
        if not 1 <= key <= len(param_names):
            raise ParseError(
                path, statement, f"parameter ${key} does not exist ({len(param_names)} parameters)"
            )
    else:
        key = raw_key
        if key not in param_names:
            available = ", ".join(param_names) or "none"
            raise ParseError(
                path, statement, f"unknown parameter '{key}'. Available parameters: {available}"
            )

    override = (match.group("override") or "").strip()
    nullable = override.endswith("?")
    type_name = override.rstrip("?").strip() or None
    if not override:
        raise ParseError(path, statement, f"param annotation '{value}' overrides nothing")
    return ParamOverride(key=key, type_name=type_name, nullable=nullable)
