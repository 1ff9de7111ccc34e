"""Code generator: renders prepared queries into a Python package.

Output layout under the destination directory::

    __init__.py     imports every generated module
    types.py        enums and composites from the database, register_types()
    <module>.py     row dataclasses and one binding per query

Rendering is a pure function of the registrar and the prepared modules, so
unchanged input yields byte-identical files.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from pgbind.codegen.render import (
    GENERATED_HEADER,
    REQUIRE_HELPER,
    render_definition,
    render_query,
    render_register_types,
)
from pgbind.core.types import GeneratedType, PreparedModule
from pgbind.exceptions import WriteError
from pgbind.registrar import TypeRegistrar

logger = logging.getLogger(__name__)

TYPES_MODULE = "types"


def topological_order(types: Iterable[GeneratedType]) -> list[GeneratedType]:
    """Order definitions so each comes after the definitions it refers to.

    Ties keep the input order. A type that refers back to itself (directly
    or through a cycle) is emitted once; generated modules use postponed
    annotations, so forward references are fine.
    """
    ordered: list[GeneratedType] = []
    done: set[int] = set()
    visiting: set[int] = set()

    def visit(t: GeneratedType) -> None:
        if id(t) in done or id(t) in visiting:
            return
        visiting.add(id(t))
        for dep in t.dependencies():
            visit(dep)
        visiting.discard(id(t))
        done.add(id(t))
        ordered.append(t)

    for t in types:
        visit(t)
    return ordered


def _referenced(types: Iterable[GeneratedType]) -> list[GeneratedType]:
    """Definitions spelled by the given annotations, in first-use order."""
    found: list[GeneratedType] = []
    for t in types:
        targets = [t] if t.is_definition else t.dependencies()
        for target in targets:
            if target not in found:
                found.append(target)
    return found


def _imports(types: Iterable[GeneratedType]) -> set[str]:
    lines: set[str] = set()
    for t in types:
        lines |= t.all_imports()
    return lines


def _module_file(parts: Sequence[str]) -> str:
    return "\n\n\n".join(p for p in parts if p) + "\n"


def render_types_module(registrar: TypeRegistrar, is_async: bool) -> str:
    """Render ``types.py``: every catalog-backed definition of the run."""
    definitions = topological_order(registrar.definitions)
    imports = {
        "import dataclasses",
        "import enum",
        "import typing",
        "import psycopg",
        "import psycopg.types.composite",
        "import psycopg.types.enum",
    }
    imports |= _imports(f.type for t in definitions for f in t.fields)
    header = "\n".join(
        [
            GENERATED_HEADER,
            '"""Database enum and composite types."""',
            "",
            "from __future__ import annotations",
            "",
            *_sorted_imports(imports),
        ]
    )
    return _module_file(
        [
            header,
            *(render_definition(t) for t in definitions),
            render_register_types(definitions, is_async),
            REQUIRE_HELPER,
        ]
    )


def row_owners(modules: Sequence[PreparedModule]) -> dict[int, str]:
    """Map each row type to the first module that uses it.

    The owning module defines the dataclass; later modules import it, so a
    shape shared across query files is still one Python class.
    """
    owners: dict[int, str] = {}
    for module in modules:
        for query in module.queries:
            if query.row is not None:
                owners.setdefault(id(query.row), module.name)
    return owners


def render_query_module(
    module: PreparedModule, is_async: bool, owners: dict[int, str] | None = None
) -> str:
    """Render one ``<module>.py``: its row dataclasses, then its bindings."""
    owners = owners or {}
    rows: list[GeneratedType] = []
    for query in module.queries:
        if query.row is not None and query.row not in rows:
            rows.append(query.row)
    local_rows = [r for r in rows if owners.get(id(r), module.name) == module.name]
    borrowed: dict[str, list[str]] = {}
    for row in rows:
        owner = owners.get(id(row), module.name)
        if owner != module.name:
            borrowed.setdefault(owner, []).append(row.name)

    annotations = [p.type for q in module.queries for p in q.params]
    for row in local_rows:
        annotations += [f.type for f in row.fields]
    shared = [t for t in _referenced(annotations) if not t.is_row]

    imports = {"import typing", "import psycopg"}
    if local_rows:
        imports.add("import dataclasses")
    if rows:
        imports.add("import psycopg.rows")
    imports |= _imports(annotations)

    header_lines = [
        GENERATED_HEADER,
        f'"""Bindings for the ``{module.name}`` queries."""',
        "",
        "from __future__ import annotations",
        "",
        *_sorted_imports(imports),
    ]
    relative = []
    for owner in sorted(borrowed):
        relative.append(f"from .{owner} import {', '.join(sorted(borrowed[owner]))}")
    if shared:
        names = sorted(t.name for t in shared)
        relative.append(f"from .{TYPES_MODULE} import {', '.join(names)}")
    if relative:
        header_lines += ["", *relative]

    return _module_file(
        [
            "\n".join(header_lines),
            *(render_definition(row) for row in local_rows),
            *(render_query(q, is_async) for q in module.queries),
        ]
    )


def render_init_module(modules: Sequence[PreparedModule]) -> str:
    names = sorted([TYPES_MODULE, *(m.name for m in modules)])
    exported = ", ".join(f'"{n}"' for n in names)
    return (
        f"{GENERATED_HEADER}\n"
        '"""Generated database bindings."""\n'
        "\n"
        f"from . import {', '.join(names)}\n"
        "\n"
        f"__all__ = [{exported}]\n"
    )


def render_package(
    registrar: TypeRegistrar, modules: Sequence[PreparedModule], is_async: bool
) -> dict[str, str]:
    """Render every file of the generated package, keyed by file name."""
    files = {
        "__init__.py": render_init_module(modules),
        f"{TYPES_MODULE}.py": render_types_module(registrar, is_async),
    }
    owners = row_owners(modules)
    for module in modules:
        files[f"{module.name}.py"] = render_query_module(module, is_async, owners)
    return files


def write_package(files: dict[str, str], destination: str | Path) -> list[Path]:
    """Write rendered files, removing generated files that are no longer produced.

    Files whose content is already up to date are left untouched. Every
    rendered file is returned, written or not.

    Raises:
        WriteError: If the destination cannot be created or written
    """
    destination = Path(destination)
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(destination, str(e)) from e

    written = []
    for name in sorted(files):
        path = destination / name
        content = files[name].encode("utf-8")
        try:
            if path.is_file() and path.read_bytes() == content:
                logger.debug(f"Unchanged {path}")
            else:
                path.write_bytes(content)
        except OSError as e:
            raise WriteError(path, str(e)) from e
        written.append(path)

    for stale in sorted(destination.glob("*.py")):
        if stale.name in files or not _is_generated(stale):
            continue
        logger.info(f"Removing stale generated module {stale}")
        try:
            stale.unlink()
        except OSError as e:
            raise WriteError(stale, str(e)) from e

    return written


def generate(
    registrar: TypeRegistrar,
    modules: Sequence[PreparedModule],
    destination: str | Path,
    is_async: bool = True,
) -> list[Path]:
    """Render and write the generated package for one run."""
    files = render_package(registrar, modules, is_async)
    written = write_package(files, destination)
    logger.info(f"Generated {len(written)} file(s) in {destination}")
    return written


def _sorted_imports(lines: Iterable[str]) -> list[str]:
    # Standard library first, then psycopg, each group alphabetical
    lines = sorted(set(lines))
    stdlib = [line for line in lines if not line.startswith("import psycopg")]
    third_party = [line for line in lines if line.startswith("import psycopg")]
    if stdlib and third_party:
        return [*stdlib, "", *third_party]
    return stdlib or third_party


def _is_generated(path: Path) -> bool:
    try:
        with path.open(encoding="utf-8") as f:
            return f.readline().rstrip("\n") == GENERATED_HEADER
    except (OSError, UnicodeDecodeError):
        return False
