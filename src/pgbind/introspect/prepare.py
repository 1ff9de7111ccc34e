"""Live type introspection of query declarations.

Each declaration is prepared against the migrated database to learn its
parameter and column types. Unseen types are resolved through the catalog
and registered before the next query is looked at. Annotation overrides
are applied last, after the engine-reported defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pgbind.core.types import (
    PreparedModule,
    PreparedParam,
    PreparedQuery,
    QueryDeclaration,
    QueryModule,
    ResultShape,
)
from pgbind.exceptions import DatabaseError, ParseError, PrepareError, TypeResolutionError
from pgbind.introspect.catalog import Catalog, ColumnDescription
from pgbind.queries.reader import param_position
from pgbind.registrar import RowField, TypeRegistrar, field_name

logger = logging.getLogger(__name__)


def prepare_modules(
    catalog: Catalog, registrar: TypeRegistrar, modules: Sequence[QueryModule]
) -> list[PreparedModule]:
    """Introspect every query of every module, in source order.

    Raises:
        PrepareError: If a query is invalid against the migrated schema
        TypeResolutionError: If a reported type has no Python mapping
        ParseError: If an annotation names a column the query does not return
    """
    registrar.reserve_names(q.name for m in modules for q in m.queries)
    prepared = []
    for module in modules:
        queries = tuple(prepare_query(catalog, registrar, q) for q in module.queries)
        prepared.append(PreparedModule(name=module.name, queries=queries))
        logger.info(f"Prepared module {module.name} ({len(queries)} queries)")
    return prepared


def prepare_query(
    catalog: Catalog, registrar: TypeRegistrar, query: QueryDeclaration
) -> PreparedQuery:
    """Prepare one declaration and resolve its parameter and row types."""
    logger.debug(f"Preparing {query.module}.{query.name}")
    param_oids = _override_oids(catalog, query)
    try:
        description = catalog.describe(query.sql, param_oids)
    except DatabaseError as e:
        raise PrepareError(query.module, query.name, e.message) from e

    params = _prepare_params(catalog, registrar, query, description.param_oids)

    columns = description.columns
    if query.shape != ResultShape.NONE and not columns:
        raise PrepareError(
            query.module,
            query.name,
            f"marked :{query.shape} but returns no columns; use :exec or add a RETURNING clause",
        )

    row = None
    if query.shape != ResultShape.NONE:
        fields = _prepare_columns(catalog, registrar, query, columns)
        row = registrar.register_row_shape(fields, query.name, query.module)
    elif query.nullability:
        raise ParseError(
            query.file, query.name, "nullability overrides need a :one or :many query"
        )

    return PreparedQuery(declaration=query, params=tuple(params), row=row)


def _override_oids(catalog: Catalog, query: QueryDeclaration) -> list[int]:
    oids = [0] * len(query.param_names)
    for override in query.param_overrides:
        if override.type_name is None:
            continue
        try:
            oid = catalog.type_oid(override.type_name)
        except DatabaseError as e:
            raise TypeResolutionError(
                override.type_name,
                f"invalid type in parameter override of '{query.module}.{query.name}': "
                f"{e.message}",
            ) from e
        if oid is None:
            raise TypeResolutionError(
                override.type_name,
                f"unknown type in parameter override of '{query.module}.{query.name}'",
            )
        oids[param_position(override, query.param_names) - 1] = oid
    # Trailing unspecified parameters are left to the server
    while oids and oids[-1] == 0:
        oids.pop()
    return oids


def _prepare_params(
    catalog: Catalog,
    registrar: TypeRegistrar,
    query: QueryDeclaration,
    oids: Sequence[int],
) -> list[PreparedParam]:
    nullable_positions = {
        param_position(o, query.param_names) for o in query.param_overrides if o.nullable
    }
    params = []
    for index, oid in enumerate(oids):
        position = index + 1
        name = query.param_names[index] if index < len(query.param_names) else f"arg{position}"
        generated = registrar.resolve(registrar.resolve_oid(catalog, oid))
        nullable = position in nullable_positions
        params.append(
            PreparedParam(
                name=name,
                type=registrar.optional(generated) if nullable else generated,
                nullable=nullable,
            )
        )
    return params


def _prepare_columns(
    catalog: Catalog,
    registrar: TypeRegistrar,
    query: QueryDeclaration,
    columns: Sequence[ColumnDescription],
) -> list[RowField]:
    names = [c.name for c in columns]
    unknown = [c for c in query.nullability if c not in names]
    if unknown:
        raise ParseError(
            query.file,
            query.name,
            f"nullability override for unknown column(s) {', '.join(unknown)}. "
            f"Available columns: {', '.join(names)}",
        )

    fields = []
    seen: set[str] = set()
    for column in columns:
        name = field_name(column.name)
        if name in seen:
            raise PrepareError(
                query.module,
                query.name,
                f"column name '{column.name}' appears twice; give the columns distinct aliases",
            )
        seen.add(name)

        type_oid = column.type_oid
        nullable = True
        if column.table_oid:
            attribute = catalog.column_info(column.table_oid, column.column_number)
            if attribute is not None:
                # Declared type keeps domains the server reports as their base type
                type_oid = attribute.type_oid
                nullable = not attribute.not_null

        identity = registrar.resolve_oid(catalog, type_oid)
        if registrar.is_not_null_domain(identity):
            nullable = False
        nullable = query.nullability.get(column.name, nullable)

        fields.append(
            RowField(
                name=name,
                type=registrar.resolve(identity),
                nullable=nullable,
                column=column.name,
            )
        )
    return fields
