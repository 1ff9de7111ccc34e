"""Type registrar: the single authority over types for one generation run.

The registrar maps catalog type identities to generated Python types and
collapses structurally identical row shapes into one generated dataclass.
It starts empty for every run; nothing is cached between runs.
"""

from __future__ import annotations

import keyword
import logging
import re
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, NamedTuple

from pgbind.core.types import (
    ArrayType,
    CatalogField,
    CatalogType,
    CompositeType,
    DomainType,
    EnumType,
    GeneratedField,
    GeneratedKind,
    GeneratedType,
    ScalarType,
    TypeIdentity,
    TypeKind,
)
from pgbind.exceptions import TypeResolutionError
from pgbind.registrar.scalars import scalar_mapping

if TYPE_CHECKING:
    from pgbind.introspect.catalog import Catalog, TypeRow

logger = logging.getLogger(__name__)

MAX_DEPTH = 32


class RowField(NamedTuple):
    """One column of a row shape, before registration."""

    name: str
    type: GeneratedType
    nullable: bool
    column: str | None = None


def pascal_case(name: str) -> str:
    """Convert a snake_case or otherwise delimited name to PascalCase."""
    words = [w for w in re.split(r"[^0-9A-Za-z]+", name) if w]
    result = "".join(w[0].upper() + w[1:] for w in words)
    if not result or result[0].isdigit():
        result = f"T{result}"
    return result


def kind_of(row: TypeRow) -> TypeKind:
    """Classify a ``pg_type`` row."""
    if row.typtype == "d":
        return TypeKind.DOMAIN
    if row.typtype == "e":
        return TypeKind.ENUM
    if row.typtype == "c":
        return TypeKind.COMPOSITE
    if row.category == "A" and row.element_oid:
        return TypeKind.ARRAY
    return TypeKind.SCALAR


class TypeRegistrar:
    """Maps type identities and row shapes to generated types.

    Catalog resolution (``resolve_oid``) records an identity before
    recursing into its constituents, so a type reached again while it is
    still being resolved is returned as-is instead of looping. Recursion
    deeper than ``MAX_DEPTH`` fails.
    """

    def __init__(self) -> None:
        self._identities: dict[int, TypeIdentity] = {}
        self._catalog: dict[TypeIdentity, CatalogType] = {}
        self._generated: dict[TypeIdentity, GeneratedType] = {}
        self._scalars: dict[str, GeneratedType] = {}
        self._optionals: dict[GeneratedType, GeneratedType] = {}
        self._rows: dict[tuple[tuple[str, str, bool], ...], GeneratedType] = {}
        self._names: set[str] = set()
        self._definitions: list[GeneratedType] = []

    def reserve_names(self, names: Iterable[str]) -> None:
        """Keep generated class names clear of names the bindings already use."""
        self._names.update(names)

    # === Catalog resolution ===

    def resolve_oid(self, catalog: Catalog, oid: int, depth: int = 0) -> TypeIdentity:
        """Resolve a type OID and all of its constituents through the catalog.

        Raises:
            TypeResolutionError: If the OID is unknown or nesting is too deep
        """
        if oid in self._identities:
            return self._identities[oid]
        if depth > MAX_DEPTH:
            raise TypeResolutionError(
                f"oid {oid}", f"type nesting exceeds {MAX_DEPTH} levels (cyclic type?)"
            )

        row = catalog.lookup_type(oid)
        if row is None:
            raise TypeResolutionError(f"oid {oid}", "type not found in pg_type")

        identity = TypeIdentity(kind=kind_of(row), oid=row.oid, schema=row.schema, name=row.name)
        self._identities[oid] = identity
        logger.debug(f"Resolving {identity.kind} type {identity.qualified_name} (oid {oid})")

        entry: CatalogType
        if identity.kind == TypeKind.DOMAIN:
            base = self.resolve_oid(catalog, row.base_oid, depth + 1)
            entry = DomainType(identity, base, row.not_null)
        elif identity.kind == TypeKind.ARRAY:
            entry = ArrayType(identity, self.resolve_oid(catalog, row.element_oid, depth + 1))
        elif identity.kind == TypeKind.ENUM:
            entry = EnumType(identity, tuple(catalog.enum_labels(oid)))
        elif identity.kind == TypeKind.COMPOSITE:
            fields = tuple(
                CatalogField(
                    name=attr.name,
                    type=self.resolve_oid(catalog, attr.type_oid, depth + 1),
                    not_null=attr.not_null,
                )
                for attr in catalog.composite_fields(row.relid)
            )
            entry = CompositeType(identity, fields)
        else:
            entry = ScalarType(identity)
        self._catalog[identity] = entry
        return identity

    def catalog_type(self, identity: TypeIdentity) -> CatalogType:
        """Return the resolved catalog entry for an identity."""
        try:
            return self._catalog[identity]
        except KeyError:
            raise TypeResolutionError(
                identity.qualified_name, "type was not resolved through the catalog"
            ) from None

    def is_not_null_domain(self, identity: TypeIdentity) -> bool:
        """Whether the type is a domain (possibly over domains) declared NOT NULL."""
        entry = self._catalog.get(identity)
        while isinstance(entry, DomainType):
            if entry.not_null:
                return True
            entry = self._catalog.get(entry.base)
        return False

    # === Generated types ===

    def resolve(self, identity: TypeIdentity) -> GeneratedType:
        """Return the generated type for a resolved identity (memoized).

        Raises:
            TypeResolutionError: If a scalar has no Python mapping
        """
        if identity in self._generated:
            return self._generated[identity]

        entry = self.catalog_type(identity)
        generated: GeneratedType
        if isinstance(entry, ScalarType):
            generated = self._scalar(identity)
        elif isinstance(entry, DomainType):
            generated = self.resolve(entry.base)
        elif isinstance(entry, ArrayType):
            generated = GeneratedType(
                name="list", kind=GeneratedKind.ARRAY, inner=self.resolve(entry.element)
            )
        elif isinstance(entry, EnumType):
            generated = GeneratedType(
                name=self._claim_name(self._type_name(identity)),
                kind=GeneratedKind.ENUM,
                variants=entry.labels,
                pg_name=identity.qualified_name,
            )
            self._definitions.append(generated)
        else:
            generated = GeneratedType(
                name=self._claim_name(self._type_name(identity)),
                kind=GeneratedKind.STRUCT,
                pg_name=identity.qualified_name,
            )
            # Placeholder first, so a field that refers back finds it
            self._generated[identity] = generated
            self._definitions.append(generated)
            for f in entry.fields:
                nullable = not (f.not_null or self.is_not_null_domain(f.type))
                base = self.resolve(f.type)
                generated.fields.append(
                    GeneratedField(
                        name=field_name(f.name),
                        type=self.optional(base) if nullable else base,
                        nullable=nullable,
                        column=f.name,
                    )
                )

        self._generated[identity] = generated
        return generated

    def optional(self, inner: GeneratedType) -> GeneratedType:
        """Return the optional-of wrapper for ``inner`` (memoized)."""
        if inner.kind == GeneratedKind.OPTIONAL:
            return inner
        if inner not in self._optionals:
            self._optionals[inner] = GeneratedType(
                name=inner.name, kind=GeneratedKind.OPTIONAL, inner=inner
            )
        return self._optionals[inner]

    def register_row_shape(
        self, fields: Sequence[RowField], context: str, module: str | None = None
    ) -> GeneratedType:
        """Return the row dataclass for an ordered field list.

        Structurally identical shapes (same names, types and nullability in
        the same order) share one generated type, named after the first
        query that registered it.
        """
        key = tuple((f.name, f.type.annotation, f.nullable) for f in fields)
        if key in self._rows:
            return self._rows[key]

        base = f"{pascal_case(context)}Row"
        candidates = [base]
        if module:
            candidates.append(f"{pascal_case(module)}{base}")
        row = GeneratedType(
            name=self._claim_name(*candidates),
            kind=GeneratedKind.STRUCT,
            fields=[
                GeneratedField(
                    name=f.name,
                    type=self.optional(f.type) if f.nullable else f.type,
                    nullable=f.nullable,
                    column=f.column,
                )
                for f in fields
            ],
            is_row=True,
        )
        self._rows[key] = row
        logger.debug(f"Registered row shape {row.name} ({len(fields)} fields)")
        return row

    @property
    def definitions(self) -> list[GeneratedType]:
        """Catalog-backed enum and composite types, in registration order."""
        return list(self._definitions)

    @property
    def row_shapes(self) -> list[GeneratedType]:
        """Registered row dataclasses, in registration order."""
        return list(self._rows.values())

    def _scalar(self, identity: TypeIdentity) -> GeneratedType:
        mapping = scalar_mapping(identity.schema, identity.name)
        if mapping is None:
            raise TypeResolutionError(identity.qualified_name)
        if identity.name not in self._scalars:
            self._scalars[identity.name] = GeneratedType(
                name=mapping.annotation,
                kind=GeneratedKind.SCALAR,
                imports=mapping.imports,
                param_wrapper=mapping.param_wrapper,
            )
        return self._scalars[identity.name]

    @staticmethod
    def _type_name(identity: TypeIdentity) -> str:
        if identity.schema == "public":
            return pascal_case(identity.name)
        return pascal_case(identity.schema) + pascal_case(identity.name)

    def _claim_name(self, *candidates: str) -> str:
        for candidate in candidates:
            if candidate not in self._names:
                self._names.add(candidate)
                return candidate
        n = 2
        while f"{candidates[0]}{n}" in self._names:
            n += 1
        name = f"{candidates[0]}{n}"
        self._names.add(name)
        return name


def field_name(column: str) -> str:
    """Turn a column name into a usable Python attribute name."""
    name = re.sub(r"\W+", "_", column).strip("_")
    if not name:
        name = "column"
    if name[0].isdigit():
        name = f"col_{name}"
    if keyword.iskeyword(name):
        name = f"{name}_"
    return name
