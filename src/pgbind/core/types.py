"""Core types for pgbind.

Parsed input (query declarations, migrations) are frozen pydantic models.
Catalog types and generated types are dataclasses: catalog types are a
closed set of frozen variants keyed by ``TypeIdentity``, generated types
are owned and built up by the ``TypeRegistrar`` of a single run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ResultShape(StrEnum):
    """How many rows a query binding returns."""

    NONE = "none"  # :exec, returns the affected row count
    ONE = "one"  # :one, returns a row or None
    MANY = "many"  # :many, returns a list of rows

    @classmethod
    def from_marker(cls, marker: str) -> ResultShape:
        """Map an annotation marker (``:one``, ``:many``, ``:exec``) to a shape."""
        return _MARKERS[marker]

    @classmethod
    def markers(cls) -> list[str]:
        """Return all valid annotation markers."""
        return list(_MARKERS)


_MARKERS = {":exec": ResultShape.NONE, ":one": ResultShape.ONE, ":many": ResultShape.MANY}


class ParamOverride(BaseModel):
    """Explicit type and/or nullability for one query parameter."""

    model_config = ConfigDict(frozen=True)

    key: int | str = Field(..., description="1-based position or parameter name")
    type_name: str | None = Field(default=None, description="PostgreSQL type name")
    nullable: bool = Field(default=False, description="Whether None may be passed")


class QueryDeclaration(BaseModel):
    """One annotated SQL statement from a query file."""

    model_config = ConfigDict(frozen=True)

    name: str
    module: str
    file: Path
    line: int
    sql: str = Field(..., description="Statement text with $n placeholders")
    param_names: tuple[str, ...] = ()
    param_overrides: tuple[ParamOverride, ...] = ()
    nullability: dict[str, bool] = Field(
        default_factory=dict, description="Column name -> forced nullability"
    )
    shape: ResultShape = ResultShape.NONE


class QueryModule(BaseModel):
    """All declarations of one query file, in source order."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path
    queries: tuple[QueryDeclaration, ...] = ()


class MigrationFile(BaseModel):
    """A ``<unix-timestamp>_<name>.sql`` schema migration."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    name: str
    path: Path
    sql: str

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.timestamp, self.name)


# === Catalog types ===


class TypeKind(StrEnum):
    """Kinds of PostgreSQL types pgbind understands."""

    SCALAR = "scalar"
    DOMAIN = "domain"
    ENUM = "enum"
    COMPOSITE = "composite"
    ARRAY = "array"


@dataclass(frozen=True)
class TypeIdentity:
    """Catalog-level identity of a database type."""

    kind: TypeKind
    oid: int
    schema: str
    name: str

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"


@dataclass(frozen=True)
class CatalogField:
    """An attribute of a composite type."""

    name: str
    type: TypeIdentity
    not_null: bool = False


@dataclass(frozen=True)
class ScalarType:
    identity: TypeIdentity


@dataclass(frozen=True)
class DomainType:
    identity: TypeIdentity
    base: TypeIdentity
    not_null: bool


@dataclass(frozen=True)
class EnumType:
    identity: TypeIdentity
    labels: tuple[str, ...]


@dataclass(frozen=True)
class CompositeType:
    identity: TypeIdentity
    fields: tuple[CatalogField, ...]


@dataclass(frozen=True)
class ArrayType:
    identity: TypeIdentity
    element: TypeIdentity


CatalogType = ScalarType | DomainType | EnumType | CompositeType | ArrayType


# === Generated types ===


class GeneratedKind(StrEnum):
    """Shapes a generated Python type can take."""

    SCALAR = "scalar"
    STRUCT = "struct"
    ENUM = "enum"
    ARRAY = "array"
    OPTIONAL = "optional"


@dataclass(eq=False)
class GeneratedField:
    """One field of a generated dataclass.

    ``type`` is already wrapped in optional-of when ``nullable`` is set.
    """

    name: str
    type: GeneratedType
    nullable: bool
    column: str | None = None


@dataclass(eq=False)
class GeneratedType:
    """Python-side representation of a database type or a row shape.

    Instances are compared by identity: the registrar guarantees that each
    distinct type or shape exists exactly once per run.
    """

    name: str
    kind: GeneratedKind
    fields: list[GeneratedField] = field(default_factory=list)
    variants: tuple[str, ...] = ()
    inner: GeneratedType | None = None
    imports: tuple[str, ...] = ()
    pg_name: str | None = None
    param_wrapper: str | None = None
    is_row: bool = False

    @property
    def annotation(self) -> str:
        """Python annotation text for this type."""
        if self.kind == GeneratedKind.ARRAY:
            assert self.inner is not None
            return f"list[{self.inner.annotation}]"
        if self.kind == GeneratedKind.OPTIONAL:
            assert self.inner is not None
            return f"{self.inner.annotation} | None"
        return self.name

    @property
    def is_definition(self) -> bool:
        """Whether this type needs a class definition in generated code."""
        return self.kind in (GeneratedKind.STRUCT, GeneratedKind.ENUM)

    def dependencies(self) -> list[GeneratedType]:
        """Definitions this type refers to directly (through wrappers)."""
        if self.kind in (GeneratedKind.ARRAY, GeneratedKind.OPTIONAL):
            assert self.inner is not None
            return self.inner.dependencies() if not self.inner.is_definition else [self.inner]
        if self.kind == GeneratedKind.STRUCT:
            deps: list[GeneratedType] = []
            for f in self.fields:
                targets = [f.type] if f.type.is_definition else f.type.dependencies()
                for target in targets:
                    if target not in deps:
                        deps.append(target)
            return deps
        return []

    def all_imports(self) -> set[str]:
        """Import lines needed to spell this type's annotation."""
        found = set(self.imports)
        if self.inner is not None:
            found |= self.inner.all_imports()
        return found


# === Prepared queries ===


@dataclass(frozen=True)
class PreparedParam:
    """A binding argument; ``type`` is already wrapped in optional-of when nullable."""

    name: str
    type: GeneratedType
    nullable: bool

    @property
    def base(self) -> GeneratedType:
        if self.type.kind == GeneratedKind.OPTIONAL:
            assert self.type.inner is not None
            return self.type.inner
        return self.type


@dataclass(frozen=True)
class PreparedQuery:
    """A declaration joined with its resolved parameter and row types."""

    declaration: QueryDeclaration
    params: tuple[PreparedParam, ...]
    row: GeneratedType | None

    @property
    def name(self) -> str:
        return self.declaration.name


@dataclass(frozen=True)
class PreparedModule:
    name: str
    queries: tuple[PreparedQuery, ...]
