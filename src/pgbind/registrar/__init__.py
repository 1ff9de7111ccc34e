"""Type registrar: catalog types and row shapes for one generation run."""

from pgbind.registrar.registrar import (
    MAX_DEPTH,
    RowField,
    TypeRegistrar,
    field_name,
    pascal_case,
)
from pgbind.registrar.scalars import SCALAR_TYPES, scalar_mapping

__all__ = [
    "MAX_DEPTH",
    "SCALAR_TYPES",
    "RowField",
    "TypeRegistrar",
    "field_name",
    "pascal_case",
    "scalar_mapping",
]
