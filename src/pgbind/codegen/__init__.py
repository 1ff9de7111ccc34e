"""Rendering of prepared queries into Python source."""

from pgbind.codegen.generator import (
    generate,
    render_package,
    topological_order,
    write_package,
)
from pgbind.codegen.render import GENERATED_HEADER

__all__ = [
    "GENERATED_HEADER",
    "generate",
    "render_package",
    "topological_order",
    "write_package",
]
