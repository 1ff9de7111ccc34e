"""Reading annotated query files."""

from pgbind.queries.reader import (
    is_identifier,
    param_position,
    parse_query_module,
    read_query_file,
    read_query_modules,
    sql_constant_name,
)

__all__ = [
    "is_identifier",
    "param_position",
    "parse_query_module",
    "read_query_file",
    "read_query_modules",
    "sql_constant_name",
]
