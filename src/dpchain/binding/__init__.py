"""Schema binding: which schema declares an operation, and how to build its request."""
from .dialects import Dialect, endpoint_for_schema, firmware_level, resolve_endpoint_alias, schema_directory
from .xsd import SchemaBinding, load_bindings

__all__ = [
    "Dialect",
    "endpoint_for_schema",
    "firmware_level",
    "resolve_endpoint_alias",
    "schema_directory",
    "SchemaBinding",
    "load_bindings",
]
