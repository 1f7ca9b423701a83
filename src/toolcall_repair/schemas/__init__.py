"""Tool schemas: the registry of supported tools and its YAML storage."""

from .registry import (
    DEFAULT_SCHEMAS,
    SOURCE_EXTENSIONS,
    ToolSchema,
    ToolSchemaRegistry,
    default_registry,
)
from .store import SchemaStore

__all__ = [
    "DEFAULT_SCHEMAS",
    "SOURCE_EXTENSIONS",
    "ToolSchema",
    "ToolSchemaRegistry",
    "SchemaStore",
    "default_registry",
]
