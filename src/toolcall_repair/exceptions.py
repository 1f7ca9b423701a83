"""Custom exception hierarchy for toolcall-repair.

The parsing path never raises: malformed candidates are reported through
``RepairAttemptResult`` and ``StreamParseResult.errors``. These exceptions
surface only at configuration and registry boundaries:

    try:
        registry = ToolSchemaRegistry.from_dicts(items)
        schema = registry.get("write_file")
    except UnknownToolError as e:
        print(f"No such tool: {e}")
    except ToolcallRepairError as e:
        print(f"toolcall-repair error: {e}")
"""

from __future__ import annotations


class ToolcallRepairError(Exception):
    """Base exception for all toolcall-repair errors."""


class ConfigError(ToolcallRepairError):
    """Raised when configuration is invalid or cannot be read."""


class SchemaError(ToolcallRepairError):
    """Raised when a tool schema definition or schema file is invalid."""


class UnknownToolError(SchemaError):
    """Raised when a tool name is looked up that the registry does not know."""
