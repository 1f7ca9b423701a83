"""Static table of supported tools and the argument shape each one expects."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..exceptions import SchemaError, UnknownToolError

FieldType = Literal["string", "number", "boolean", "array", "object"]

# Extensions that make a string look like a file path during inference.
SOURCE_EXTENSIONS: tuple[str, ...] = (
    "js", "jsx", "ts", "tsx", "mjs", "cjs", "json", "css", "scss", "sass",
    "less", "html", "htm", "md", "mdx", "py", "vue", "svelte", "astro",
    "yaml", "yml", "toml", "sql", "sh", "txt", "env", "svg",
)


class ToolSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    required_fields: list[str] = Field(default_factory=list)
    field_types: dict[str, FieldType] = Field(default_factory=dict)
    required_one_of: list[list[str]] = Field(default_factory=list)
    description: str = ""

    @model_validator(mode="after")
    def _required_fields_are_declared(self) -> ToolSchema:
        declared = set(self.field_types) | {"tool"}
        missing = [f for f in self.required_fields if f not in declared]
        for group in self.required_one_of:
            missing.extend(f for f in group if f not in declared)
        if missing:
            raise ValueError(
                f"Tool {self.name!r}: required fields not declared in field_types: "
                f"{', '.join(missing)}"
            )
        return self

    def missing_required(self, obj: dict[str, Any]) -> list[str]:
        """Return required fields that are absent or empty in ``obj``."""
        missing = [
            f for f in self.required_fields if f != "tool" and _is_empty(obj.get(f))
        ]
        for group in self.required_one_of:
            if all(_is_empty(obj.get(f)) for f in group):
                missing.append(" or ".join(group))
        return missing

    def type_warnings(self, obj: dict[str, Any]) -> list[str]:
        warnings = []
        for key, expected in self.field_types.items():
            if key not in obj or obj[key] is None:
                continue
            if not _matches_type(obj[key], expected):
                warnings.append(
                    f"{self.name}.{key}: expected {expected}, "
                    f"got {type(obj[key]).__name__}"
                )
        return warnings


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "object":
        return isinstance(value, dict)
    return True


_EDIT_FIELDS: dict[str, FieldType] = {
    "path": "string",
    "operation": "string",
    "search": "string",
    "replace": "string",
    "searchReplaceBlocks": "array",
    "occurrenceIndex": "number",
    "replaceAll": "boolean",
    "validateAfter": "string",
    "dryRun": "boolean",
    "rollbackOnFailure": "boolean",
}


def _write(name: str) -> ToolSchema:
    return ToolSchema(
        name=name,
        required_fields=["tool", "path", "content"],
        field_types={"path": "string", "content": "string"},
        description="Create or overwrite a file with the given content.",
    )


def _edit(name: str) -> ToolSchema:
    return ToolSchema(
        name=name,
        required_fields=["tool", "path"],
        field_types=dict(_EDIT_FIELDS),
        required_one_of=[["search", "searchReplaceBlocks"]],
        description="Apply search/replace edits to an existing file.",
    )


def _delete(name: str) -> ToolSchema:
    return ToolSchema(
        name=name,
        required_fields=["tool", "path"],
        field_types={"path": "string"},
        description="Delete a file.",
    )


DEFAULT_SCHEMAS: tuple[ToolSchema, ...] = (
    _write("write_file"),
    _edit("edit_file"),
    _delete("delete_file"),
    ToolSchema(
        name="read_file",
        required_fields=["tool", "path"],
        field_types={
            "path": "string",
            "startLine": "number",
            "endLine": "number",
            "includeLineNumbers": "boolean",
        },
        description="Read a file, optionally a line range.",
    ),
    ToolSchema(
        name="list_files",
        field_types={"path": "string"},
        description="List files under a directory.",
    ),
    ToolSchema(
        name="create_directory",
        required_fields=["tool", "path"],
        field_types={"path": "string"},
        description="Create a directory.",
    ),
    _write("pilotwrite"),
    _edit("pilotedit"),
    _delete("pilotdelete"),
    ToolSchema(
        name="add_package",
        required_fields=["tool", "name"],
        field_types={"name": "string", "version": "string", "isDev": "boolean"},
        description="Add one or more npm packages to package.json.",
    ),
    ToolSchema(
        name="remove_package",
        required_fields=["tool", "name"],
        field_types={"name": "string", "isDev": "boolean"},
        description="Remove one or more npm packages from package.json.",
    ),
)


class ToolSchemaRegistry:
    """Read-only lookup of tool schemas by name.

    Every component asks the registry which tools exist; nothing else keeps
    its own list. ``with_schemas`` returns a new registry instead of mutating.
    """

    def __init__(
        self,
        schemas: Iterable[ToolSchema] = DEFAULT_SCHEMAS,
        source_extensions: Iterable[str] = SOURCE_EXTENSIONS,
    ) -> None:
        self._schemas: dict[str, ToolSchema] = {s.name: s for s in schemas}
        self._folded = {name.lower(): s for name, s in self._schemas.items()}
        self._extensions = tuple(source_extensions)
        self._name_pattern: re.Pattern[str] | None = None

    @classmethod
    def from_dicts(cls, items: Iterable[dict[str, Any]]) -> ToolSchemaRegistry:
        try:
            return cls([ToolSchema(**item) for item in items])
        except (ValidationError, TypeError) as e:
            raise SchemaError(f"Invalid tool schema: {e}") from e

    def with_schemas(self, schemas: Iterable[ToolSchema]) -> ToolSchemaRegistry:
        merged = dict(self._schemas)
        merged.update({s.name: s for s in schemas})
        return ToolSchemaRegistry(merged.values(), self._extensions)

    def get(self, name: str) -> ToolSchema:
        schema = self.find(name)
        if schema is None:
            raise UnknownToolError(f"Tool not registered: {name}")
        return schema

    def find(self, name: str) -> ToolSchema | None:
        """Exact lookup, then a case-insensitive one; None if unregistered."""
        schema = self._schemas.get(name)
        if schema is None and isinstance(name, str):
            schema = self._folded.get(name.lower())
        return schema

    def names(self) -> list[str]:
        return list(self._schemas)

    @property
    def source_extensions(self) -> tuple[str, ...]:
        return self._extensions

    def tool_name_pattern(self) -> re.Pattern[str]:
        """Regex matching a ``"tool": "<registered name>"`` marker.

        Group 1 is the tool name as written. Either quote style is accepted and
        the name is matched case-insensitively, like ``find``.
        """
        if self._name_pattern is None:
            names = sorted(self._schemas, key=len, reverse=True)
            alternation = "|".join(re.escape(n) for n in names) or r"(?!x)x"
            self._name_pattern = re.compile(
                r"""["']tool["']\s*:\s*["'](""" + alternation + r""")["']""",
                re.IGNORECASE,
            )
        return self._name_pattern

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[ToolSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)


_default_registry: ToolSchemaRegistry | None = None


def default_registry() -> ToolSchemaRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = ToolSchemaRegistry()
    return _default_registry
