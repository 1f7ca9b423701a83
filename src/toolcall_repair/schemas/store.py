"""YAML persistence for additional tool schemas."""

from __future__ import annotations

from pathlib import Path

import yaml

from ..exceptions import SchemaError
from .registry import ToolSchema, ToolSchemaRegistry


class SchemaStore:
    """Load and save extra tool schemas from a YAML file."""

    def __init__(self, path: str) -> None:
        self._path = Path(path).expanduser()

    def load(self) -> list[ToolSchema]:
        if not self._path.exists():
            return []
        try:
            data = yaml.safe_load(self._path.read_text())
        except yaml.YAMLError as e:
            raise SchemaError(f"Cannot read schema file {self._path}: {e}") from e
        if not data or "tools" not in data:
            return []
        if not isinstance(data["tools"], list):
            raise SchemaError(f"{self._path}: 'tools' must be a list")
        return list(ToolSchemaRegistry.from_dicts(data["tools"]))

    def save(self, schemas: list[ToolSchema]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {"tools": [s.model_dump(mode="json") for s in schemas]}
        self._path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
