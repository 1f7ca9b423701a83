"""Tests for the tool schema registry."""

from __future__ import annotations

import pytest

from toolcall_repair.exceptions import SchemaError, UnknownToolError
from toolcall_repair.schemas.registry import (
    ToolSchema,
    ToolSchemaRegistry,
    default_registry,
)


class TestToolSchema:
    def test_required_fields_must_be_declared(self):
        with pytest.raises(ValueError):
            ToolSchema(name="broken", required_fields=["tool", "path"], field_types={})

    def test_tool_needs_no_declaration(self):
        schema = ToolSchema(name="ping", required_fields=["tool"])
        assert schema.required_fields == ["tool"]

    def test_missing_required_reports_empty_values(self):
        schema = default_registry().get("write_file")
        assert schema.missing_required({"tool": "write_file", "path": "a.ts"}) == [
            "content"
        ]
        assert schema.missing_required(
            {"tool": "write_file", "path": "", "content": "x"}
        ) == ["path"]

    def test_missing_required_one_of_group(self):
        schema = default_registry().get("edit_file")
        missing = schema.missing_required({"tool": "edit_file", "path": "a.ts"})
        assert missing == ["search or searchReplaceBlocks"]
        assert (
            schema.missing_required(
                {"tool": "edit_file", "path": "a.ts", "searchReplaceBlocks": [{}]}
            )
            == []
        )

    def test_type_warnings(self):
        schema = default_registry().get("add_package")
        warnings = schema.type_warnings(
            {"tool": "add_package", "name": "leaflet", "isDev": "no"}
        )
        assert warnings == ["add_package.isDev: expected boolean, got str"]

    def test_number_rejects_bool(self):
        schema = default_registry().get("edit_file")
        warnings = schema.type_warnings({"occurrenceIndex": True})
        assert len(warnings) == 1


class TestToolSchemaRegistry:
    def test_default_tools_registered(self):
        registry = ToolSchemaRegistry()
        for name in (
            "write_file",
            "edit_file",
            "delete_file",
            "read_file",
            "list_files",
            "create_directory",
            "pilotwrite",
            "pilotedit",
            "pilotdelete",
            "add_package",
            "remove_package",
        ):
            assert name in registry
        assert len(registry) == 11

    def test_get_unknown_raises(self):
        with pytest.raises(UnknownToolError):
            ToolSchemaRegistry().get("rm_rf")

    def test_unknown_tool_error_is_schema_error(self):
        with pytest.raises(SchemaError):
            ToolSchemaRegistry().get("rm_rf")

    def test_find_unknown_returns_none(self):
        assert ToolSchemaRegistry().find("rm_rf") is None

    def test_with_schemas_returns_new_registry(self):
        registry = ToolSchemaRegistry()
        extended = registry.with_schemas(
            [ToolSchema(name="run_tests", field_types={"pattern": "string"})]
        )
        assert "run_tests" in extended
        assert "run_tests" not in registry
        assert len(extended) == len(registry) + 1

    def test_from_dicts_invalid_raises_schema_error(self):
        with pytest.raises(SchemaError):
            ToolSchemaRegistry.from_dicts(
                [{"name": "bad", "required_fields": ["tool", "missing"]}]
            )

    def test_tool_name_pattern(self):
        pattern = ToolSchemaRegistry().tool_name_pattern()
        m = pattern.search('{"tool": "write_file", "path": "a"}')
        assert m is not None and m.group(1) == "write_file"
        m = pattern.search("{'tool':'edit_file'}")
        assert m is not None and m.group(1) == "edit_file"
        assert pattern.search('{"tool": "rm_rf"}') is None

    def test_pattern_does_not_match_name_prefix(self):
        pattern = ToolSchemaRegistry().tool_name_pattern()
        assert pattern.search('{"tool": "write_file_now"}') is None

    def test_find_is_case_insensitive(self):
        registry = ToolSchemaRegistry()
        assert registry.find("Write_File").name == "write_file"
        assert registry.get("DELETE_FILE").name == "delete_file"

    def test_pattern_is_case_insensitive(self):
        pattern = ToolSchemaRegistry().tool_name_pattern()
        m = pattern.search('{"tool": "WRITE_FILE"}')
        assert m is not None and m.group(1) == "WRITE_FILE"

    def test_default_registry_is_shared(self):
        assert default_registry() is default_registry()
