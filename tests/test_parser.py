"""Tests for StreamParser: locate, repair, assemble, substitute."""

from __future__ import annotations

import pytest

from toolcall_repair import StreamParser, ToolCallStatus

SCENARIO = (
    "Add leaflet.\n"
    "```json\n"
    '{"tool":"add_package","name":"leaflet","version":"^1.9.4","isDev":false}\n'
    "```\n"
    "Done."
)

INNER_QUOTES = (
    "Here:\n```json\n"
    '{"tool": "write_file", "path": "a.tsx", "content": "<div class="x">hi</div>"}\n'
    "```\nok"
)


@pytest.fixture
def parser() -> StreamParser:
    return StreamParser()


class TestParse:
    def test_fenced_package_call(self, parser):
        result = parser.parse(SCENARIO)
        assert len(result.tools) == 1
        call = result.tools[0]
        assert call.tool == "add_package"
        assert call.name == "leaflet"
        assert call.args["version"] == "^1.9.4"
        assert call.args["isDev"] is False
        assert call.status == ToolCallStatus.DETECTED
        assert call.confidence == 1.0
        assert call.method == "generic"
        assert result.processed_content == "Add leaflet.\n[ADD_PACKAGE: unknown]\nDone."
        assert result.errors == []

    def test_placeholders_in_buffer_order(self, parser):
        buffer = (
            'A {"tool": "delete_file", "path": "a.ts"} '
            'B {"tool": "delete_file", "path": "b.ts"} C'
        )
        result = parser.parse(buffer)
        assert [t.path for t in result.tools] == ["a.ts", "b.ts"]
        assert result.processed_content == (
            "A [DELETE_FILE: a.ts] B [DELETE_FILE: b.ts] C"
        )

    def test_ids_unique(self, parser):
        buffer = (
            '{"tool": "delete_file", "path": "a.ts"} '
            '{"tool": "delete_file", "path": "b.ts"}'
        )
        result = parser.parse(buffer)
        assert result.tools[0].id != result.tools[1].id

    def test_no_tools_returns_buffer(self, parser):
        result = parser.parse("Just talking about code.")
        assert result.tools == []
        assert result.processed_content == "Just talking about code."

    def test_two_calls_in_one_fence(self, parser):
        buffer = (
            "Cleanup:\n```json\n"
            '{"tool":"delete_file","path":"a.ts"} {"tool":"delete_file","path":"b.ts"}'
            "\n```\nDone."
        )
        result = parser.parse(buffer)
        assert [t.path for t in result.tools] == ["a.ts", "b.ts"]
        assert all(t.confidence == 1.0 for t in result.tools)
        assert result.processed_content == (
            "Cleanup:\n[DELETE_FILE: a.ts] [DELETE_FILE: b.ts]\nDone."
        )

    def test_tool_name_case_normalized(self, parser):
        result = parser.parse('{"tool": "Delete_File", "path": "a.ts"}')
        call = result.tools[0]
        assert call.tool == "delete_file"
        assert call.args["tool"] == "Delete_File"
        assert result.processed_content == "[DELETE_FILE: a.ts]"

    def test_empty_buffer(self, parser):
        result = parser.parse("")
        assert result.tools == []
        assert result.processed_content == ""

    def test_unknown_tool_in_fence_left_in_place(self, parser):
        buffer = 'x\n```json\n{"tool": "rm_rf", "path": "/"}\n```\ny'
        result = parser.parse(buffer)
        assert result.tools == []
        assert result.processed_content == buffer
        assert result.errors[0].message == "Unknown tool: rm_rf"

    def test_unknown_tool_in_bare_text_ignored(self, parser):
        buffer = 'see {"tool": "rm_rf", "path": "/"}'
        result = parser.parse(buffer)
        assert result.tools == []
        assert result.errors == []
        assert result.processed_content == buffer

    def test_bad_candidate_does_not_block_others(self, parser):
        buffer = (
            "```json\n{not valid at all\n```\n"
            'then {"tool": "delete_file", "path": "a.ts"}'
        )
        result = parser.parse(buffer)
        assert len(result.tools) == 1
        assert result.tools[0].path == "a.ts"
        assert len(result.errors) == 1
        assert result.errors[0].message.startswith("Unrecoverable candidate")
        assert result.processed_content.endswith("then [DELETE_FILE: a.ts]")
        assert "{not valid at all" in result.processed_content

    def test_missing_required_field(self, parser):
        buffer = '{"tool": "edit_file", "path": "a.ts"}'
        result = parser.parse(buffer)
        assert result.tools == []
        assert result.processed_content == buffer
        assert result.errors[0].message == (
            "Invalid tool call: missing required field search or searchReplaceBlocks"
        )

    def test_common_mistakes_lower_confidence(self, parser):
        result = parser.parse("{'tool': 'delete_file', 'path': 'x.ts',}")
        call = result.tools[0]
        assert call.path == "x.ts"
        assert call.confidence == 0.8
        assert call.fixes_applied == [
            "Removed trailing commas",
            "Converted single-quoted strings",
        ]
        assert result.processed_content == "[DELETE_FILE: x.ts]"

    def test_literal_newlines_in_content(self, parser):
        buffer = '{"tool": "write_file", "path": "a.py", "content": "x = 1\ny = 2"}'
        call = parser.parse(buffer).tools[0]
        assert call.content == "x = 1\ny = 2"
        assert call.confidence == 1.0
        assert call.fixes_applied == ["Escaped control characters inside strings"]

    def test_schema_reconstruction(self, parser):
        result = parser.parse(INNER_QUOTES)
        assert len(result.tools) == 1
        call = result.tools[0]
        assert call.method == "schema"
        assert call.confidence == 0.8
        assert call.path == "a.tsx"
        assert call.content.startswith("<div")
        assert call.fixes_applied[0] == "Reconstructed from write_file schema"
        assert result.processed_content == "Here:\n[WRITE_FILE: a.tsx]\nok"

    def test_reconstruction_disabled(self):
        result = StreamParser(reconstruct=False).parse(INNER_QUOTES)
        assert result.tools == []
        assert result.processed_content == INNER_QUOTES
        assert result.errors[0].message.startswith("Unrecoverable candidate")

    def test_min_confidence(self):
        parser = StreamParser(min_confidence=0.9)
        buffer = "{'tool': 'delete_file', 'path': 'x.ts',}"
        result = parser.parse(buffer)
        assert result.tools == []
        assert result.processed_content == buffer
        assert result.errors[0].message == "Confidence 0.80 below threshold 0.90"

    def test_type_warnings_attached(self, parser):
        result = parser.parse('{"tool": "add_package", "name": "x", "isDev": "yes"}')
        call = result.tools[0]
        assert "add_package.isDev: expected boolean, got str" in call.warnings

    def test_error_context_truncated(self):
        parser = StreamParser(max_context_chars=10)
        result = parser.parse('{"tool": "edit_file", "path": "a.ts"}')
        assert result.errors[0].context == '{"tool": "...'
        assert result.errors[0].start_index == 0

    def test_internal_failure_returns_buffer(self):
        class BrokenLocator:
            def locate(self, buffer):
                raise RuntimeError("boom")

        parser = StreamParser(locator=BrokenLocator())
        result = parser.parse("some text")
        assert result.tools == []
        assert result.processed_content == "some text"
        assert result.errors[0].message == "Critical parsing error: boom"


class TestResolvedOffsets:
    def test_offsets_reported(self, parser):
        result = parser.parse('x {"tool": "delete_file", "path": "a.ts"}')
        assert result.resolved_offsets == [2]

    def test_resolved_offsets_not_reemitted(self, parser):
        buffer = 'x {"tool": "delete_file", "path": "a.ts"}'
        result = parser.parse(buffer, resolved_offsets=[2])
        assert result.tools == []
        assert result.processed_content == "x [DELETE_FILE: a.ts]"
        assert result.resolved_offsets == [2]

    def test_parse_is_repeatable(self, parser):
        first = parser.parse(SCENARIO)
        second = parser.parse(SCENARIO)
        assert first.processed_content == second.processed_content
        assert len(second.tools) == 1


class TestParseSingle:
    def test_fenced_payload(self, parser):
        call = parser.parse_single('```json\n{"tool": "delete_file", "path": "a.ts"}\n```')
        assert call is not None
        assert call.path == "a.ts"

    def test_unknown_tool(self, parser):
        assert parser.parse_single('{"tool": "nope"}') is None

    def test_empty(self, parser):
        assert parser.parse_single("   ") is None


class TestHasToolCalls:
    def test_registered_tool(self, parser):
        assert parser.has_tool_calls('text {"tool": "write_file"')

    def test_unregistered_tool(self, parser):
        assert not parser.has_tool_calls('{"tool": "rm_rf"}')

    def test_plain_text(self, parser):
        assert not parser.has_tool_calls("hello")


class TestFromConfig:
    def test_extra_schema_file(self, tmp_path):
        from toolcall_repair.config import ToolcallRepairConfig

        schemas = tmp_path / "tools.yaml"
        schemas.write_text(
            "tools:\n"
            "  - name: run_command\n"
            "    required_fields: [tool, command]\n"
            "    field_types: {command: string}\n"
        )
        parser = StreamParser.from_config(
            ToolcallRepairConfig(schemas_file=str(schemas))
        )
        result = parser.parse('{"tool": "run_command", "command": "npm test"}')
        assert result.tools[0].args["command"] == "npm test"
        assert result.processed_content == "[RUN_COMMAND: unknown]"

    def test_reconstruction_flag(self):
        from toolcall_repair.config import ReconstructionConfig, ToolcallRepairConfig

        config = ToolcallRepairConfig(reconstruction=ReconstructionConfig(enabled=False))
        parser = StreamParser.from_config(config)
        assert parser.reconstructor is None
