"""Tests for the single-payload JSON extraction utility."""

import json

import pytest

from toolcall_repair.extraction.json_extract import (
    close_truncated,
    extract_json,
    strip_fences,
)


class TestStripFences:
    def test_fenced(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_unfenced_is_stripped_only(self):
        assert strip_fences('  {"a": 1}\n') == '{"a": 1}'


class TestCloseTruncated:
    def test_closes_in_order(self):
        assert close_truncated('{"a": [1, {"b": 2') == '{"a": [1, {"b": 2}]}'

    def test_brackets_inside_strings_ignored(self):
        assert close_truncated('{"a": "[{"') == '{"a": "[{"}'

    def test_trailing_comma_dropped(self):
        assert close_truncated('{"a": 1,') == '{"a": 1}'


class TestExtractJson:
    def test_clean_json(self):
        result = extract_json('{"tool": "delete_file", "path": "a.ts"}')
        assert result == {"tool": "delete_file", "path": "a.ts"}

    def test_markdown_fenced_json(self):
        text = '```json\n{"tool": "read_file", "path": "a.ts"}\n```'
        result = extract_json(text)
        assert result["tool"] == "read_file"

    def test_markdown_fenced_no_closing(self):
        text = '```json\n{"tool": "read_file", "path": "a.ts"}'
        result = extract_json(text)
        assert result["path"] == "a.ts"

    def test_leading_trailing_prose(self):
        text = 'Here is the call:\n{"tool": "list_files", "path": "src"}\nDone!'
        result = extract_json(text)
        assert result["path"] == "src"

    def test_truncated_json_unclosed_brace(self):
        text = '{"name": "leaflet", "deps": ["a", "b"'
        result = extract_json(text)
        assert result["name"] == "leaflet"
        assert result["deps"] == ["a", "b"]

    def test_truncated_json_unclosed_bracket_and_brace(self):
        text = '{"name": "leaflet", "deps": ["a"'
        result = extract_json(text)
        assert result["name"] == "leaflet"

    def test_trailing_comma_repair(self):
        text = '{"name": "leaflet", "deps": ["a",]}'
        assert extract_json(text) == {"name": "leaflet", "deps": ["a"]}

    def test_literal_newline_in_string(self):
        text = '{"tool": "write_file", "path": "a.py", "content": "x = 1\ny = 2"}'
        assert extract_json(text)["content"] == "x = 1\ny = 2"

    def test_completely_invalid_raises(self):
        with pytest.raises(json.JSONDecodeError):
            extract_json("This is just text with no JSON at all.")

    def test_empty_string_raises(self):
        with pytest.raises(json.JSONDecodeError):
            extract_json("")

    def test_nested_json(self):
        text = '{"tool": "edit_file", "searchReplaceBlocks": [{"search": "a"}]}'
        result = extract_json(text)
        assert result["searchReplaceBlocks"][0]["search"] == "a"

    def test_markdown_fence_plain(self):
        text = '```\n{"key": "value"}\n```'
        assert extract_json(text) == {"key": "value"}

    def test_whitespace_padding(self):
        text = '   \n  {"key": "value"}  \n  '
        assert extract_json(text) == {"key": "value"}
