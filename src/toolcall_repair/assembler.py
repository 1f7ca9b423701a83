"""Normalize a repaired JSON object into a ParsedToolCall."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from .models import ParsedToolCall, RepairAttemptResult, SearchReplaceBlock, ToolCallStatus

logger = logging.getLogger("toolcall-repair")

_PATH_KEYS = ("path", "file", "filename", "filePath")
_BLOCK_KEYS = ("searchReplaceBlocks", "search_replace_blocks", "blocks")


def new_tool_call_id() -> str:
    """Process-unique id: millisecond timestamp plus a random suffix."""
    return f"json_tool_{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}"


def _first(obj: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = obj.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return default


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _package_or_tool_name(parsed: dict[str, Any], tool_name: str) -> str:
    name = parsed.get("name")
    return name if isinstance(name, str) and name else tool_name


class ToolCallAssembler:
    """Map a generic parsed object onto the canonical ParsedToolCall fields.

    The full object is kept under ``args``. Status is always ``detected``;
    later transitions belong to the executor.
    """

    def assemble(
        self,
        parsed: dict[str, Any],
        tool_name: str,
        repair: RepairAttemptResult | None = None,
        method: str = "generic",
        inferred_fields: Iterable[str] = (),
        extra_warnings: Iterable[str] = (),
    ) -> ParsedToolCall:
        warnings = list(repair.warnings) if repair else []
        warnings.extend(extra_warnings)
        blocks = self._search_replace_blocks(_first(parsed, _BLOCK_KEYS), warnings)

        return ParsedToolCall(
            id=new_tool_call_id(),
            tool=tool_name,
            name=_package_or_tool_name(parsed, tool_name),
            path=_as_str(_first(parsed, _PATH_KEYS)),
            content=_as_str(parsed.get("content")),
            operation=_as_str(parsed.get("operation")),
            search=_as_str(parsed.get("search")),
            replace=_as_str(parsed.get("replace")),
            search_replace_blocks=blocks,
            replace_all=_as_bool(parsed.get("replaceAll"), False),
            occurrence_index=_as_int(parsed.get("occurrenceIndex")),
            validate_after=_as_str(parsed.get("validateAfter")),
            dry_run=_as_bool(parsed.get("dryRun"), False),
            rollback_on_failure=_as_bool(parsed.get("rollbackOnFailure"), True),
            args=dict(parsed),
            status=ToolCallStatus.DETECTED,
            start_time=time.time(),
            confidence=repair.confidence if repair else 1.0,
            method=method,
            fixes_applied=list(repair.fixes_applied) if repair else [],
            warnings=warnings,
            inferred_fields=list(inferred_fields),
            parse_duration_ms=repair.processing_ms if repair else 0.0,
        )

    @staticmethod
    def _search_replace_blocks(
        raw: Any, warnings: list[str]
    ) -> list[SearchReplaceBlock] | None:
        if raw is None:
            return None
        if not isinstance(raw, list):
            warnings.append("searchReplaceBlocks is not a list; ignored")
            return None
        blocks = []
        for i, item in enumerate(raw):
            if not isinstance(item, dict):
                warnings.append(f"searchReplaceBlocks[{i}] is not an object; skipped")
                continue
            try:
                blocks.append(SearchReplaceBlock.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Skipping malformed search/replace block {i}: {e}")
                warnings.append(f"searchReplaceBlocks[{i}] is malformed; skipped")
        return blocks
