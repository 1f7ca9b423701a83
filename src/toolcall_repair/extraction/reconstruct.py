"""Schema-guided reconstruction of tool calls too damaged for generic repair.

Only used after every generic strategy failed. The tool name is pulled out
with a tolerant regex, key/value pairs are scraped from the damaged text, and
a fresh object is assembled from the tool's schema. Required fields that
cannot be found are guessed and reported in ``inferred_fields`` so the
executor can treat them with suspicion. Guessing is best-effort only: a path
or content value picked by heuristic may simply be wrong.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from ..models import RepairAttemptResult
from ..schemas.registry import ToolSchema, ToolSchemaRegistry, default_registry
from .cascade import GenericRepairCascade, escape_control_chars

logger = logging.getLogger("toolcall-repair")

_TOOL_NAME = re.compile(r"""["']tool["']\s*:\s*["']([^"']+)["']""")
_FENCE_MARKER = re.compile(r"```[A-Za-z0-9_+-]*\n?")
_NEWLINES = re.compile(r"\r?\n")
_PAIR = re.compile(
    r'"([^"\\]+)"\s*:\s*'
    r"(?:"
    r'"((?:[^"\\]|\\.)*)"'  # string
    r"|(\[[^\]]*\])"  # array
    r"|(\{[^}]*\})"  # object
    r"|([^,}\]]*)"  # bare scalar
    r")",
    re.DOTALL,
)
_CODE_TOKENS = re.compile(
    r"\bimport\b|\bexport\b|\bfunction\b|\bclass\b|\bconst\b|\bdef\b|=>|[{}]"
)


class ReconstructionFailed(Exception):
    """Internal signal carrying the reason a reconstruction gave up."""


@dataclass(frozen=True)
class Reconstruction:
    """A synthesized payload plus what had to be guessed to build it."""

    tool: str
    json_text: str
    inferred_fields: tuple[str, ...] = ()
    extracted_keys: tuple[str, ...] = ()


def close_unterminated_string(text: str) -> str:
    """Close a double-quoted string left open at end of text.

    The closing quote goes before the first ``}``, ``]`` or ``,`` following the
    opening quote, or at end of text if none follows.
    """
    in_string = False
    escaped = False
    last_open = -1
    for i, ch in enumerate(text):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            if in_string:
                last_open = i
    if not in_string:
        return text

    close = len(text)
    for i in range(last_open + 1, len(text)):
        if text[i] in "}],":
            close = i
            break
    return text[:close] + '"' + text[close:]


def extract_pairs(text: str) -> dict[str, Any]:
    """Scrape ``"key": value`` pairs out of damaged JSON into a flat dict.

    A repeated key keeps its first value.
    """
    pairs: dict[str, Any] = {}
    for m in _PAIR.finditer(text):
        key, string, array, obj, scalar = m.groups()
        if key in pairs:
            continue
        if string is not None:
            pairs[key] = _decode_string(string)
        elif array is not None or obj is not None:
            raw = array if array is not None else obj
            try:
                pairs[key] = json.loads(raw, strict=False)
            except ValueError:
                pairs[key] = raw
        elif scalar is not None and scalar.strip():
            token = scalar.strip()
            try:
                pairs[key] = json.loads(token)
            except ValueError:
                pairs[key] = token
    return pairs


def _decode_string(raw: str) -> str:
    try:
        return json.loads('"' + escape_control_chars(raw) + '"', strict=False)
    except ValueError:
        return raw


class SchemaAwareReconstructor:
    """Rebuild a payload from its tool schema, then re-run the generic cascade."""

    def __init__(
        self,
        cascade: GenericRepairCascade | None = None,
        registry: ToolSchemaRegistry | None = None,
        confidence_scale: float = 0.8,
    ) -> None:
        self._cascade = cascade or GenericRepairCascade()
        self._registry = registry or default_registry()
        self._confidence_scale = confidence_scale
        exts = "|".join(re.escape(e) for e in self._registry.source_extensions)
        self._path_like = re.compile(r"^[\w@~./\\-]+\.(?:" + exts + r")$", re.IGNORECASE)

    def reconstruct(self, candidate: str) -> str | None:
        """Return a synthesized JSON string, or None if irrecoverable."""
        rebuilt = self.reconstruct_with_details(candidate)
        return rebuilt.json_text if rebuilt else None

    def reconstruct_with_details(self, candidate: str) -> Reconstruction | None:
        try:
            return self._reconstruct(candidate)
        except ReconstructionFailed as e:
            logger.debug(f"Schema reconstruction gave up: {e}")
            return None
        except Exception:
            logger.debug("Schema reconstruction raised", exc_info=True)
            return None

    def repair(
        self, candidate: str
    ) -> tuple[RepairAttemptResult, Reconstruction | None]:
        """Reconstruct ``candidate`` and feed the result back into the cascade.

        The second pass keeps its own strategy confidence scaled by
        ``confidence_scale``, since the payload had to be rebuilt.
        """
        try:
            rebuilt = self._reconstruct(candidate)
        except ReconstructionFailed as e:
            return RepairAttemptResult(warnings=[str(e)]), None
        except Exception as e:
            logger.debug("Schema reconstruction raised", exc_info=True)
            return RepairAttemptResult(warnings=[f"Reconstruction error: {e}"]), None

        second = self._cascade.repair(rebuilt.json_text)
        if not second.ok:
            return second, None

        warnings = list(second.warnings)
        warnings.extend(
            f"Inferred value for required field '{f}'" for f in rebuilt.inferred_fields
        )
        result = second.model_copy(
            update={
                "confidence": round(second.confidence * self._confidence_scale, 4),
                "strategy": "schema_reconstruction",
                "fixes_applied": [
                    f"Reconstructed from {rebuilt.tool} schema",
                    *second.fixes_applied,
                ],
                "warnings": warnings,
            }
        )
        return result, rebuilt

    def _reconstruct(self, candidate: str) -> Reconstruction:
        if not candidate:
            raise ReconstructionFailed("Empty input")
        m = _TOOL_NAME.search(candidate)
        if m is None:
            raise ReconstructionFailed("No tool identifier found in input")
        tool = m.group(1)
        schema = self._registry.find(tool)
        if schema is None:
            raise ReconstructionFailed(f"Unknown tool: {tool}")
        tool = schema.name

        cleaned = _FENCE_MARKER.sub("", candidate)
        cleaned = close_unterminated_string(cleaned)
        cleaned = _NEWLINES.sub(" ", cleaned).strip()

        pairs = extract_pairs(cleaned)
        pairs.pop("tool", None)
        obj, inferred = self._assemble(tool, schema, pairs)
        return Reconstruction(
            tool=tool,
            json_text=json.dumps(obj, indent=2),
            inferred_fields=tuple(inferred),
            extracted_keys=tuple(pairs),
        )

    def _assemble(
        self, tool: str, schema: ToolSchema, pairs: dict[str, Any]
    ) -> tuple[dict[str, Any], list[str]]:
        obj: dict[str, Any] = {"tool": tool}
        inferred: list[str] = []
        for field in schema.required_fields:
            if field == "tool":
                continue
            value = pairs.get(field)
            if value is not None and value != "":
                obj[field] = value
                continue
            obj[field] = self._infer(field, pairs, used=obj.values())
            inferred.append(field)

        for key, value in pairs.items():
            if key not in obj:
                obj[key] = value
        return obj, inferred

    def _infer(self, field: str, pairs: dict[str, Any], used) -> Any:
        taken = [v for v in used if isinstance(v, str)]
        strings = [
            v for v in pairs.values() if isinstance(v, str) and v and v not in taken
        ]
        if field == "path":
            for value in strings:
                if self._path_like.match(value.strip()):
                    return value.strip()
        elif field == "content":
            code_like = [v for v in strings if _CODE_TOKENS.search(v)]
            if code_like:
                return max(code_like, key=len)
        return f"inferred-{field}"
