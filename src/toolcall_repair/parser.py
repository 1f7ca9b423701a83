"""Stream parser, the public entry point for tool-call extraction.

``StreamParser.parse`` is a pure function of its buffer: it locates candidate
blocks, drives the repair cascade (falling back to schema reconstruction),
assembles the survivors into ``ParsedToolCall`` objects, and rewrites the
buffer with a placeholder in place of every resolved block.

Streaming use: when ``parse`` is called again on a longer version of the same
buffer, blocks that already resolved keep the same ``start_index``. Pass those
offsets back as ``resolved_offsets`` (or use ``StreamSession``) and they are
still replaced by their placeholder but never re-emitted as tools. Calls for
one logical stream must be serialized by the caller.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from typing import TYPE_CHECKING

from .assembler import ToolCallAssembler
from .extraction.cascade import GenericRepairCascade
from .extraction.locator import BlockLocator
from .extraction.reconstruct import SchemaAwareReconstructor
from .models import CandidateBlock, ParsedToolCall, ParseFailure, StreamParseResult
from .schemas.registry import ToolSchemaRegistry, default_registry
from .schemas.store import SchemaStore

if TYPE_CHECKING:
    from .config import ToolcallRepairConfig

logger = logging.getLogger("toolcall-repair")

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


class StreamParser:
    """Extract tool calls from assistant text and rewrite it with placeholders."""

    def __init__(
        self,
        registry: ToolSchemaRegistry | None = None,
        locator: BlockLocator | None = None,
        cascade: GenericRepairCascade | None = None,
        reconstructor: SchemaAwareReconstructor | None = None,
        assembler: ToolCallAssembler | None = None,
        reconstruct: bool = True,
        min_confidence: float = 0.5,
        max_context_chars: int = 200,
    ) -> None:
        self._registry = registry or default_registry()
        self._locator = locator or BlockLocator(self._registry)
        self._cascade = cascade or GenericRepairCascade()
        self._reconstructor = None
        if reconstruct:
            self._reconstructor = reconstructor or SchemaAwareReconstructor(
                self._cascade, self._registry
            )
        self._assembler = assembler or ToolCallAssembler()
        self._min_confidence = min_confidence
        self._max_context_chars = max_context_chars

    @classmethod
    def from_config(cls, config: ToolcallRepairConfig) -> StreamParser:
        registry = ToolSchemaRegistry()
        if config.schemas_file:
            registry = registry.with_schemas(SchemaStore(config.schemas_file).load())
        cascade = GenericRepairCascade(
            escape_control_chars=config.repair.escape_control_chars,
            aggressive_unicode_escape=config.repair.aggressive_unicode_escape,
            fix_common_mistakes=config.repair.fix_common_mistakes,
        )
        return cls(
            registry=registry,
            locator=BlockLocator(
                registry,
                scan_fenced=config.parser.scan_fenced,
                scan_bare=config.parser.scan_bare,
            ),
            cascade=cascade,
            reconstructor=SchemaAwareReconstructor(
                cascade, registry, config.reconstruction.confidence_scale
            ),
            reconstruct=config.reconstruction.enabled,
            min_confidence=config.parser.min_confidence,
            max_context_chars=config.parser.max_context_chars,
        )

    @property
    def registry(self) -> ToolSchemaRegistry:
        return self._registry

    @property
    def cascade(self) -> GenericRepairCascade:
        return self._cascade

    @property
    def reconstructor(self) -> SchemaAwareReconstructor | None:
        return self._reconstructor

    def has_tool_calls(self, text: str) -> bool:
        return self._locator.has_tool_calls(text)

    def parse(
        self, buffer: str, resolved_offsets: Collection[int] = ()
    ) -> StreamParseResult:
        """Parse ``buffer`` into ``{tools, processed_content}``.

        Never raises: an internal failure yields no tools and the buffer
        unchanged.
        """
        if not buffer:
            return StreamParseResult(processed_content=buffer or "")
        try:
            return self._parse(buffer, frozenset(resolved_offsets))
        except Exception as e:
            logger.exception("Tool-call extraction failed; returning buffer unchanged")
            return StreamParseResult(
                processed_content=buffer,
                errors=[
                    ParseFailure(
                        message=f"Critical parsing error: {e}",
                        context=self._truncate(buffer),
                    )
                ],
            )

    def parse_single(self, json_text: str) -> ParsedToolCall | None:
        """Parse and validate exactly one payload; fence markers are tolerated."""
        if not json_text or not json_text.strip():
            return None
        cleaned = _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", json_text.strip()))
        call, reason = self._resolve(cleaned)
        if call is None:
            logger.warning(f"Single tool call rejected: {reason}")
        return call

    def _parse(self, buffer: str, resolved: frozenset[int]) -> StreamParseResult:
        tools: list[ParsedToolCall] = []
        errors: list[ParseFailure] = []
        replacements: list[tuple[CandidateBlock, str]] = []
        offsets: list[int] = []

        for candidate in self._locator.locate(buffer):
            call, reason = self._resolve(candidate.raw_text)
            if call is None:
                logger.warning(
                    f"Skipping candidate at offset {candidate.start_index}: {reason}"
                )
                errors.append(
                    ParseFailure(
                        message=reason or "Unrecoverable candidate",
                        context=self._truncate(candidate.raw_text),
                        start_index=candidate.start_index,
                    )
                )
                continue

            offsets.append(candidate.start_index)
            replacements.append((candidate, call.placeholder))
            if candidate.start_index in resolved:
                continue
            logger.info(
                f"Extracted {call.tool} call ({call.method}, "
                f"confidence={call.confidence:.2f}, path={call.path or '-'})"
            )
            tools.append(call)

        return StreamParseResult(
            tools=tools,
            processed_content=self._substitute(buffer, replacements),
            errors=errors,
            resolved_offsets=offsets,
        )

    def _resolve(self, raw_text: str) -> tuple[ParsedToolCall | None, str | None]:
        """Run one candidate through found -> repaired | reconstructed | failed."""
        result = self._cascade.repair(raw_text)
        method = "generic"
        inferred: tuple[str, ...] = ()
        if not result.ok and self._reconstructor is not None:
            result, rebuilt = self._reconstructor.repair(raw_text)
            method = "schema"
            if rebuilt is not None:
                inferred = rebuilt.inferred_fields
        if not result.ok:
            detail = result.warnings[-1] if result.warnings else "no strategy succeeded"
            return None, f"Unrecoverable candidate: {detail}"

        data = result.data
        if not isinstance(data, dict):
            return None, "Parsed value is not a JSON object"
        tool = data.get("tool")
        if not isinstance(tool, str) or not tool:
            return None, 'Missing "tool" field'
        schema = self._registry.find(tool)
        if schema is None:
            return None, f"Unknown tool: {tool}"
        missing = schema.missing_required(data)
        if missing:
            return None, f"Invalid tool call: missing required field {', '.join(missing)}"
        if result.confidence < self._min_confidence:
            return None, (
                f"Confidence {result.confidence:.2f} below "
                f"threshold {self._min_confidence:.2f}"
            )

        call = self._assembler.assemble(
            data,
            schema.name,
            repair=result,
            method=method,
            inferred_fields=inferred,
            extra_warnings=schema.type_warnings(data),
        )
        return call, None

    @staticmethod
    def _substitute(
        buffer: str, replacements: list[tuple[CandidateBlock, str]]
    ) -> str:
        # Offsets all refer to the original buffer; rewrite in one pass.
        pieces = []
        cursor = 0
        for candidate, placeholder in sorted(replacements, key=lambda r: r[0].span_start):
            if candidate.span_start < cursor:
                continue
            pieces.append(buffer[cursor : candidate.span_start])
            pieces.append(placeholder)
            cursor = candidate.span_end
        pieces.append(buffer[cursor:])
        return "".join(pieces)

    def _truncate(self, text: str) -> str:
        if len(text) <= self._max_context_chars:
            return text
        return text[: self._max_context_chars] + "..."


class StreamSession:
    """Track resolved offsets across repeated parses of one growing buffer.

    Each ``feed`` returns only the tool calls that were not already emitted by
    an earlier ``feed`` on a prefix of the same buffer. One session per stream.
    """

    def __init__(self, parser: StreamParser | None = None) -> None:
        self._parser = parser or StreamParser()
        self._resolved: set[int] = set()

    @property
    def resolved_offsets(self) -> frozenset[int]:
        return frozenset(self._resolved)

    def feed(self, buffer: str) -> StreamParseResult:
        result = self._parser.parse(buffer, self._resolved)
        self._resolved.update(result.resolved_offsets)
        return result

    def reset(self) -> None:
        self._resolved.clear()
