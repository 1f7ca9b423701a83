"""Pydantic models for candidate blocks, repair attempts, and parsed tool calls."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolCallStatus(str, Enum):
    DETECTED = "detected"
    PROCESSING = "processing"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class CandidateBlock(BaseModel):
    """A span of the buffer suspected of holding a tool-call payload.

    ``raw_text`` is always ``buffer[start_index:end_index]``. ``span_start`` and
    ``span_end`` cover the whole authored span that gets replaced by a
    placeholder; for fenced blocks this includes the fence markers.
    """

    model_config = ConfigDict(frozen=True)

    raw_text: str
    start_index: int
    end_index: int
    source_kind: Literal["bare", "fenced"]
    span_start: int
    span_end: int

    def contains(self, other: CandidateBlock) -> bool:
        return self.span_start <= other.span_start and other.span_end <= self.span_end

    def overlaps(self, other: CandidateBlock) -> bool:
        return self.span_start < other.span_end and other.span_start < self.span_end


class RepairAttemptResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: Any = None
    fixes_applied: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    strategy: str | None = None  # winning tier, None on failure
    processing_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.data is not None


class SearchReplaceBlock(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    search: str
    replace: str = ""
    replace_all: bool | None = Field(default=None, alias="replaceAll")
    occurrence_index: int | None = Field(default=None, alias="occurrenceIndex")
    validate_after: str | None = Field(default=None, alias="validateAfter")


class ParsedToolCall(BaseModel):
    """A tool call recovered from the assistant's text.

    Created once per successfully repaired candidate with status ``detected``.
    The executor owns every later status transition, via ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tool: str
    name: str
    path: str | None = None
    content: str | None = None
    operation: str | None = None
    search: str | None = None
    replace: str | None = None
    search_replace_blocks: list[SearchReplaceBlock] | None = None
    replace_all: bool = False
    occurrence_index: int | None = None
    validate_after: str | None = None
    dry_run: bool = False
    rollback_on_failure: bool = True
    args: dict[str, Any] = Field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.DETECTED
    start_time: float
    confidence: float = 1.0
    method: Literal["generic", "schema"] = "generic"
    fixes_applied: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    inferred_fields: list[str] = Field(default_factory=list)
    parse_duration_ms: float = 0.0

    @property
    def inferred(self) -> bool:
        """True when any required field was guessed rather than extracted."""
        return bool(self.inferred_fields)

    @property
    def placeholder(self) -> str:
        return f"[{self.tool.upper()}: {self.path or 'unknown'}]"


class ParseFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    context: str
    start_index: int = -1


class StreamParseResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tools: list[ParsedToolCall] = Field(default_factory=list)
    processed_content: str = ""
    errors: list[ParseFailure] = Field(default_factory=list)
    resolved_offsets: list[int] = Field(default_factory=list)
