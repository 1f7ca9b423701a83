"""Locate candidate tool-call blocks inside a streamed text buffer.

Two independent scans feed one candidate list:
  1. Fenced blocks: bare ``` or ```json fences whose payload is an object, or
     a run of objects (one candidate each). The fence is an explicit
     authorial signal, so no name pre-filter applies.
  2. Bare blocks: one forward pass tracking strings and brace depth. An
     object holding a ``"tool": "<registered name>"`` marker outside any
     string is reported once its top-level object has closed.

A brace that never closes before the end of the buffer yields nothing, and
neither does anything nested inside it, so a block that is still streaming
is never reported. The bare pass is linear in the buffer length.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator

from ..models import CandidateBlock
from ..schemas.registry import ToolSchemaRegistry, default_registry

logger = logging.getLogger("toolcall-repair")

_FENCE = "```"
_FENCE_OPEN = re.compile(r"```([A-Za-z0-9_+-]*)[ \t]*\r?\n?")
_JSON_FENCE_TAGS = {"", "json", "jsonc", "json5"}


def scan_balanced(text: str, start: int) -> int | None:
    """Return the offset just past the '}' that closes ``text[start]``.

    Tracks quoted strings (either quote style, closed only by the quote that
    opened them, honouring backslash escapes) and counts braces outside of
    strings only. Returns None when the object is still open at end of text.
    """
    depth = 0
    quote = ""
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
            continue
        if ch == '"' or ch == "'":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
            if depth < 0:
                return None
    return None


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


class BlockLocator:
    """Find fenced and bare candidate blocks in a buffer."""

    def __init__(
        self,
        registry: ToolSchemaRegistry | None = None,
        scan_fenced: bool = True,
        scan_bare: bool = True,
    ) -> None:
        self._registry = registry or default_registry()
        self._scan_fenced = scan_fenced
        self._scan_bare = scan_bare

    def has_tool_calls(self, text: str) -> bool:
        """Cheap check for a registered tool marker, no balanced scan."""
        return bool(self._registry.tool_name_pattern().search(text or ""))

    def locate(self, buffer: str) -> list[CandidateBlock]:
        accepted: list[CandidateBlock] = []
        if self._scan_fenced:
            for candidate in self._fenced_blocks(buffer):
                self._accept(accepted, candidate)
        if self._scan_bare:
            for candidate in self._bare_blocks(buffer):
                self._accept(accepted, candidate)
        accepted.sort(key=lambda c: c.span_start)
        logger.debug(f"Located {len(accepted)} candidate block(s)")
        return accepted

    @staticmethod
    def _accept(accepted: list[CandidateBlock], candidate: CandidateBlock) -> None:
        if any(a.contains(candidate) for a in accepted):
            return
        # A larger block swallows the ones it contains
        swallowed = [a for a in accepted if candidate.contains(a)]
        for a in swallowed:
            accepted.remove(a)
        if any(a.overlaps(candidate) for a in accepted):
            return
        accepted.append(candidate)

    def _fenced_blocks(self, buffer: str) -> Iterator[CandidateBlock]:
        pos = 0
        while True:
            m = _FENCE_OPEN.search(buffer, pos)
            if m is None:
                return
            close = buffer.find(_FENCE, m.end())
            if close == -1:
                return  # fence still streaming
            if m.group(1).lower() not in _JSON_FENCE_TAGS:
                pos = close + len(_FENCE)
                continue

            payload_start = _skip_ws(buffer, m.end())
            if payload_start >= close or buffer[payload_start] != "{":
                pos = close + len(_FENCE)
                continue

            objects, fence_at = self._fenced_objects(buffer, payload_start)
            if fence_at is None:
                # Damaged payload: take everything up to the first closing fence
                objects = [(payload_start, len(buffer[:close].rstrip()))]
            else:
                close = fence_at

            last = len(objects) - 1
            for i, (start, end) in enumerate(objects):
                yield CandidateBlock(
                    raw_text=buffer[start:end],
                    start_index=start,
                    end_index=end,
                    source_kind="fenced",
                    span_start=m.start() if i == 0 else start,
                    span_end=close + len(_FENCE) if i == last else end,
                )
            pos = close + len(_FENCE)

    @staticmethod
    def _fenced_objects(
        buffer: str, start: int
    ) -> tuple[list[tuple[int, int]], int | None]:
        """Split a fence payload into consecutive balanced objects.

        Returns the object bounds and the offset of the closing fence, or no
        fence offset when the payload is not a clean run of objects.
        """
        objects: list[tuple[int, int]] = []
        cursor = start
        while True:
            end = scan_balanced(buffer, cursor)
            if end is None:
                return objects, None
            objects.append((cursor, end))
            after = _skip_ws(buffer, end)
            if buffer.startswith(_FENCE, after):
                return objects, after
            if after < len(buffer) and buffer[after] == "{":
                cursor = after
                continue
            return objects, None

    def _bare_blocks(self, buffer: str) -> Iterator[CandidateBlock]:
        """Single forward pass over ``buffer``.

        Tracks string state and brace depth. A marker counts only outside
        strings, and marks the innermost object open at that point. Marked
        objects are reported once their top-level object has closed; anything
        inside a top-level object that is still open is never reported. A
        fence outside any string abandons the open objects, since no object
        can legitimately contain one.
        """
        markers = [m.start() for m in self._registry.tool_name_pattern().finditer(buffer)]
        if not markers:
            return
        next_marker = 0
        stack: list[list] = []  # [start, marked]
        pending: list[tuple[int, int]] = []
        quote = ""
        escaped = False
        i = 0
        n = len(buffer)
        while i < n:
            ch = buffer[i]
            if quote:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == quote:
                    quote = ""
                i += 1
                continue

            while next_marker < len(markers) and markers[next_marker] < i:
                next_marker += 1  # inside a string or outside any object
            if next_marker < len(markers) and markers[next_marker] == i and stack:
                stack[-1][1] = True

            if ch == "{":
                stack.append([i, False])
            elif not stack:
                pass
            elif ch == "}":
                start, marked = stack.pop()
                if marked:
                    pending.append((start, i + 1))
                if not stack:
                    for s, e in pending:
                        yield CandidateBlock(
                            raw_text=buffer[s:e],
                            start_index=s,
                            end_index=e,
                            source_kind="bare",
                            span_start=s,
                            span_end=e,
                        )
                    pending.clear()
            elif ch == '"' or ch == "'":
                quote = ch
            elif buffer.startswith(_FENCE, i):
                stack.clear()
                pending.clear()
                i += len(_FENCE)
                continue
            i += 1
