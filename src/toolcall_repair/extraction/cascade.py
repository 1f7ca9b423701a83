"""Ordered repair strategies for almost-valid JSON emitted by language models.

Strategies run strictly in order and the first one that decodes wins:
  1. Strict parse                                          (confidence 1.0)
  2. Escape control characters inside strings, then parse  (confidence 1.0)
  3. Alternative preprocessing: tolerant decode of the untouched text, then
     \\uXXXX-escape every control character anywhere      (confidence 0.9)
  4. Common mistakes: trailing commas, bare keys, single quotes, comments,
     noise around the outermost object                     (confidence 0.8)
  5. Unescaped fallback: standard decoder on the whole untouched text
                                                           (confidence 1.0)
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable
from typing import Any

from ..models import RepairAttemptResult

logger = logging.getLogger("toolcall-repair")

_CONTROL_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\f": "\\f",
    "\b": "\\b",
}
_CONTROL_IN_STRING = re.compile("[\n\r\t\f\b]")
_ANY_CONTROL = re.compile(r"[\x00-\x1f\x7f]")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][A-Za-z0-9_$-]*)(\s*:)")
_LINE_COMMENT = re.compile(r"//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


class _Skip(Exception):
    """A strategy had nothing to change, so there is nothing to retry."""


def split_strings(text: str, quotes: str = "\"'") -> list[tuple[bool, str]]:
    """Split ``text`` into ``(is_string, segment)`` pieces.

    A string segment starts at an opening quote and ends at the matching quote,
    honouring backslash escapes. An unterminated string runs to end of text.
    """
    segments: list[tuple[bool, str]] = []
    n = len(text)
    plain_start = 0
    i = 0
    while i < n:
        ch = text[i]
        if ch not in quotes:
            i += 1
            continue
        if i > plain_start:
            segments.append((False, text[plain_start:i]))
        j = i + 1
        while j < n and text[j] != ch:
            j += 2 if text[j] == "\\" else 1
        end = min(j + 1, n)
        segments.append((True, text[i:end]))
        i = plain_start = end
    if plain_start < n:
        segments.append((False, text[plain_start:]))
    return segments


def _map_outside_strings(
    text: str, fn: Callable[[str], str], quotes: str = "\"'"
) -> str:
    return "".join(
        seg if is_str else fn(seg) for is_str, seg in split_strings(text, quotes)
    )


def escape_control_chars(value: str) -> str:
    """Replace literal newline/CR/tab/form-feed/backspace with escapes."""
    return _CONTROL_IN_STRING.sub(lambda m: _CONTROL_ESCAPES[m.group(0)], value)


def escape_control_chars_in_strings(text: str) -> str:
    return "".join(
        escape_control_chars(seg) if is_str else seg
        for is_str, seg in split_strings(text, quotes='"')
    )


def unicode_escape_all_controls(text: str) -> str:
    return _ANY_CONTROL.sub(lambda m: f"\\u{ord(m.group(0)):04x}", text)


def _single_to_double(segment: str) -> str:
    if not segment.startswith("'"):
        return segment
    closed = len(segment) > 1 and segment.endswith("'")
    body = segment[1:-1] if closed else segment[1:]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        out.append('\\"' if ch == '"' else ch)
        i += 1
    return '"' + "".join(out) + ('"' if closed else "")


def convert_single_quotes(text: str) -> str:
    return "".join(
        _single_to_double(seg) if is_str else seg for is_str, seg in split_strings(text)
    )


def strip_trailing_commas(text: str) -> str:
    return _map_outside_strings(text, lambda s: _TRAILING_COMMA.sub(r"\1", s))


def quote_bare_keys(text: str) -> str:
    return _map_outside_strings(text, lambda s: _BARE_KEY.sub(r'\1"\2"\3', s))


def strip_comments(text: str) -> str:
    return _map_outside_strings(
        text, lambda s: _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", s))
    )


def trim_to_outer_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start : end + 1]


class GenericRepairCascade:
    """Try increasingly aggressive parses until one produces a value."""

    def __init__(
        self,
        escape_control_chars: bool = True,
        aggressive_unicode_escape: bool = True,
        fix_common_mistakes: bool = True,
    ) -> None:
        self._escape_control_chars = escape_control_chars
        self._aggressive_unicode_escape = aggressive_unicode_escape
        self._fix_common_mistakes = fix_common_mistakes

    def repair(self, candidate: str) -> RepairAttemptResult:
        started = time.perf_counter()
        last_error = "Empty input"

        if candidate and candidate.strip():
            for name, confidence, strategy in self._strategies():
                # Only the winning strategy's fixes are reported
                fixes: list[str] = []
                try:
                    data = strategy(candidate, fixes)
                except _Skip:
                    continue
                except (ValueError, RecursionError) as e:
                    last_error = f"{name}: {e}"
                    logger.debug(f"Repair strategy {name} failed: {e}")
                    continue
                if data is None:
                    last_error = f"{name}: decoded to null"
                    continue
                return RepairAttemptResult(
                    data=data,
                    fixes_applied=fixes,
                    confidence=confidence,
                    strategy=name,
                    processing_ms=_elapsed_ms(started),
                )

        return RepairAttemptResult(
            data=None,
            confidence=0.0,
            warnings=[last_error],
            processing_ms=_elapsed_ms(started),
        )

    def parse(self, candidate: str) -> Any:
        """Return the repaired value, or None."""
        return self.repair(candidate).data

    def _strategies(self) -> list[tuple[str, float, Callable[[str, list[str]], Any]]]:
        strategies: list[tuple[str, float, Callable[[str, list[str]], Any]]] = [
            ("strict", 1.0, self._strict)
        ]
        if self._escape_control_chars:
            strategies.append(("control_chars", 1.0, self._control_chars))
        if self._aggressive_unicode_escape:
            strategies.append(("alternative", 0.9, self._alternative))
        if self._fix_common_mistakes:
            strategies.append(("common_mistakes", 0.8, self._common_mistakes))
        strategies.append(("unescaped_fallback", 1.0, self._unescaped_fallback))
        return strategies

    @staticmethod
    def _strict(text: str, fixes: list[str]) -> Any:
        return json.loads(text)

    @staticmethod
    def _control_chars(text: str, fixes: list[str]) -> Any:
        escaped = escape_control_chars_in_strings(text)
        if escaped == text:
            raise _Skip()
        fixes.append("Escaped control characters inside strings")
        return json.loads(escaped)

    @staticmethod
    def _alternative(text: str, fixes: list[str]) -> Any:
        try:
            return json.loads(text, strict=False)
        except ValueError:
            pass
        escaped = unicode_escape_all_controls(text)
        if escaped == text:
            raise _Skip()
        fixes.append("Escaped all control characters as \\uXXXX")
        return json.loads(escaped)

    @staticmethod
    def _common_mistakes(text: str, fixes: list[str]) -> Any:
        transforms = (
            ("Removed trailing commas", strip_trailing_commas),
            ("Quoted bare object keys", quote_bare_keys),
            ("Converted single-quoted strings", convert_single_quotes),
            ("Removed comments", strip_comments),
            ("Trimmed text outside the outermost object", trim_to_outer_object),
        )
        current = text
        last_error: ValueError | None = None
        for description, transform in transforms:
            fixed = transform(current)
            if fixed == current:
                continue
            fixes.append(description)
            current = fixed
            try:
                return json.loads(current, strict=False)
            except ValueError as e:
                last_error = e
        if last_error is None:
            raise _Skip()
        raise last_error

    @staticmethod
    def _unescaped_fallback(text: str, fixes: list[str]) -> Any:
        data = json.loads(text)
        fixes.append("Parsed with the standard decoder")
        return data


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
