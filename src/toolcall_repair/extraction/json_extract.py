"""Robust JSON extraction from a single LLM payload.

Used when the caller already knows the text is one JSON value (for instance
the ``repair`` CLI command) rather than a narrative with embedded calls:
  1. Strip markdown code fences (```json ... ```)
  2. Run the repair cascade on the whole text
  3. Run the repair cascade on the outermost { } span (leading/trailing noise)
  4. Truncation repair (close open brackets/braces)

The stream parser never uses step 4: a block that is still streaming must
not be reported as complete.
"""

from __future__ import annotations

import json

from .cascade import GenericRepairCascade, split_strings, trim_to_outer_object

_default_cascade = GenericRepairCascade()


def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        end = -1 if lines[-1].strip() == "```" else len(lines)
        text = "\n".join(lines[1:end]).strip()
    return text


def close_truncated(fragment: str) -> str:
    """Append the brackets and braces a truncated object never closed.

    Brackets inside strings are not counted.
    """
    fragment = fragment.rstrip().rstrip(",")
    closers = []
    for is_string, segment in split_strings(fragment, quotes='"'):
        if is_string:
            continue
        for ch in segment:
            if ch in "{[":
                closers.append("}" if ch == "{" else "]")
            elif ch in "}]" and closers:
                closers.pop()
    return fragment + "".join(reversed(closers))


def extract_json(text: str, cascade: GenericRepairCascade | None = None):
    """Extract a JSON value from an LLM response string.

    Raises json.JSONDecodeError if no valid JSON can be extracted.
    """
    cascade = cascade or _default_cascade
    text = strip_fences(text)

    result = cascade.repair(text)
    if result.ok:
        return result.data

    # Leading/trailing prose around the object
    inner = trim_to_outer_object(text)
    if inner != text:
        result = cascade.repair(inner)
        if result.ok:
            return result.data

    # Truncated output: close whatever is still open
    start = text.find("{")
    if start != -1:
        result = cascade.repair(close_truncated(text[start:]))
        if result.ok:
            return result.data

    raise json.JSONDecodeError("Could not extract JSON from LLM response", text, 0)
