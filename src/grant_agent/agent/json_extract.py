"""Recover JSON objects embedded in free-form model text.

Every function here fails closed: malformed or truncated input yields ``None``
rather than an exception.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)```", flags=re.IGNORECASE)


def find_balanced_object(text: str, start: int = 0) -> tuple[int, int] | None:
    """Return ``(begin, end)`` of the first balanced ``{...}`` at or after ``start``.

    Braces inside JSON string literals (including escaped quotes) are ignored.
    ``end`` is exclusive.
    """
    begin = text.find("{", start)
    if begin < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(begin, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return begin, index + 1
    return None


def parse_object_at(text: str, start: int = 0) -> dict[str, Any] | None:
    """Parse the balanced object that begins at or after ``start``."""
    span = find_balanced_object(text, start)
    if span is None:
        return None
    try:
        value = json.loads(text[span[0] : span[1]])
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def first_json_object(text: str) -> dict[str, Any] | None:
    """Return the first parseable object, trying each ``{`` in turn."""
    position = 0
    while True:
        span = find_balanced_object(text, position)
        if span is None:
            return None
        try:
            value = json.loads(text[span[0] : span[1]])
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        position = span[0] + 1


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Prefer a fenced code block; otherwise scan the whole text."""
    for match in _FENCE_PATTERN.finditer(text):
        value = first_json_object(match.group(1))
        if value is not None:
            return value
    return first_json_object(text)
