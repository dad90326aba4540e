"""Parsing for the memory agents' JSON replies.

Parsing never raises: it returns :class:`Parsed` or
:class:`MalformedAgentResponse`, and the calling agent decides the fallback.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

_FENCE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n(.*?)\n?[ \t]*```\s*$", re.DOTALL)


@dataclass(frozen=True)
class Parsed:
    items: list[str]


@dataclass(frozen=True)
class MalformedAgentResponse:
    reason: str


ParseResult = Parsed | MalformedAgentResponse


def strip_code_fence(text: str) -> str:
    """Remove one surrounding Markdown code fence, if present."""
    match = _FENCE.match(text)
    if match:
        return match.group(1)
    return text.strip()


def parse_string_list(text: str, key: str) -> ParseResult:
    """Parse ``{"<key>": ["...", ...]}`` out of a model reply."""
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        return MalformedAgentResponse(f"not valid JSON: {exc.msg}")

    if not isinstance(data, dict):
        return MalformedAgentResponse(f"expected a JSON object, got {type(data).__name__}")
    if key not in data:
        return MalformedAgentResponse(f"missing key {key!r}")

    items = data[key]
    if not isinstance(items, list):
        return MalformedAgentResponse(f"{key!r} is not an array")
    if not all(isinstance(item, str) for item in items):
        return MalformedAgentResponse(f"{key!r} contains non-string entries")
    return Parsed(items=items)
