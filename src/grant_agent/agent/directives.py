"""Tool-directive parsing.

Each strategy is a pure function ``(text, tool_names) -> list[ToolInvocationRequest]``.
``parse_directives`` tries them in order and stops at the first one that finds
anything, so exact structured forms always win over free-text inference.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

from grant_agent.agent.json_extract import (
    find_balanced_object,
    first_json_object,
    parse_object_at,
)
from grant_agent.types import ToolInvocationRequest

logger = logging.getLogger(__name__)

Strategy = Callable[[str, Sequence[str]], list[ToolInvocationRequest]]

CONCEPT_TOOL = "generateConcept"

_TOOL_FENCE = re.compile(r"```tool[ \t]*\n?([\s\S]*?)```", flags=re.IGNORECASE)
_JSON_FENCE = re.compile(r"```json[ \t]*\n?([\s\S]*?)```", flags=re.IGNORECASE)
_INLINE_START = re.compile(r'\{\s*"tool"\s*:')
_ACTION_VERBS = (
    "usar",
    "utilizar",
    "ejecutar",
    "llamar",
    "comunicar",
    "generar",
    "crear",
    "use",
    "call",
    "run",
    "execute",
    "invoke",
)
_CONCEPT_INTENT = re.compile(
    r"\b(?:comunicar(?:me)?|hablar|contactar|llamar)\s+(?:con\s+|a\s+)?inventa\b"
    r"|\binventa\s+(?:para\s+)?(?:generar|crear)\b"
    r"|generar\s+(?:el\s+|un\s+)?concepto"
    r"|concepto\s+(?:del\s+|de\s+)?proyecto"
    r"|generat(?:e|ing)\s+(?:the\s+|a\s+)?(?:project\s+)?concept",
    flags=re.IGNORECASE,
)


def _directive_from(obj: dict[str, Any] | None) -> ToolInvocationRequest | None:
    if obj is None:
        return None
    tool = obj.get("tool")
    params = obj.get("params")
    if not isinstance(tool, str) or not tool.strip():
        return None
    if not isinstance(params, dict):
        return None
    return ToolInvocationRequest(tool_name=tool.strip(), params=params)


def _parse_fenced(pattern: re.Pattern[str], text: str) -> list[ToolInvocationRequest]:
    found: list[ToolInvocationRequest] = []
    for match in pattern.finditer(text):
        directive = _directive_from(parse_object_at(match.group(1)))
        if directive is not None:
            found.append(directive)
    return found


def parse_tool_fences(text: str, tool_names: Sequence[str]) -> list[ToolInvocationRequest]:
    """Canonical form: a fenced block tagged ``tool`` holding ``{tool, params}``."""
    del tool_names
    return _parse_fenced(_TOOL_FENCE, text)


def parse_json_fences(text: str, tool_names: Sequence[str]) -> list[ToolInvocationRequest]:
    del tool_names
    return _parse_fenced(_JSON_FENCE, text)


def parse_inline_objects(text: str, tool_names: Sequence[str]) -> list[ToolInvocationRequest]:
    del tool_names
    found: list[ToolInvocationRequest] = []
    consumed_until = 0
    for match in _INLINE_START.finditer(text):
        if match.start() < consumed_until:
            continue
        span = find_balanced_object(text, match.start())
        if span is None:
            continue
        directive = _directive_from(parse_object_at(text, span[0]))
        if directive is None:
            continue
        found.append(directive)
        consumed_until = span[1]
    return found


def parse_verb_mentions(text: str, tool_names: Sequence[str]) -> list[ToolInvocationRequest]:
    """Best-effort recovery: an action verb shortly before a known tool name.

    Only the first mentioned tool is returned. Parameters come from the first
    JSON object in the text, or are empty.
    """
    verbs = "|".join(_ACTION_VERBS)
    for name in tool_names:
        pattern = re.compile(
            rf"\b(?:{verbs})\b[^\n]{{0,60}}?\b{re.escape(name)}\b",
            flags=re.IGNORECASE,
        )
        if pattern.search(text):
            return [ToolInvocationRequest(tool_name=name, params=_scavenge_params(text))]
    return []


def parse_concept_intent(text: str, tool_names: Sequence[str]) -> list[ToolInvocationRequest]:
    """Last resort: the reply talks about starting concept generation."""
    if CONCEPT_TOOL not in tool_names or CONCEPT_TOOL in text:
        return []
    if not _CONCEPT_INTENT.search(text):
        return []
    return [ToolInvocationRequest(tool_name=CONCEPT_TOOL, params=_scavenge_params(text))]


def _scavenge_params(text: str) -> dict[str, Any]:
    obj = first_json_object(text)
    if obj is None:
        return {}
    params = obj.get("params")
    if isinstance(params, dict):
        return params
    return obj


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    parse_tool_fences,
    parse_json_fences,
    parse_inline_objects,
    parse_verb_mentions,
    parse_concept_intent,
)


def parse_directives(
    text: str,
    tool_names: Sequence[str],
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> list[ToolInvocationRequest]:
    for strategy in strategies:
        found = strategy(text, tool_names)
        if found:
            logger.debug("Directive strategy %s matched %d call(s)", strategy.__name__, len(found))
            return found
    return []
