"""Filtering over a conversation log."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from grant_agent.types import ConversationMessage, Priority, Role

logger = logging.getLogger(__name__)

Module = Literal["Find", "Create", "Validate", "Readapt"]

MODULE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Find": ("explora", "buscar", "oportunidades", "convocatorias", "find", "search"),
    "Create": ("inventa", "crear", "generar", "redactar", "create", "draft"),
    "Validate": ("ponder", "validar", "evaluar", "simular", "validate", "evaluate"),
    "Readapt": ("transcripto", "adaptar", "modificar", "readapt", "adapt"),
}

_MIN_WORD_LENGTH = 3


class SearchFilters(BaseModel):
    """Every set field narrows the result; unset fields match everything."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    text: str | None = Field(default=None, validation_alias=AliasChoices("text", "search", "query"))
    date_from: datetime | None = Field(
        default=None, validation_alias=AliasChoices("dateFrom", "date_from")
    )
    date_to: datetime | None = Field(default=None, validation_alias=AliasChoices("dateTo", "date_to"))
    role: Role | None = None
    priority: Priority | None = None
    module: Module | None = None
    semantic: str | None = Field(
        default=None, validation_alias=AliasChoices("semantic", "semanticQuery")
    )


def search_conversations(
    messages: Sequence[ConversationMessage], filters: SearchFilters
) -> list[ConversationMessage]:
    results = list(messages)
    if filters.text:
        needle = filters.text.lower()
        results = [message for message in results if needle in message.text.lower()]
    if filters.date_from is not None:
        start = _aware(filters.date_from)
        results = [message for message in results if _timestamp(message) >= start]
    if filters.date_to is not None:
        end = _aware(filters.date_to)
        results = [message for message in results if _timestamp(message) <= end]
    if filters.role:
        results = [message for message in results if message.role == filters.role]
    if filters.priority:
        results = [message for message in results if message.priority == filters.priority]
    if filters.module:
        keywords = MODULE_KEYWORDS[filters.module]
        results = [
            message
            for message in results
            if any(keyword in message.text.lower() for keyword in keywords)
        ]
    if filters.semantic:
        results = semantic_search(results, filters.semantic)
    return results


def semantic_search(
    messages: Sequence[ConversationMessage], query: str
) -> list[ConversationMessage]:
    """Keep messages containing at least one query word longer than two characters."""
    words = [word for word in re.split(r"\s+", query.lower()) if len(word) >= _MIN_WORD_LENGTH]
    if not words:
        return list(messages)
    return [
        message
        for message in messages
        if any(word in message.text.lower() for word in words)
    ]


def _timestamp(message: ConversationMessage) -> datetime:
    try:
        return _aware(datetime.fromisoformat(message.timestamp))
    except ValueError:
        logger.debug("Unparseable timestamp %r", message.timestamp)
        return datetime.min.replace(tzinfo=timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
