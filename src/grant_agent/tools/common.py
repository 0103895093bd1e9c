"""Helpers shared by every tool group: inputs, content parts and model calls."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from grant_agent.agent.gateway import (
    BinaryPart,
    ContentPart,
    GatewayRequest,
    ModelGateway,
    TextPart,
)
from grant_agent.agent.json_extract import extract_json_object
from grant_agent.config import DiscoveryConfig, ValidationConfig
from grant_agent.types import Specialist

EXPLORA = Specialist(name="Explora", module="Find")
PONDER = Specialist(name="Ponder", module="Validate")
INVENTA = Specialist(name="Inventa", module="Create")
TRANSCRIPTO = Specialist(name="Transcripto", module="Readapt")

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_BASE64_BODY = re.compile(r"^[A-Za-z0-9+/=]+$")
_MAGIC_PREFIXES = {
    "/9j/": "image/jpeg",
    "iVBORw0KGgo": "image/png",
    "JVBERi0": PDF_MIME,
    "UEsDB": DOCX_MIME,
}


@dataclass(slots=True)
class ToolContext:
    """Collaborators handed to every tool factory."""

    gateway: ModelGateway
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    today: Callable[[], date] = date.today


class ToolParams(BaseModel):
    """Base for alias-tolerant tool inputs. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FileInput(ToolParams):
    """An uploaded document, either base64 content or plain text."""

    name: str = Field(default="document", validation_alias=AliasChoices("name", "fileName", "filename"))
    mime_type: str | None = Field(
        default=None, validation_alias=AliasChoices("mimeType", "mime_type", "type")
    )
    data: str = Field(validation_alias=AliasChoices("data", "content", "base64"))

    @model_validator(mode="before")
    @classmethod
    def _wrap_plain_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"data": value}
        return value


def looks_like_base64(value: str) -> bool:
    if value.startswith("data:"):
        return True
    if any(value.startswith(prefix) for prefix in _MAGIC_PREFIXES):
        return True
    compact = re.sub(r"\s+", "", value)
    return len(compact) > 500 and bool(_BASE64_BODY.match(compact))


def sniff_mime(value: str, default: str = PDF_MIME) -> str:
    for prefix, mime_type in _MAGIC_PREFIXES.items():
        if value.startswith(prefix):
            return mime_type
    return default


def content_part(value: str, label: str, mime_type: str | None = None) -> ContentPart:
    """Route ``value`` to an inline binary part or a labelled text part."""
    if looks_like_base64(value):
        return BinaryPart.from_encoded(value.strip(), mime_type or sniff_mime(value))
    return TextPart(f"{label}:\n{value}")


def file_parts(files: Sequence[FileInput], label: str) -> list[ContentPart]:
    return [content_part(item.data, f"{label} ({item.name})", item.mime_type) for item in files]


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2)


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def split_terms(value: Any) -> list[str]:
    """Accept a list or a comma-separated string and return clean terms."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else as_list(value)
    terms: list[str] = []
    for item in items:
        text = str(item).strip()
        if text and text not in terms:
            terms.append(text)
    return terms


def flatten_context(value: Any) -> str:
    """Render a structured call context as labelled text sections."""
    if not isinstance(value, dict):
        return as_text(value)
    sections: list[str] = []
    labels = (
        ("Title", ("title", "name")),
        ("Description", ("description", "summary")),
        ("Objectives", ("objectives", "goals")),
        ("Thematic areas", ("thematicAreas", "thematic_areas", "topics")),
    )
    for label, keys in labels:
        for key in keys:
            if value.get(key):
                item = value[key]
                body = "\n".join(f"- {entry}" for entry in item) if isinstance(item, list) else str(item)
                sections.append(f"{label}:\n{body}")
                break
    if not sections:
        return json.dumps(value, ensure_ascii=False, indent=2)
    return "\n\n".join(sections)


async def generate_structured(
    gateway: ModelGateway,
    *,
    system_instruction: str,
    parts: list[ContentPart],
    schema: type[BaseModel],
    grounding: bool = False,
) -> dict[str, Any] | None:
    """Ask for ``schema``-shaped JSON; recover it from free text when needed."""
    response = await gateway.generate(
        GatewayRequest(
            system_instruction=system_instruction,
            parts=parts,
            json_schema=schema,
            grounding=grounding,
        )
    )
    if response.data is not None:
        return response.data
    return extract_json_object(response.text)


async def generate_text(
    gateway: ModelGateway, *, system_instruction: str, parts: list[ContentPart]
) -> str:
    response = await gateway.generate(
        GatewayRequest(system_instruction=system_instruction, parts=parts)
    )
    return response.text.strip()


def schema_description(schema: type[BaseModel]) -> str:
    return json.dumps(schema.model_json_schema(), ensure_ascii=False)
