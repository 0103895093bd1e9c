"""Model gateway: the single seam between the agent and the chat model provider."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from grant_agent.config import GatewayConfig

logger = logging.getLogger(__name__)

_WEB_SEARCH_TOOL = {"type": "web_search_preview"}


class GatewayError(RuntimeError):
    """Raised when the model provider cannot produce a reply."""


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class BinaryPart:
    """Inline binary content. ``data`` is base64 without a data-URI prefix."""

    mime_type: str
    data: str

    @classmethod
    def from_encoded(cls, data: str, mime_type: str) -> BinaryPart:
        if data.startswith("data:") and "," in data:
            header, _, body = data.partition(",")
            declared = header[5:].split(";", 1)[0]
            return cls(mime_type=declared or mime_type, data=body)
        return cls(mime_type=mime_type, data=data)


ContentPart = TextPart | BinaryPart


@dataclass(slots=True)
class GatewayRequest:
    system_instruction: str
    parts: list[ContentPart]
    json_schema: type[BaseModel] | None = None
    grounding: bool = False


@dataclass(slots=True)
class GatewayResponse:
    text: str
    data: dict[str, Any] | None = None


class ModelGateway(Protocol):
    async def generate(self, request: GatewayRequest) -> GatewayResponse: ...


class LangChainGateway:
    """Gateway backed by any LangChain chat model.

    Structured output is enforced through ``with_structured_output`` unless the
    request asks for web grounding, in which case the provider search tool is
    bound and the caller must recover JSON from free text.
    """

    def __init__(self, llm: Any, config: GatewayConfig | None = None) -> None:
        self.llm = llm
        self.config = config or GatewayConfig()

    async def generate(self, request: GatewayRequest) -> GatewayResponse:
        messages = [
            SystemMessage(content=request.system_instruction),
            HumanMessage(content=to_content_blocks(request.parts)),
        ]
        grounded = request.grounding and self.config.grounding_enabled
        try:
            if request.json_schema is not None and not grounded:
                structured = self.llm.with_structured_output(request.json_schema)
                result = await structured.ainvoke(messages)
                data = _dump(result)
                return GatewayResponse(text=json.dumps(data, ensure_ascii=False), data=data)

            model = self.llm.bind_tools([_WEB_SEARCH_TOOL]) if grounded else self.llm
            message = await model.ainvoke(messages)
        except Exception as exc:
            logger.warning("Model call failed: %s", exc)
            raise GatewayError(describe_error(exc)) from exc
        return GatewayResponse(text=message_text(message))


class UnavailableGateway:
    """Gateway used when no chat model is configured."""

    async def generate(self, request: GatewayRequest) -> GatewayResponse:
        del request
        raise GatewayError("the language model is not configured")


def to_content_blocks(parts: list[ContentPart]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif part.mime_type.startswith("image/"):
            blocks.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{part.mime_type};base64,{part.data}"},
                }
            )
        else:
            blocks.append(
                {
                    "type": "file",
                    "source_type": "base64",
                    "mime_type": part.mime_type,
                    "data": part.data,
                }
            )
    return blocks


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content)


def describe_error(exc: BaseException) -> str:
    text = str(exc).strip()
    if not text:
        return exc.__class__.__name__
    first_line = text.splitlines()[0]
    return first_line[:200]


def _dump(result: Any) -> dict[str, Any]:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, dict):
        return result
    raise GatewayError("structured output was not an object")
