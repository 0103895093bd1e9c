"""FastAPI entrypoint for conversation turns, exports and trace endpoints."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from grant_agent.agent.gateway import LangChainGateway, ModelGateway, UnavailableGateway
from grant_agent.agent.orchestrator import GrantAgentOrchestrator
from grant_agent.config import AgentConfig, CacheConfig, DiscoveryConfig, GatewayConfig
from grant_agent.conversation.export import EXPORTERS
from grant_agent.conversation.search import SearchFilters, search_conversations
from grant_agent.conversation.store import ConversationStore
from grant_agent.obs.tracing import TraceStore
from grant_agent.tools.catalogue import build_default_registry
from grant_agent.tools.common import ToolContext
from grant_agent.tools.http import HttpFetcher, RequestCache
from grant_agent.types import Attachment, ConversationMessage, Priority, ToolInvocation

logger = logging.getLogger(__name__)


class ApiSettings(BaseModel):
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    db_path: str = "grant_agent.db"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ApiSettings:
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            db_path=os.getenv("GRANT_AGENT_DB", "grant_agent.db"),
            log_level=os.getenv("GRANT_AGENT_LOG_LEVEL", "INFO"),
        )


def _create_llm(settings: ApiSettings, config: GatewayConfig) -> Any:
    if not settings.openai_api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=settings.openai_model or config.model,
        temperature=config.temperature,
        api_key=settings.openai_api_key,
    )


class AttachmentIn(BaseModel):
    name: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)
    data: str


class TurnRequest(BaseModel):
    text: str = Field(min_length=1)
    attachments: list[AttachmentIn] = Field(default_factory=list)
    priority: Priority | None = None


_settings = ApiSettings.from_env()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Grant Agent", version="0.1.0")

_gateway_config = GatewayConfig(model=_settings.openai_model)
_llm = _create_llm(_settings, _gateway_config)
_gateway: ModelGateway = (
    LangChainGateway(_llm, _gateway_config) if _llm is not None else UnavailableGateway()
)
_agent_config = AgentConfig()
_discovery_config = DiscoveryConfig()
_fetcher = HttpFetcher(
    cache=RequestCache.from_config(CacheConfig()),
    config=_discovery_config,
)
_registry = build_default_registry(
    ToolContext(gateway=_gateway, discovery=_discovery_config), _fetcher
)
_trace_store = TraceStore()
_store = ConversationStore(_settings.db_path)
_orchestrator = GrantAgentOrchestrator(
    gateway=_gateway,
    tool_registry=_registry,
    trace_store=_trace_store,
    config=_agent_config,
)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": _llm is not None,
        "tools": _registry.names(),
        "trace_count": len(_trace_store),
    }


@app.post("/conversations/{conversation_id}/turns")
async def process_turn(conversation_id: str, request: TurnRequest) -> dict[str, Any]:
    history = await run_in_threadpool(
        _store.read, conversation_id, limit=_agent_config.history_window
    )
    attachments = tuple(
        Attachment(name=item.name, mime_type=item.mime_type, data=item.data)
        for item in request.attachments
    )
    result = await _orchestrator.process_turn(request.text, attachments, history)

    await run_in_threadpool(
        _record_exchange, conversation_id, request, attachments, result.response_text, result.tool_invocations
    )
    return {
        "response": result.response_text,
        "tool_calls": [asdict(item) for item in result.tool_invocations],
        "trace_id": result.trace_id,
    }


def _record_exchange(
    conversation_id: str,
    request: TurnRequest,
    attachments: tuple[Attachment, ...],
    response_text: str,
    tool_invocations: list[ToolInvocation],
) -> None:
    _store.append(
        conversation_id,
        ConversationMessage(
            role="user",
            text=request.text,
            priority=request.priority,
            attachments=attachments,
        ),
    )
    _store.append(
        conversation_id,
        ConversationMessage(
            role="model",
            text=response_text,
            tool_invocations=tuple(
                ToolInvocation(name=item.name, arguments=item.arguments)
                for item in tool_invocations
            ),
        ),
    )


@app.get("/conversations/{conversation_id}")
def conversation_detail(conversation_id: str) -> dict[str, Any]:
    messages = _store.read(conversation_id)
    return {"items": [message.to_dict() for message in messages]}


@app.delete("/conversations/{conversation_id}")
def clear_conversation(conversation_id: str) -> dict[str, Any]:
    return {"deleted": _store.clear(conversation_id)}


@app.get("/conversations/{conversation_id}/export", response_class=PlainTextResponse)
def export_conversation(
    conversation_id: str,
    export_format: Literal["markdown", "json", "text"] = Query(default="markdown", alias="format"),
) -> PlainTextResponse:
    messages = _store.read(conversation_id)
    if not messages:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    media_types = {"markdown": "text/markdown", "json": "application/json", "text": "text/plain"}
    return PlainTextResponse(EXPORTERS[export_format](messages), media_type=media_types[export_format])


@app.post("/conversations/{conversation_id}/search")
def search_conversation(conversation_id: str, filters: SearchFilters) -> dict[str, Any]:
    matches = search_conversations(_store.read(conversation_id), filters)
    return {"items": [message.to_dict() for message in matches]}


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
