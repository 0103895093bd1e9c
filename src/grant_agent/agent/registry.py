"""Immutable tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from time import perf_counter
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from grant_agent.types import Specialist, ToolResult, ToolTrace

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


class ToolDefinition(BaseModel):
    """Declarative tool entry.

    ``description`` is rendered verbatim into the system prompt, so its wording
    steers when the model asks for the tool.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    specialist: Specialist
    group: str
    tags: list[str] = Field(default_factory=list)


class ToolRegistry:
    """Read-only catalogue of tools, built once and injected where needed."""

    def __init__(self, definitions: Iterable[ToolDefinition]) -> None:
        tools: dict[str, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in tools:
                raise ValueError(f"Tool already registered: {definition.name}")
            tools[definition.name] = definition
        self._tools = MappingProxyType(tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def describe(self) -> str:
        return "\n".join(f"- {spec.name}: {spec.description}" for spec in self._tools.values())

    async def execute(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> ToolResult:
        """Run one tool. Never raises for tool-level failures."""
        spec = self._tools.get(name)
        if spec is None:
            available = ", ".join(self._tools)
            result = ToolResult(
                tool_name=name,
                success=False,
                payload={"error": f"Tool {name} not found. Available tools: {available}"},
            )
            _notify(observer, result, payload, 0.0)
            return result

        start = perf_counter()
        try:
            params = spec.args_schema.model_validate(payload)
        except ValidationError as exc:
            output = {
                "error": f"Invalid parameters for {name}.",
                "details": [error["msg"] for error in exc.errors()],
            }
        else:
            output = await self._run_handler(spec, params)
        latency_ms = (perf_counter() - start) * 1000.0

        success = "error" not in output
        result = ToolResult(
            tool_name=name,
            success=success,
            payload=output,
            specialist=spec.specialist,
        )
        _notify(observer, result, payload, latency_ms)
        return result

    @staticmethod
    async def _run_handler(spec: ToolDefinition, params: BaseModel) -> dict[str, Any]:
        try:
            return await spec.handler(params)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", spec.name, exc)
            return {"error": f"Error executing {spec.name}.", "details": str(exc)}


def _notify(
    observer: Callable[[ToolTrace], None] | None,
    result: ToolResult,
    payload: dict[str, Any],
    latency_ms: float,
) -> None:
    if observer is None:
        return
    observer(
        ToolTrace(
            name=result.tool_name,
            input_payload=payload,
            output_preview=json.dumps(result.payload, ensure_ascii=False, default=str)[:320],
            latency_ms=latency_ms,
            success=result.success,
        )
    )
