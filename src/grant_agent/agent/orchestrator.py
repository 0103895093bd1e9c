"""Two-phase agent loop: tool selection, concurrent dispatch, synthesis."""

from __future__ import annotations

import asyncio
import base64
import binascii
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from grant_agent.agent.directives import DEFAULT_STRATEGIES, Strategy, parse_directives
from grant_agent.agent.formatting import PREFORMATTERS
from grant_agent.agent.gateway import (
    BinaryPart,
    ContentPart,
    GatewayError,
    GatewayRequest,
    ModelGateway,
    TextPart,
    describe_error,
)
from grant_agent.agent.prompts import MASTER_PROMPT, SYNTHESIS_INSTRUCTIONS, build_system_prompt
from grant_agent.agent.registry import ToolRegistry
from grant_agent.config import AgentConfig
from grant_agent.obs.tracing import Timer, TraceStore, estimate_token_count
from grant_agent.types import (
    Attachment,
    ConversationMessage,
    Specialist,
    ToolInvocation,
    ToolInvocationRequest,
    ToolResult,
    ToolTrace,
    TurnResult,
)

logger = logging.getLogger(__name__)

_INLINE_BINARY_TYPES = (
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class TurnState(str, Enum):
    AWAITING_TOOL_SELECTION = "awaiting_tool_selection"
    AWAITING_SYNTHESIS = "awaiting_synthesis"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class ToolProgress:
    """Emitted once per discovered directive, before any tool runs."""

    tool_name: str
    specialist: Specialist | None


ProgressCallback = Callable[[ToolProgress], Awaitable[None] | None]


class GrantAgentOrchestrator:
    """Drives one conversation turn end to end.

    The turn moves through ``TurnState`` in order. Model failures and timeouts
    stop the turn where they happen and become a single apology message; tool
    failures are folded into the synthesis step instead.
    """

    def __init__(
        self,
        *,
        gateway: ModelGateway,
        tool_registry: ToolRegistry,
        trace_store: TraceStore | None = None,
        config: AgentConfig | None = None,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.gateway = gateway
        self.tool_registry = tool_registry
        self.trace_store = trace_store
        self.config = config or AgentConfig()
        self.strategies = tuple(strategies)
        self.system_prompt = build_system_prompt(tool_registry.describe())

    async def process_turn(
        self,
        user_text: str,
        attachments: Sequence[Attachment] = (),
        history: Sequence[ConversationMessage] = (),
        *,
        on_progress: ProgressCallback | None = None,
    ) -> TurnResult:
        state = TurnState.AWAITING_TOOL_SELECTION
        observed: list[ToolTrace] = []
        invocations: list[ToolInvocation] = []
        error: str | None = None

        with Timer() as timer:
            try:
                first_reply = await self._with_timeout(
                    self._select_tools(user_text, attachments, history),
                    self.config.selection_timeout_seconds,
                )
                directives = parse_directives(
                    first_reply, self.tool_registry.names(), self.strategies
                )
                if directives:
                    state = TurnState.AWAITING_SYNTHESIS
                    await self._announce(directives, on_progress)
                    results = await self._execute_all(directives, observed.append)
                    invocations = [
                        ToolInvocation(name=item.tool_name, arguments=item.params)
                        for item in directives
                    ]
                    response = await self._with_timeout(
                        self._synthesize(user_text, first_reply, results),
                        self.config.synthesis_timeout_seconds,
                    )
                else:
                    response = first_reply
                state = TurnState.DONE
            except (GatewayError, TimeoutError) as exc:
                error = (
                    "the model did not respond in time"
                    if isinstance(exc, TimeoutError)
                    else str(exc)
                )
                logger.exception("Turn failed while %s", state.value)
                response = self.config.error_message.format(message=error)
            except Exception:
                error = "an unexpected error occurred"
                logger.exception("Unexpected failure while %s", state.value)
                response = self.config.error_message.format(message=error)

        trace_id = None
        if self.trace_store is not None:
            record = self.trace_store.create_record(
                user_text=user_text,
                response=response,
                state=state.value,
                tool_traces=observed,
                input_tokens=estimate_token_count(user_text),
                output_tokens=estimate_token_count(response),
                latency_ms=timer.elapsed_ms,
                error=error,
            )
            trace_id = record.trace_id

        return TurnResult(
            response_text=response,
            tool_invocations=invocations,
            state=state.value,
            trace_id=trace_id,
        )

    async def _select_tools(
        self,
        user_text: str,
        attachments: Sequence[Attachment],
        history: Sequence[ConversationMessage],
    ) -> str:
        rendered = render_history(history, self.config.history_window)
        prompt = f"Conversation history:\n{rendered}\n\nUser: {user_text}" if rendered else user_text
        parts: list[ContentPart] = [TextPart(prompt)]
        parts.extend(attachment_parts(attachments))
        return await self._generate(
            GatewayRequest(system_instruction=self.system_prompt, parts=parts)
        )

    async def _synthesize(
        self, user_text: str, first_reply: str, results: list[ToolResult]
    ) -> str:
        prompt = build_synthesis_prompt(user_text, first_reply, results)
        return await self._generate(
            GatewayRequest(system_instruction=MASTER_PROMPT, parts=[TextPart(prompt)])
        )

    async def _generate(self, request: GatewayRequest) -> str:
        try:
            response = await self.gateway.generate(request)
        except GatewayError:
            raise
        except Exception as exc:
            raise GatewayError(describe_error(exc)) from exc
        return response.text

    async def _announce(
        self,
        directives: list[ToolInvocationRequest],
        on_progress: ProgressCallback | None,
    ) -> None:
        if on_progress is None:
            return
        for directive in directives:
            spec = self.tool_registry.get(directive.tool_name)
            outcome = on_progress(
                ToolProgress(
                    tool_name=directive.tool_name,
                    specialist=spec.specialist if spec is not None else None,
                )
            )
            if inspect.isawaitable(outcome):
                await outcome

    async def _execute_all(
        self,
        directives: list[ToolInvocationRequest],
        observer: Callable[[ToolTrace], None],
    ) -> list[ToolResult]:
        return list(
            await asyncio.gather(
                *(self._execute_one(directive, observer) for directive in directives)
            )
        )

    async def _execute_one(
        self,
        directive: ToolInvocationRequest,
        observer: Callable[[ToolTrace], None],
    ) -> ToolResult:
        try:
            return await self._with_timeout(
                self.tool_registry.execute(
                    directive.tool_name, directive.params, observer=observer
                ),
                self.config.tool_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("Tool %s timed out", directive.tool_name)
            spec = self.tool_registry.get(directive.tool_name)
            return ToolResult(
                tool_name=directive.tool_name,
                success=False,
                payload={"error": f"{directive.tool_name} did not finish in time."},
                specialist=spec.specialist if spec is not None else None,
            )

    @staticmethod
    async def _with_timeout(awaitable: Awaitable[Any], seconds: float | None) -> Any:
        if seconds is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=seconds)


def render_history(history: Sequence[ConversationMessage], window: int) -> str:
    lines = []
    for message in list(history)[-window:]:
        speaker = "User" if message.role == "user" else "Assistant"
        lines.append(f"{speaker}: {message.text}")
    return "\n".join(lines)


def attachment_parts(attachments: Sequence[Attachment]) -> list[ContentPart]:
    parts: list[ContentPart] = []
    for attachment in attachments:
        mime_type = attachment.mime_type
        if mime_type.startswith("image/") or mime_type in _INLINE_BINARY_TYPES:
            parts.append(BinaryPart.from_encoded(attachment.data, mime_type))
        elif mime_type.startswith("text/"):
            try:
                content = base64.b64decode(attachment.data).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError):
                logger.warning("Skipping undecodable attachment %s", attachment.name)
                continue
            parts.append(TextPart(f"Attached file {attachment.name}:\n{content}"))
        else:
            logger.warning("Skipping attachment %s of type %s", attachment.name, mime_type)
    return parts


def build_synthesis_prompt(
    user_text: str, first_reply: str, results: list[ToolResult]
) -> str:
    intros: list[str] = []
    for result in results:
        specialist = result.specialist
        if result.success and specialist is not None:
            line = f"I spoke with {specialist.name} from {specialist.module} ({result.tool_name})."
            if line not in intros:
                intros.append(line)

    sections = [
        f"User request: {user_text}",
        "",
        first_reply,
        "",
        "## Tool Results",
        "",
        *intros,
    ]
    for result in results:
        body = json.dumps(result.to_prompt_payload(), ensure_ascii=False, indent=2, default=str)
        sections.extend(["", f"### {result.tool_name}", "```json", body, "```"])
        formatter = PREFORMATTERS.get(result.tool_name)
        if result.success and formatter is not None:
            rendered = formatter(result.payload)
            if rendered:
                sections.extend(
                    ["", f"#### Pre-formatted output for {result.tool_name} (copy verbatim)", "", rendered]
                )
    sections.extend(["", SYNTHESIS_INSTRUCTIONS])
    return "\n".join(sections)
