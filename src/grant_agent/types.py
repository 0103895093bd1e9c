"""Shared domain models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Role = Literal["user", "model"]
Priority = Literal["Low", "Medium", "High"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class Attachment:
    """A named base64 payload attached to a user turn."""

    name: str
    mime_type: str
    data: str


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    """A tool call actually executed during a turn."""

    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """One turn of the conversation log. Never mutated after creation."""

    role: Role
    text: str
    timestamp: str = field(default_factory=utc_now_iso)
    priority: Priority | None = None
    attachments: tuple[Attachment, ...] = ()
    tool_invocations: tuple[ToolInvocation, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp,
            "priority": self.priority,
            "attachments": [asdict(item) for item in self.attachments],
            "tool_invocations": [asdict(item) for item in self.tool_invocations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationMessage:
        return cls(
            role=data["role"],
            text=data["text"],
            timestamp=data["timestamp"],
            priority=data.get("priority"),
            attachments=tuple(Attachment(**item) for item in data.get("attachments", [])),
            tool_invocations=tuple(
                ToolInvocation(**item) for item in data.get("tool_invocations", [])
            ),
        )


@dataclass(frozen=True, slots=True)
class Specialist:
    """Display identity used for user-facing attribution of a tool."""

    name: str
    module: str

    def label(self) -> str:
        return f"{self.name} ({self.module})"


@dataclass(slots=True)
class ToolInvocationRequest:
    """A tool directive parsed out of a model reply."""

    tool_name: str
    params: dict[str, Any]


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool execution."""

    tool_name: str
    success: bool
    payload: dict[str, Any]
    specialist: Specialist | None = None

    @property
    def error(self) -> str | None:
        if self.success:
            return None
        return str(self.payload.get("error", "unknown error"))

    def to_prompt_payload(self) -> dict[str, Any]:
        data = dict(self.payload)
        if self.success and self.specialist is not None:
            data["_specialist"] = {
                "name": self.specialist.name,
                "module": self.specialist.module,
            }
        return data


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    success: bool = True


@dataclass(slots=True)
class Opportunity:
    """A funding opportunity mapped from any external source."""

    source: str
    title: str
    url: str
    publication_date: str | None = None
    deadline_date: str | None = None
    description: str | None = None
    budget: str | None = None
    category: str = "national"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "title": self.title,
            "url": self.url,
            "publicationDate": self.publication_date,
            "deadlineDate": self.deadline_date,
            "description": self.description,
            "budget": self.budget,
            "category": self.category,
        }


@dataclass(slots=True)
class Criterion:
    """One weighted rubric entry of an eligibility analysis."""

    name: str
    weight: float
    score: float
    reasoning: str = ""


@dataclass(slots=True)
class ImprovementPlan:
    suggested_modifications: list[str]
    projected_score: float
    key_gap: str = ""


@dataclass(slots=True)
class ValidationAnalysis:
    """Eligibility analysis returned by the validation tool."""

    overall_score: float
    justification: str
    suggested_role: str
    criteria: list[Criterion]
    improvement_plan: ImprovementPlan | None = None
    summary: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ValidationAnalysis:
        plan_data = payload.get("improvementPlan")
        plan = None
        if isinstance(plan_data, dict):
            plan = ImprovementPlan(
                suggested_modifications=[
                    str(item) for item in plan_data.get("suggestedModifications", [])
                ],
                projected_score=_as_float(plan_data.get("projectedScore")),
                key_gap=str(plan_data.get("keyGap", "")),
            )
        criteria = [
            Criterion(
                name=str(item.get("criterion") or item.get("name") or ""),
                weight=_as_float(item.get("weight")),
                score=_as_float(item.get("score")),
                reasoning=str(item.get("reasoning", "")),
            )
            for item in payload.get("criteria", [])
            if isinstance(item, dict)
        ]
        summary = payload.get("summary")
        return cls(
            overall_score=_as_float(payload.get("overallScore")),
            justification=str(payload.get("justification", "")),
            suggested_role=str(payload.get("suggestedRole", "")),
            criteria=criteria,
            improvement_plan=plan,
            summary=summary if isinstance(summary, dict) else {},
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "overallScore": self.overall_score,
            "justification": self.justification,
            "suggestedRole": self.suggested_role,
            "criteria": [
                {
                    "criterion": item.name,
                    "weight": item.weight,
                    "score": item.score,
                    "reasoning": item.reasoning,
                }
                for item in self.criteria
            ],
        }
        if self.summary:
            payload["summary"] = self.summary
        if self.improvement_plan is not None:
            payload["improvementPlan"] = {
                "suggestedModifications": self.improvement_plan.suggested_modifications,
                "projectedScore": self.improvement_plan.projected_score,
                "keyGap": self.improvement_plan.key_gap,
            }
        return payload


@dataclass(slots=True)
class TurnResult:
    """Final outcome of one orchestrated turn."""

    response_text: str
    tool_invocations: list[ToolInvocation]
    state: str
    trace_id: str | None = None


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
