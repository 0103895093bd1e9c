"""Adaptation tools: repurpose proposals for new calls or resubmission."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from grant_agent.agent.gateway import ContentPart, TextPart
from grant_agent.agent.registry import ToolDefinition
from grant_agent.tools.common import (
    DOCX_MIME,
    PDF_MIME,
    TRANSCRIPTO,
    FileInput,
    ToolContext,
    ToolParams,
    as_text,
    content_part,
    file_parts,
    generate_structured,
)

logger = logging.getLogger(__name__)

ADAPT_SYSTEM = """
You are Transcripto, an expert in adapting grant proposals. Rewrite the original proposal
so that it fits the new call and/or answers the evaluators' feedback. Keep what already
works, change what the new context requires, and explain every change.
Return an action plan, the ordered key changes, the adapted sections and a comparative
report with one row per changed section (section, original, adapted, reason).
""".strip()

EXTRACT_SYSTEM = (
    "You are Transcripto. Extract the title, total budget and objectives from the proposal. "
    "If an evaluation report is attached, also summarise the result, the key scores and the "
    "main weakness."
)

OBSERVATIONS_SYSTEM = (
    "You are Transcripto. Analyse the evaluators' observations and turn them into an "
    "executive summary, strengths, weaknesses, recommendations and prioritised actions."
)

REAPPLICATION_SYSTEM = (
    "You are Transcripto. Combine the proposal and the evaluation feedback into a "
    "resubmission plan with concrete improvements and an honest estimated success rate (0-100)."
)

_PROPOSAL_ALIASES = AliasChoices(
    "originalProposal",
    "original_proposal",
    "existingProposal",
    "proposal",
    "proposalText",
    "proposal_content",
)
_FEEDBACK_ALIASES = AliasChoices("feedbackFile", "feedback", "feedbackText")


class AdaptedSection(BaseModel):
    section: str
    content: str


class ComparativeRow(BaseModel):
    section: str
    original: str
    adapted: str
    reason: str


class AdaptationOutput(BaseModel):
    actionPlan: str
    keyChanges: list[str]
    adaptedSections: list[AdaptedSection]
    comparativeReport: list[ComparativeRow]


class ProposalSummary(BaseModel):
    title: str
    budget: str
    objectives: list[str]


class EvaluatorSummary(BaseModel):
    evaluationResult: str
    keyScores: list[str]
    mainWeakness: str


class ExtractionOutput(BaseModel):
    proposalSummary: ProposalSummary
    evaluatorSummary: EvaluatorSummary | None = None


class ObservationsOutput(BaseModel):
    executiveSummary: str
    strengths: list[str]
    weaknesses: list[str]
    recommendations: list[str]
    priorityActions: list[str]


class ReapplicationOutput(BaseModel):
    analysis: str
    improvements: list[str]
    actionPlan: str
    estimatedSuccessRate: float


def _document_text(value: Any) -> Any:
    if value is None or isinstance(value, (str, dict)):
        return value or None
    return as_text(value)


class AdaptProposalParams(ToolParams):
    original_proposal: FileInput | None = Field(default=None, validation_alias=_PROPOSAL_ALIASES)
    feedback: FileInput | None = Field(default=None, validation_alias=_FEEDBACK_ALIASES)
    new_call_file: FileInput | None = Field(
        default=None, validation_alias=AliasChoices("newCallFile", "newCall")
    )
    new_call_link: str | None = Field(
        default=None, validation_alias=AliasChoices("newCallLink", "newCallUrl", "targetGrantUrl")
    )
    new_call_description: str | None = Field(
        default=None, validation_alias=AliasChoices("newCallDescription", "targetGrantCriteria")
    )

    @field_validator("original_proposal", "feedback", "new_call_file", mode="before")
    @classmethod
    def _coerce_documents(cls, value: Any) -> Any:
        return _document_text(value)

    @field_validator("new_call_description", mode="before")
    @classmethod
    def _description_text(cls, value: Any) -> Any:
        return as_text(value) or None


class ExtractProposalParams(ToolParams):
    proposal_file: FileInput | None = Field(
        default=None,
        validation_alias=AliasChoices("proposalFile", "file", "proposal", "document"),
    )
    file_type: str | None = Field(default=None, validation_alias=AliasChoices("fileType", "file_type"))
    evaluation_file: FileInput | None = Field(
        default=None, validation_alias=AliasChoices("evaluationFile", "feedbackFile", "evaluation")
    )

    @field_validator("proposal_file", "evaluation_file", mode="before")
    @classmethod
    def _coerce_documents(cls, value: Any) -> Any:
        return _document_text(value)

    def proposal_mime(self) -> str:
        if self.file_type and "doc" in self.file_type.lower():
            return DOCX_MIME
        return PDF_MIME


class AnalyzeObservationsParams(ToolParams):
    observations: FileInput | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "observations", "feedback", "feedbackText", "feedbackFile", "evaluationReport"
        ),
    )
    proposal: FileInput | None = Field(default=None, validation_alias=_PROPOSAL_ALIASES)

    @field_validator("observations", "proposal", mode="before")
    @classmethod
    def _coerce_documents(cls, value: Any) -> Any:
        return _document_text(value)


class ReapplicationParams(ToolParams):
    proposal: FileInput | None = Field(default=None, validation_alias=_PROPOSAL_ALIASES)
    feedback: FileInput | None = Field(default=None, validation_alias=_FEEDBACK_ALIASES)

    @field_validator("proposal", "feedback", mode="before")
    @classmethod
    def _coerce_documents(cls, value: Any) -> Any:
        return _document_text(value)


def _parts(document: FileInput, label: str, mime_type: str | None = None) -> list[ContentPart]:
    if mime_type and document.mime_type is None:
        return [content_part(document.data, label, mime_type)]
    return file_parts([document], label)


def build_adaptation_tools(context: ToolContext) -> list[ToolDefinition]:
    async def _adapt(params: AdaptProposalParams) -> dict[str, Any]:
        if params.original_proposal is None:
            return {
                "error": "The original proposal is required. Paste its text or upload the document."
            }
        has_call = bool(
            params.new_call_file or params.new_call_link or params.new_call_description
        )
        if not has_call and params.feedback is None:
            return {
                "error": "Provide the new call (file, link or description) or the evaluators' "
                "feedback so I know what to adapt the proposal to."
            }

        parts: list[ContentPart] = _parts(params.original_proposal, "Original proposal")
        if params.new_call_file is not None:
            parts.extend(_parts(params.new_call_file, "New call document"))
        if params.new_call_link:
            parts.append(TextPart(f"New call URL: {params.new_call_link}"))
        if params.new_call_description:
            parts.append(TextPart(f"New call description:\n{params.new_call_description}"))
        if params.feedback is not None:
            parts.extend(_parts(params.feedback, "Evaluator feedback"))

        data = await generate_structured(
            context.gateway,
            system_instruction=ADAPT_SYSTEM,
            parts=parts,
            schema=AdaptationOutput,
            grounding=bool(params.new_call_link),
        )
        if data is None:
            return {"error": "Could not read the adaptation returned by the model."}
        result = AdaptationOutput.model_validate(data)
        return {"success": True, **result.model_dump()}

    async def _extract(params: ExtractProposalParams) -> dict[str, Any]:
        if params.proposal_file is None:
            return {"error": "Upload the proposal document (PDF or DOCX) to extract its data."}
        parts = _parts(params.proposal_file, "Proposal", params.proposal_mime())
        if params.evaluation_file is not None:
            parts.extend(_parts(params.evaluation_file, "Evaluation report"))
        data = await generate_structured(
            context.gateway,
            system_instruction=EXTRACT_SYSTEM,
            parts=parts,
            schema=ExtractionOutput,
        )
        if data is None:
            return {"error": "Could not read the extracted proposal data."}
        result = ExtractionOutput.model_validate(data)
        return {"success": True, **result.model_dump(exclude_none=True)}

    async def _observations(params: AnalyzeObservationsParams) -> dict[str, Any]:
        if params.observations is None:
            return {"error": "Provide the evaluators' observations as text or as a document."}
        parts = _parts(params.observations, "Evaluator observations")
        if params.proposal is not None:
            parts.extend(_parts(params.proposal, "Proposal"))
        data = await generate_structured(
            context.gateway,
            system_instruction=OBSERVATIONS_SYSTEM,
            parts=parts,
            schema=ObservationsOutput,
        )
        if data is None:
            return {"error": "Could not read the observations analysis."}
        return {"success": True, **ObservationsOutput.model_validate(data).model_dump()}

    async def _reapply(params: ReapplicationParams) -> dict[str, Any]:
        missing = [
            label
            for label, value in (("the proposal", params.proposal), ("the evaluation feedback", params.feedback))
            if value is None
        ]
        if missing:
            return {
                "error": "A reapplication plan needs both the proposal and the evaluation "
                f"feedback. Missing: {' and '.join(missing)}."
            }
        parts = _parts(params.proposal, "Proposal") + _parts(params.feedback, "Evaluation feedback")
        data = await generate_structured(
            context.gateway,
            system_instruction=REAPPLICATION_SYSTEM,
            parts=parts,
            schema=ReapplicationOutput,
        )
        if data is None:
            return {"error": "Could not read the reapplication plan."}
        result = ReapplicationOutput.model_validate(data)
        payload = result.model_dump()
        payload["estimatedSuccessRate"] = max(0.0, min(100.0, result.estimatedSuccessRate))
        return {"success": True, **payload}

    return [
        ToolDefinition(
            name="adaptProposal",
            description=(
                "Adapt an existing proposal to a new call or to evaluator feedback. Params: "
                "originalProposal (text or file), newCallFile, newCallLink, newCallDescription, "
                "feedbackFile. Needs the proposal plus new-call material or feedback."
            ),
            args_schema=AdaptProposalParams,
            handler=_adapt,
            specialist=TRANSCRIPTO,
            group="adaptation",
            tags=["adaptation"],
        ),
        ToolDefinition(
            name="extractProposalData",
            description=(
                "Extract title, budget and objectives from an uploaded proposal, plus an "
                "evaluator summary if a report is attached. Params: proposalFile, fileType "
                "(pdf|docx), evaluationFile."
            ),
            args_schema=ExtractProposalParams,
            handler=_extract,
            specialist=TRANSCRIPTO,
            group="adaptation",
            tags=["extraction"],
        ),
        ToolDefinition(
            name="analyzeObservations",
            description=(
                "Analyse evaluator observations into strengths, weaknesses and priority "
                "actions. Params: observations (text or file), proposal."
            ),
            args_schema=AnalyzeObservationsParams,
            handler=_observations,
            specialist=TRANSCRIPTO,
            group="adaptation",
            tags=["feedback"],
        ),
        ToolDefinition(
            name="generateReapplicationPlan",
            description=(
                "Build a resubmission plan with an estimated success rate. Params: proposal, "
                "feedbackFile (both required)."
            ),
            args_schema=ReapplicationParams,
            handler=_reapply,
            specialist=TRANSCRIPTO,
            group="adaptation",
            tags=["resubmission"],
        ),
    ]
