"""Validation tools: eligibility scoring and evaluation simulation."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from grant_agent.agent.gateway import ContentPart, TextPart
from grant_agent.agent.registry import ToolDefinition
from grant_agent.tools.common import (
    PONDER,
    FileInput,
    ToolContext,
    ToolParams,
    as_list,
    as_text,
    content_part,
    file_parts,
    generate_structured,
    schema_description,
)
from grant_agent.tools.postprocess import postprocess_validation
from grant_agent.types import ValidationAnalysis

logger = logging.getLogger(__name__)

FULL_RUBRIC: tuple[tuple[str, int], ...] = (
    ("Domain/Sector Alignment", 20),
    ("Legal Eligibility", 12),
    ("Strategic Alignment", 15),
    ("Technical Expertise", 15),
    ("Operational Capacity", 10),
    ("Past EU Experience", 8),
    ("Geographical Fit", 8),
    ("Role Potential", 7),
    ("Funding Viability", 5),
)

PROJECT_RUBRIC: tuple[tuple[str, int], ...] = (
    ("Domain/Sector Alignment", 40),
    ("Strategic Alignment (Technical Fit)", 25),
    ("Technical Expertise (Implied)", 15),
    ("Innovation / Impact Potential", 10),
    ("Funding Viability (Budget/Scope)", 10),
)

VALIDATION_SYSTEM = """
You are Ponder, an expert evaluator of public funding calls. Read the call carefully
(search the web for the call page when a URL is given) and assess the applicant.

1. Summarise the call's key facts.
2. Score Domain/Sector Alignment FIRST. It is the gate: it compares the application
   domain of the project with the domain the call targets. Shared technology keywords
   ("AI", "sensors", "platform") do not count as alignment when the application domains
   differ. If they differ, say "domain mismatch" in the reasoning and score it 30 or less.
3. Score every rubric criterion from 0 to 100 with its exact weight and a short reasoning.
4. overallScore is the weighted average of the criteria scores (0-100).
Answer with a single JSON object and nothing else.
""".strip()

SIMULATION_SYSTEM = """
You are Ponder, acting as an independent evaluator panel. Score the proposal against the
call's evaluation criteria as a real evaluator would, from 0 to 100, and justify it.
""".strip()


class CallSummary(BaseModel):
    programmeAndAction: str = ""
    totalBudgetAndFundingRate: str = ""
    deadline: str = ""
    expectedOutcomes: str = ""
    eligibleBeneficiaries: str = ""
    fundableActivities: str = ""
    evaluationCriteria: str = ""
    mandatoryRequirements: str = ""


class CriterionOutput(BaseModel):
    criterion: str
    weight: float
    score: float
    reasoning: str


class ImprovementPlanOutput(BaseModel):
    suggestedModifications: list[str]
    projectedScore: float
    keyGap: str


class ValidationOutput(BaseModel):
    summary: CallSummary
    overallScore: float
    justification: str
    suggestedRole: str
    criteria: list[CriterionOutput]
    improvementPlan: ImprovementPlanOutput | None = None


class CriterionEstimate(BaseModel):
    criterion: str
    score: float
    comment: str


class EvaluationOutput(BaseModel):
    estimatedScore: float
    strengths: list[str]
    weaknesses: list[str]
    recommendations: list[str]
    criteriaBreakdown: list[CriterionEstimate]


class CompanyProfile(ToolParams):
    name: str | None = None
    business_summary: str | None = Field(
        default=None,
        validation_alias=AliasChoices("businessSummary", "business_summary", "summary", "description"),
    )
    sector: str | None = None
    country: str | None = None
    size: str | None = None
    experience: str | None = Field(
        default=None, validation_alias=AliasChoices("experience", "pastExperience", "euExperience")
    )

    @model_validator(mode="before")
    @classmethod
    def _from_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"businessSummary": value}
        return value

    def is_complete(self) -> bool:
        return bool(self.name and self.business_summary)


class ProjectDetails(ToolParams):
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "name"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "summary", "idea")
    )
    objectives: list[str] = Field(default_factory=list)
    budget: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"description": value}
        return value

    @field_validator("objectives", mode="before")
    @classmethod
    def _objectives_list(cls, value: Any) -> list[str]:
        return [str(item) for item in as_list(value)]

    @field_validator("budget", mode="before")
    @classmethod
    def _budget_text(cls, value: Any) -> Any:
        return None if value is None else str(value)


class ValidateGrantParams(ToolParams):
    grant_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("grantUrl", "grant_url", "url", "grantContext", "grant_context"),
    )
    grant_name: str | None = Field(default=None, validation_alias=AliasChoices("grantName", "name"))
    grant_files: list[FileInput] = Field(
        default_factory=list, validation_alias=AliasChoices("grantFiles", "files", "grant_files")
    )
    grant_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("grantDescription", "description", "grant_description"),
    )
    company_profile: CompanyProfile | None = Field(
        default=None, validation_alias=AliasChoices("companyProfile", "company_profile")
    )
    project_details: ProjectDetails | None = Field(
        default=None,
        validation_alias=AliasChoices("projectDetails", "project_details", "projectContext"),
    )

    @field_validator("grant_files", mode="before")
    @classmethod
    def _files_list(cls, value: Any) -> list[Any]:
        return as_list(value)

    @field_validator("grant_url", "grant_description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return None
        text = as_text(value).strip()
        return text or None

    def call_url(self) -> str | None:
        if self.grant_url and _is_http_url(self.grant_url):
            return self.grant_url
        return None

    def call_description(self) -> str | None:
        if self.grant_description:
            return self.grant_description
        if self.grant_url and not _looks_like_url_attempt(self.grant_url):
            return self.grant_url
        return None

    def invalid_url(self) -> str | None:
        if self.grant_url and _looks_like_url_attempt(self.grant_url) and not _is_http_url(self.grant_url):
            return self.grant_url
        return None


class SimulateEvaluationParams(ToolParams):
    proposal: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "proposal", "proposalText", "proposal_content", "originalProposal", "content"
        ),
    )
    evaluation_criteria: str | None = Field(
        default=None,
        validation_alias=AliasChoices("evaluationCriteria", "criteria", "grantCriteria", "grantRequirements"),
    )
    grant_context: str | None = Field(
        default=None, validation_alias=AliasChoices("grantContext", "grant_context", "grantUrl")
    )

    @field_validator("proposal", "evaluation_criteria", "grant_context", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            return "\n".join(f"- {as_text(item)}" for item in value)
        return as_text(value).strip() or None


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in value.strip()


def _looks_like_url_attempt(value: str) -> bool:
    text = value.strip()
    return " " not in text and ("://" in text or text.startswith("www.") or text.startswith("http"))


def rubric_text(rubric: tuple[tuple[str, int], ...]) -> str:
    return "\n".join(f"- {name} (weight {weight})" for name, weight in rubric)


def build_validation_parts(params: ValidateGrantParams, *, full_profile: bool, has_project: bool) -> list[ContentPart]:
    rubric = FULL_RUBRIC if full_profile else PROJECT_RUBRIC
    lines = ["## Funding call"]
    if params.grant_name:
        lines.append(f"Name: {params.grant_name}")
    url = params.call_url()
    if url:
        lines.append(f"URL: {url}")
    description = params.call_description()
    if description:
        lines.append(f"Description:\n{description}")
    if full_profile and params.company_profile is not None:
        lines.extend(["", "## Applicant profile", params.company_profile.model_dump_json(exclude_none=True)])
    if params.project_details is not None:
        lines.extend(["", "## Project", params.project_details.model_dump_json(exclude_none=True)])
    lines.extend(["", "## Rubric", rubric_text(rubric)])
    if has_project:
        lines.append(
            "Include improvementPlan with suggestedModifications, projectedScore and keyGap."
        )
    else:
        lines.append("Omit improvementPlan.")
    lines.extend(["", "## JSON schema", schema_description(ValidationOutput)])
    parts: list[ContentPart] = [TextPart("\n".join(lines))]
    parts.extend(file_parts(params.grant_files, "Call document"))
    return parts


def build_validation_tools(context: ToolContext) -> list[ToolDefinition]:
    settings = context.validation

    async def _validate(params: ValidateGrantParams) -> dict[str, Any]:
        invalid = params.invalid_url()
        if invalid:
            return {
                "error": f"The grant URL is not valid: {invalid}. Provide a full http(s) URL, "
                "upload the call documents, or describe the call in text."
            }
        url = params.call_url()
        description = params.call_description()
        if not url and not params.grant_files and not description:
            return {
                "error": "To validate a call, provide a URL to the call, upload the call "
                f"files, or describe the call in at least {settings.min_description_length} characters."
            }
        if not url and not params.grant_files and description is not None:
            length = len(description.strip())
            if length < settings.min_description_length:
                return {
                    "error": f"The call description has {length} characters; at least "
                    f"{settings.min_description_length} are needed. Include the programme, "
                    "objectives, eligible beneficiaries and budget, or provide a URL or files instead."
                }

        full_profile = params.company_profile is not None and params.company_profile.is_complete()
        has_project = params.project_details is not None and bool(params.project_details.description)
        data = await generate_structured(
            context.gateway,
            system_instruction=VALIDATION_SYSTEM,
            parts=build_validation_parts(params, full_profile=full_profile, has_project=has_project),
            schema=ValidationOutput,
            grounding=url is not None,
        )
        if data is None:
            return {"error": "Could not read the validation analysis returned by the model."}

        analysis = postprocess_validation(ValidationAnalysis.from_payload(data), settings)
        if not has_project:
            analysis.improvement_plan = None
        return {
            "success": True,
            "grantName": params.grant_name,
            "grantUrl": url,
            "rubric": "full" if full_profile else "project",
            **analysis.to_payload(),
        }

    async def _simulate(params: SimulateEvaluationParams) -> dict[str, Any]:
        if not params.proposal:
            return {
                "error": "A proposal is required to simulate an evaluation. Paste the proposal "
                "text or upload the document."
            }
        parts: list[ContentPart] = [content_part(params.proposal, "Proposal")]
        parts.append(
            TextPart(
                "Evaluation criteria:\n"
                + (params.evaluation_criteria or "Use standard excellence, impact and implementation criteria.")
            )
        )
        if params.grant_context:
            parts.append(TextPart(f"Call context:\n{params.grant_context}"))
        data = await generate_structured(
            context.gateway,
            system_instruction=SIMULATION_SYSTEM,
            parts=parts,
            schema=EvaluationOutput,
        )
        if data is None:
            return {"error": "Could not read the evaluation returned by the model."}
        result = EvaluationOutput.model_validate(data)
        payload = result.model_dump()
        payload["estimatedScore"] = max(0.0, min(100.0, result.estimatedScore))
        return {"success": True, **payload}

    return [
        ToolDefinition(
            name="validateGrant",
            description=(
                "Validate eligibility of a project/company for a funding call and score it. "
                "Params: grantUrl OR grantFiles OR grantDescription (>=50 chars), grantName, "
                "companyProfile {name, businessSummary, ...}, projectDetails {title, description, ...}."
            ),
            args_schema=ValidateGrantParams,
            handler=_validate,
            specialist=PONDER,
            group="validation",
            tags=["eligibility", "scoring"],
        ),
        ToolDefinition(
            name="simulateEvaluation",
            description=(
                "Simulate how evaluators would score a proposal. Params: proposal (text or file), "
                "evaluationCriteria, grantContext."
            ),
            args_schema=SimulateEvaluationParams,
            handler=_simulate,
            specialist=PONDER,
            group="validation",
            tags=["evaluation"],
        ),
    ]
