"""Creation tools: concepts, publication metadata, section drafts and reviews.

These tools favour availability: missing call context or applicant profile is
replaced with a clearly labelled generic default instead of failing.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from grant_agent.agent.gateway import ContentPart, TextPart
from grant_agent.agent.registry import ToolDefinition
from grant_agent.tools.common import (
    INVENTA,
    FileInput,
    ToolContext,
    ToolParams,
    as_text,
    content_part,
    file_parts,
    flatten_context,
    generate_structured,
    generate_text,
)

logger = logging.getLogger(__name__)

MIN_WORK_PACKAGES = 6

DEFAULT_CALL_CONTEXT = (
    "[Default context: no specific call was provided] A generic collaborative research and "
    "innovation call with a 36-month duration, focused on innovation, measurable impact and "
    "a balanced consortium."
)

DEFAULT_COMPANY_PROFILE: dict[str, str] = {
    "name": "Applicant Organisation",
    "sector": "Technology and Innovation",
    "businessSummary": "[Default profile: no applicant profile was provided]",
}

CONCEPT_SYSTEM = """
You are Inventa, a senior grant writer. Design a fundable project concept for the call.
Mandatory conditions must be taken strictly from the attached conditions document; if no
such document is attached, list only conditions explicitly stated in the call context.
Propose at least six work packages, each with title, objective, leader, startMonth and endMonth.
""".strip()

PUBLICATION_SYSTEM = (
    "You are Inventa. Produce publication metadata for a project concept: an acronym of at "
    "most 10 characters, a one-sentence short idea and an abstract of about 200 words."
)

DRAFT_SYSTEM = (
    "You are Inventa, a senior grant writer. Draft the requested proposal section in "
    "polished prose that satisfies the stated requirements. Return only the section text."
)

REVIEW_SYSTEM = (
    "You are Inventa acting as a critical reviewer. Review the proposal against the grant "
    "requirements and point out strengths, weaknesses, inconsistencies and concrete suggestions."
)


class WorkPackageOutput(BaseModel):
    title: str
    objective: str
    leader: str
    startMonth: int
    endMonth: int


class PartnerOutput(BaseModel):
    profile: str
    role: str


class ConceptOutput(BaseModel):
    idea: str
    specificObjectives: list[str]
    mandatoryConditions: list[str]
    potentialPartners: list[PartnerOutput]
    workPackages: list[WorkPackageOutput]


class PublicationOutput(BaseModel):
    acronym: str
    shortIdea: str
    abstract: str


class ImprovedSection(BaseModel):
    section: str
    content: str


class ReviewOutput(BaseModel):
    overallAssessment: str
    strengths: list[str]
    weaknesses: list[str]
    inconsistencies: list[str]
    suggestions: list[str]
    improvedSections: list[ImprovedSection] = Field(default_factory=list)


class GenerateConceptParams(ToolParams):
    grant_context: Any = Field(
        default=None,
        validation_alias=AliasChoices(
            "grantContext", "grant_context", "call_context", "context", "callContext"
        ),
    )
    project_idea: str | None = Field(
        default=None,
        validation_alias=AliasChoices("projectIdea", "project_idea", "idea", "projectDescription"),
    )
    company_profile: Any = Field(
        default=None, validation_alias=AliasChoices("companyProfile", "company_profile")
    )
    mandatory_conditions_file: FileInput | None = Field(
        default=None, validation_alias=AliasChoices("mandatoryConditionsFile", "conditionsFile")
    )

    @field_validator("project_idea", mode="before")
    @classmethod
    def _idea_text(cls, value: Any) -> Any:
        return as_text(value) or None


class PublicationParams(ToolParams):
    concept: Any = Field(
        default=None, validation_alias=AliasChoices("concept", "projectConcept", "project_concept")
    )
    grant_context: Any = Field(
        default=None, validation_alias=AliasChoices("grantContext", "grant_context", "context")
    )


class DraftSectionParams(ToolParams):
    section_name: str | None = Field(
        default=None, validation_alias=AliasChoices("sectionName", "section", "section_name")
    )
    grant_requirements: Any = Field(
        default=None,
        validation_alias=AliasChoices("grantRequirements", "requirements", "grant_requirements"),
    )
    project_context: Any = Field(
        default=None,
        validation_alias=AliasChoices("projectContext", "concept", "projectIdea", "project_context"),
    )
    existing_content: str | None = Field(
        default=None, validation_alias=AliasChoices("existingContent", "currentContent", "draft")
    )


class ReviewProposalParams(ToolParams):
    proposal: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "proposal", "proposalText", "proposalContent", "content", "sectionContent", "originalProposal"
        ),
    )
    grant_requirements: Any = Field(
        default=None,
        validation_alias=AliasChoices("grantRequirements", "requirements", "grant_requirements"),
    )
    focus: str | None = None

    @field_validator("proposal", mode="before")
    @classmethod
    def _proposal_text(cls, value: Any) -> Any:
        return as_text(value) or None


def normalize_work_packages(packages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    normalized = []
    for index, package in enumerate(packages, start=1):
        objective = str(package.get("objective") or package.get("description") or "")
        start = _as_int(package.get("startMonth"), 1)
        normalized.append(
            {
                "id": f"WP{index}",
                "title": str(package.get("title") or f"Work package {index}"),
                "objective": objective,
                "description": objective,
                "leader": str(package.get("leader") or "Coordinator"),
                "startMonth": start,
                "endMonth": max(start, _as_int(package.get("endMonth"), 36)),
            }
        )
    return normalized


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def build_creation_tools(context: ToolContext) -> list[ToolDefinition]:
    async def _concept(params: GenerateConceptParams) -> dict[str, Any]:
        used_defaults: list[str] = []
        call_context = flatten_context(params.grant_context) if params.grant_context else ""
        if not call_context.strip():
            call_context = DEFAULT_CALL_CONTEXT
            used_defaults.append("grantContext")
        profile = params.company_profile
        if not profile:
            profile = DEFAULT_COMPANY_PROFILE
            used_defaults.append("companyProfile")

        parts: list[ContentPart] = [
            TextPart(f"Call context:\n{call_context}"),
            TextPart(f"Applicant profile:\n{as_text(profile)}"),
        ]
        if params.project_idea:
            parts.append(TextPart(f"Project idea:\n{params.project_idea}"))
        if params.mandatory_conditions_file is not None:
            parts.extend(file_parts([params.mandatory_conditions_file], "Mandatory conditions document"))

        data = await generate_structured(
            context.gateway,
            system_instruction=CONCEPT_SYSTEM,
            parts=parts,
            schema=ConceptOutput,
        )
        if data is None:
            return {"error": "Could not read the concept returned by the model."}
        concept = dict(data)
        concept["workPackages"] = normalize_work_packages(
            [item for item in data.get("workPackages") or [] if isinstance(item, dict)]
        )
        warnings = []
        if len(concept["workPackages"]) < MIN_WORK_PACKAGES:
            warnings.append(
                f"Only {len(concept['workPackages'])} work packages were generated; "
                f"at least {MIN_WORK_PACKAGES} are expected."
            )
        return {
            "success": True,
            "concept": concept,
            "usedDefaults": used_defaults,
            "warnings": warnings,
        }

    async def _publication(params: PublicationParams) -> dict[str, Any]:
        if not params.concept:
            return {
                "error": "A project concept is required. Generate one with generateConcept "
                "first or paste the concept text."
            }
        parts: list[ContentPart] = [TextPart(f"Project concept:\n{as_text(params.concept)}")]
        if params.grant_context:
            parts.append(TextPart(f"Call context:\n{flatten_context(params.grant_context)}"))
        data = await generate_structured(
            context.gateway,
            system_instruction=PUBLICATION_SYSTEM,
            parts=parts,
            schema=PublicationOutput,
        )
        if data is None:
            return {"error": "Could not read the publication content returned by the model."}
        result = PublicationOutput.model_validate(data)
        return {
            "success": True,
            "acronym": result.acronym.strip()[:10],
            "shortIdea": result.shortIdea,
            "abstract": result.abstract,
        }

    async def _draft(params: DraftSectionParams) -> dict[str, Any]:
        if not params.section_name:
            return {
                "error": "Tell me which section to draft (for example Excellence, Impact or "
                "Implementation)."
            }
        lines = [f"Section to draft: {params.section_name}"]
        if params.grant_requirements:
            lines.append(f"Grant requirements:\n{flatten_context(params.grant_requirements)}")
        else:
            lines.append(f"Grant requirements:\n{DEFAULT_CALL_CONTEXT}")
        if params.project_context:
            lines.append(f"Project context:\n{as_text(params.project_context)}")
        if params.existing_content:
            lines.append(f"Current draft to improve:\n{params.existing_content}")
        content = await generate_text(
            context.gateway,
            system_instruction=DRAFT_SYSTEM,
            parts=[TextPart("\n\n".join(lines))],
        )
        return {"success": True, "section": params.section_name, "content": content}

    async def _review(params: ReviewProposalParams) -> dict[str, Any]:
        if not params.proposal:
            return {"error": "Provide the proposal text or document to review."}
        parts: list[ContentPart] = [content_part(params.proposal, "Proposal")]
        requirements = (
            flatten_context(params.grant_requirements)
            if params.grant_requirements
            else DEFAULT_CALL_CONTEXT
        )
        parts.append(TextPart(f"Grant requirements:\n{requirements}"))
        if params.focus:
            parts.append(TextPart(f"Focus the review on: {params.focus}"))
        data = await generate_structured(
            context.gateway,
            system_instruction=REVIEW_SYSTEM,
            parts=parts,
            schema=ReviewOutput,
        )
        if data is None:
            return {"error": "Could not read the review returned by the model."}
        return {"success": True, **ReviewOutput.model_validate(data).model_dump()}

    return [
        ToolDefinition(
            name="generateConcept",
            description=(
                "Generate a complete project concept (idea, objectives, mandatory conditions, "
                "partners, at least 6 work packages). Params: grantContext (text or object), "
                "projectIdea, companyProfile, mandatoryConditionsFile."
            ),
            args_schema=GenerateConceptParams,
            handler=_concept,
            specialist=INVENTA,
            group="creation",
            tags=["concept"],
        ),
        ToolDefinition(
            name="generatePublicationContent",
            description=(
                "Create acronym, short idea and abstract from a generated concept. "
                "Params: concept, grantContext."
            ),
            args_schema=PublicationParams,
            handler=_publication,
            specialist=INVENTA,
            group="creation",
            tags=["publication"],
        ),
        ToolDefinition(
            name="draftProposalSection",
            description=(
                "Draft one proposal section. Params: sectionName, grantRequirements, "
                "projectContext, existingContent."
            ),
            args_schema=DraftSectionParams,
            handler=_draft,
            specialist=INVENTA,
            group="creation",
            tags=["drafting"],
        ),
        ToolDefinition(
            name="reviewProposal",
            description=(
                "Review a proposal against grant requirements. Params: proposal (text or file), "
                "grantRequirements, focus."
            ),
            args_schema=ReviewProposalParams,
            handler=_review,
            specialist=INVENTA,
            group="creation",
            tags=["review"],
        ),
    ]
