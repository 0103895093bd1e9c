import asyncio

from grant_agent.agent.gateway import GatewayRequest, GatewayResponse
from grant_agent.agent.registry import ToolRegistry
from grant_agent.tools.common import ToolContext
from grant_agent.tools.creation import (
    DEFAULT_CALL_CONTEXT,
    build_creation_tools,
    normalize_work_packages,
)


class ScriptedGateway:
    def __init__(self, *replies: GatewayResponse) -> None:
        self.replies = list(replies)
        self.requests: list[GatewayRequest] = []

    async def generate(self, request: GatewayRequest) -> GatewayResponse:
        self.requests.append(request)
        return self.replies.pop(0)


def _registry(gateway: ScriptedGateway) -> ToolRegistry:
    return ToolRegistry(build_creation_tools(ToolContext(gateway=gateway)))


def _concept(packages: int) -> dict[str, object]:
    return {
        "idea": "Open ledger for SME payments",
        "specificObjectives": ["Cut fees"],
        "mandatoryConditions": [],
        "potentialPartners": [{"profile": "Bank", "role": "Pilot"}],
        "workPackages": [
            {"title": f"WP {n}", "objective": f"Goal {n}", "leader": "Acme", "startMonth": n, "endMonth": n + 6}
            for n in range(1, packages + 1)
        ],
    }


def test_concept_uses_labelled_defaults_when_context_missing() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="", data=_concept(6)))

    result = asyncio.run(_registry(gateway).execute("generateConcept", {"projectIdea": "ledger payments"}))

    assert result.success
    assert result.payload["usedDefaults"] == ["grantContext", "companyProfile"]
    assert result.payload["warnings"] == []
    assert DEFAULT_CALL_CONTEXT in gateway.requests[0].parts[0].text
    packages = result.payload["concept"]["workPackages"]
    assert [item["id"] for item in packages] == ["WP1", "WP2", "WP3", "WP4", "WP5", "WP6"]
    assert packages[0]["description"] == "Goal 1"


def test_concept_with_few_work_packages_warns() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="", data=_concept(4)))

    result = asyncio.run(
        _registry(gateway).execute(
            "generateConcept",
            {"grantContext": {"title": "Digital Europe", "objectives": ["AI uptake"]}, "companyProfile": {"name": "Acme"}},
        )
    )

    assert result.success
    assert result.payload["usedDefaults"] == []
    assert "Only 4 work packages" in result.payload["warnings"][0]
    assert "Objectives:\n- AI uptake" in gateway.requests[0].parts[0].text


def test_normalize_work_packages_fills_gaps() -> None:
    packages = normalize_work_packages([{"description": "Manage", "startMonth": "x", "endMonth": 0}])

    assert packages == [
        {
            "id": "WP1",
            "title": "Work package 1",
            "objective": "Manage",
            "description": "Manage",
            "leader": "Coordinator",
            "startMonth": 1,
            "endMonth": 1,
        }
    ]


def test_publication_requires_concept_and_limits_acronym() -> None:
    gateway = ScriptedGateway(
        GatewayResponse(text="", data={"acronym": "LEDGERPAYMENTS", "shortIdea": "Cheap payments", "abstract": "..."})
    )
    registry = _registry(gateway)

    missing = asyncio.run(registry.execute("generatePublicationContent", {}))
    result = asyncio.run(registry.execute("generatePublicationContent", {"concept": {"idea": "ledger"}}))

    assert not missing.success
    assert result.payload["acronym"] == "LEDGERPAYM"


def test_draft_section_returns_model_text() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="  Impact section body.  "))

    result = asyncio.run(
        _registry(gateway).execute("draftProposalSection", {"sectionName": "Impact", "projectContext": "Ledger"})
    )

    assert result.payload == {"success": True, "section": "Impact", "content": "Impact section body."}


def test_review_needs_proposal() -> None:
    result = asyncio.run(_registry(ScriptedGateway()).execute("reviewProposal", {"focus": "budget"}))

    assert not result.success
