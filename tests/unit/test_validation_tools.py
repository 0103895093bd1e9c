import asyncio

from grant_agent.agent.gateway import GatewayRequest, GatewayResponse, TextPart
from grant_agent.agent.registry import ToolRegistry
from grant_agent.tools.common import ToolContext
from grant_agent.tools.validation import build_validation_tools


class ScriptedGateway:
    def __init__(self, *replies: GatewayResponse) -> None:
        self.replies = list(replies)
        self.requests: list[GatewayRequest] = []

    async def generate(self, request: GatewayRequest) -> GatewayResponse:
        self.requests.append(request)
        return self.replies.pop(0)


def _registry(gateway: ScriptedGateway) -> ToolRegistry:
    return ToolRegistry(build_validation_tools(ToolContext(gateway=gateway)))


def _analysis(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "overallScore": 90,
        "justification": "Strong fit overall.",
        "suggestedRole": "Coordinator",
        "criteria": [
            {"criterion": "Domain/Sector Alignment", "weight": 40, "score": 95, "reasoning": "Domain mismatch: fintech vs health"},
            {"criterion": "Strategic Alignment", "weight": 60, "score": 80, "reasoning": "Good"},
        ],
        "summary": {"programme": "Horizon Europe"},
        "improvementPlan": {"suggestedModifications": ["Add a clinical partner"], "projectedScore": 55, "keyGap": "Domain"},
    }
    data.update(overrides)
    return data


def test_short_description_is_rejected_without_model_call() -> None:
    gateway = ScriptedGateway()
    registry = _registry(gateway)

    result = asyncio.run(registry.execute("validateGrant", {"grantDescription": "Health call for SMEs"}))

    assert not result.success
    assert "20 characters" in result.error
    assert "50" in result.error
    assert gateway.requests == []


def test_missing_call_information_is_rejected() -> None:
    gateway = ScriptedGateway()

    result = asyncio.run(_registry(gateway).execute("validateGrant", {"grantName": "X"}))

    assert not result.success
    assert "URL" in result.error
    assert gateway.requests == []


def test_malformed_url_is_rejected() -> None:
    gateway = ScriptedGateway()

    result = asyncio.run(_registry(gateway).execute("validateGrant", {"grantUrl": "http//ec.europa.eu/call"}))

    assert not result.success
    assert "http//ec.europa.eu/call" in result.error
    assert gateway.requests == []


def test_validation_is_postprocessed_and_grounded_for_urls() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="", data=_analysis()))

    result = asyncio.run(
        _registry(gateway).execute(
            "validateGrant",
            {
                "grantUrl": "https://ec.europa.eu/call/HEALTH-01",
                "projectDetails": {"title": "PayChain", "description": "Blockchain payments for retail"},
            },
        )
    )

    assert result.success
    assert result.payload["overallScore"] == 25
    assert result.payload["criteria"][0]["score"] == 30
    assert "[ADJUSTED:" in result.payload["justification"]
    assert result.payload["improvementPlan"]["keyGap"] == "Domain"
    assert result.payload["rubric"] == "project"
    assert gateway.requests[0].grounding is True


def test_improvement_plan_dropped_without_project() -> None:
    description = "Horizon Europe call for digital health platforms run by European SMEs and hospitals."
    gateway = ScriptedGateway(GatewayResponse(text="", data=_analysis()))

    result = asyncio.run(_registry(gateway).execute("validateGrant", {"grantDescription": description}))

    assert result.success
    assert "improvementPlan" not in result.payload
    assert gateway.requests[0].grounding is False


def test_full_profile_selects_full_rubric() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="", data=_analysis()))

    result = asyncio.run(
        _registry(gateway).execute(
            "validateGrant",
            {
                "grantUrl": "https://ec.europa.eu/call/HEALTH-01",
                "companyProfile": {"name": "Acme", "businessSummary": "Payments software"},
            },
        )
    )

    prompt = gateway.requests[0].parts[0]
    assert result.payload["rubric"] == "full"
    assert isinstance(prompt, TextPart)
    assert "Legal Eligibility (weight 12)" in prompt.text


def test_free_text_json_is_recovered() -> None:
    text = 'Here you go:\n```json\n{"overallScore": 70, "justification": "ok", "suggestedRole": "Partner", "criteria": [{"criterion": "Impact", "weight": 100, "score": 70}]}\n```'
    gateway = ScriptedGateway(GatewayResponse(text=text))

    result = asyncio.run(
        _registry(gateway).execute("validateGrant", {"grantUrl": "https://example.org/call"})
    )

    assert result.success
    assert result.payload["overallScore"] == 70


def test_simulated_score_is_clamped() -> None:
    gateway = ScriptedGateway(
        GatewayResponse(
            text="",
            data={
                "estimatedScore": 130,
                "strengths": ["Clear"],
                "weaknesses": [],
                "recommendations": [],
                "criteriaBreakdown": [],
            },
        )
    )

    result = asyncio.run(_registry(gateway).execute("simulateEvaluation", {"proposal": "Our proposal text"}))

    assert result.success
    assert result.payload["estimatedScore"] == 100


def test_simulation_requires_proposal() -> None:
    result = asyncio.run(_registry(ScriptedGateway()).execute("simulateEvaluation", {}))

    assert not result.success


def test_unreadable_analysis_is_a_tool_error() -> None:
    gateway = ScriptedGateway(
        GatewayResponse(text="The call looks promising for your company, but I cannot score it right now.")
    )

    result = asyncio.run(
        _registry(gateway).execute("validateGrant", {"grantUrl": "https://ec.europa.eu/call/HEALTH-01"})
    )

    assert not result.success
    assert result.error == "Could not read the validation analysis returned by the model."
    assert len(gateway.requests) == 1
