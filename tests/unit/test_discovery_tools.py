import asyncio
from datetime import date

from grant_agent.agent.gateway import GatewayError, GatewayRequest, GatewayResponse
from grant_agent.agent.registry import ToolRegistry
from grant_agent.tools.common import ToolContext
from grant_agent.tools.discovery import (
    DiscoverySources,
    SearchOpportunitiesParams,
    build_discovery_tools,
    glossary_translate,
)
from grant_agent.tools.http import HttpFetcher
from grant_agent.tools.sources import SearchQuery
from grant_agent.types import Opportunity


class ScriptedGateway:
    def __init__(self, *replies: object) -> None:
        self.replies = list(replies)
        self.requests: list[GatewayRequest] = []

    async def generate(self, request: GatewayRequest) -> GatewayResponse:
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeSource:
    def __init__(self, name: str, category: str, *, fail: bool = False) -> None:
        self.name = name
        self.category = category
        self.fail = fail
        self.queries: list[SearchQuery] = []

    async def search(self, query: SearchQuery) -> list[Opportunity]:
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("upstream down")
        return [
            Opportunity(
                source=self.name,
                title=f"{self.name} call on {query.keywords[0]}",
                url=f"https://{self.category}.example/{query.keywords[0]}",
                category=self.category,
            )
        ]


def _registry(gateway: ScriptedGateway, sources: DiscoverySources) -> ToolRegistry:
    context = ToolContext(gateway=gateway, today=lambda: date(2025, 3, 1))
    return ToolRegistry(build_discovery_tools(context, HttpFetcher(), sources))


def _sources(*, national_fails: bool = False) -> DiscoverySources:
    return DiscoverySources(
        national=FakeSource("Infosubvenciones", "national", fail=national_fails),
        international=FakeSource("European Commission", "international"),
        tenders=FakeSource("BOE", "tenders"),
    )


def _flags(payload: dict[str, object]) -> tuple[bool, bool, bool]:
    resolved = SearchOpportunitiesParams.model_validate(payload).resolve_funding_types()
    return resolved.national, resolved.international, resolved.tenders


def test_default_funding_types_search_both_subsidy_sources() -> None:
    assert _flags({"keywords": ["ai"]}) == (True, True, False)


def test_explicit_flags_disable_unset_sources() -> None:
    assert _flags({"keywords": ["ai"], "fundingTypes": {"internationalSubsidies": True}}) == (False, True, False)
    assert _flags(
        {"keywords": ["ai"], "fundingTypes": {"nationalSubsidies": True, "internationalSubsidies": False}}
    ) == (True, False, False)


def test_legacy_filters_are_mapped() -> None:
    assert _flags({"keywords": ["ai"], "filters": {"type": "tender", "scope": "national"}}) == (False, False, True)
    assert _flags({"keywords": ["ai"], "filters": {"scope": "international"}}) == (False, True, False)


def test_keywords_accept_comma_separated_string() -> None:
    params = SearchOpportunitiesParams.model_validate({"keywords": "blockchain, fintech ,", "startDate": ""})

    assert params.keywords == ["blockchain", "fintech"]
    assert params.start_date is None


def test_international_only_search_skips_national_source() -> None:
    gateway = ScriptedGateway(
        GatewayResponse(text="", data={"translated": ["blockchain"], "expanded": ["distributed ledger"]})
    )
    sources = _sources()
    registry = _registry(gateway, sources)

    result = asyncio.run(
        registry.execute(
            "searchOpportunities",
            {"keywords": ["blockchain"], "fundingTypes": {"internationalSubsidies": True, "nationalSubsidies": False}},
        )
    )

    assert result.success
    assert sources.national.queries == []
    assert sources.international.queries[0].expanded_keywords == ["distributed ledger"]
    assert result.payload["summary"] == {"nationalGrants": 0, "internationalGrants": 1, "nationalTenders": 0}
    assert all(item["url"] for item in result.payload["results"])


def test_failing_source_does_not_fail_search() -> None:
    gateway = ScriptedGateway(GatewayResponse(text="", data={"translated": ["ai"], "expanded": []}))
    registry = _registry(gateway, _sources(national_fails=True))

    result = asyncio.run(registry.execute("searchOpportunities", {"keywords": ["ai"]}))

    assert result.success
    assert result.payload["count"] == 1
    assert result.payload["results"][0]["category"] == "international"


def test_keyword_expansion_failure_falls_back_to_glossary() -> None:
    gateway = ScriptedGateway(GatewayError("quota exceeded"))
    sources = _sources()
    registry = _registry(gateway, sources)

    asyncio.run(
        registry.execute(
            "searchOpportunities",
            {"keywords": ["Transporte"], "fundingTypes": {"internationalSubsidies": True}},
        )
    )

    assert sources.international.queries[0].keywords == ["transport"]
    assert sources.international.queries[0].original_keywords == ["Transporte"]


def test_tenders_without_start_date_are_noted() -> None:
    registry = _registry(ScriptedGateway(), _sources())

    result = asyncio.run(
        registry.execute("searchOpportunities", {"keywords": ["obras"], "fundingTypes": {"nationalTenders": True}})
    )

    assert result.success
    assert result.payload["count"] == 0
    assert result.payload["notes"]


def test_missing_keywords_is_tool_error() -> None:
    registry = _registry(ScriptedGateway(), _sources())

    result = asyncio.run(registry.execute("searchOpportunities", {"keywords": []}))

    assert not result.success
    assert "keyword" in result.error


def test_compare_grants_needs_two_urls() -> None:
    registry = _registry(ScriptedGateway(), _sources())

    single = asyncio.run(registry.execute("compareGrants", {"grantUrls": ["https://a.eu"]}))
    pair = asyncio.run(registry.execute("compareGrants", {"grantUrls": "https://a.eu, https://b.eu"}))

    assert not single.success
    assert pair.success
    assert pair.payload["grantUrls"] == ["https://a.eu", "https://b.eu"]


def test_glossary_translate_is_accent_insensitive() -> None:
    assert glossary_translate(["Medio Ambiente", "robotics"]) == ["environment", "robotics"]


def test_spanish_and_list_filters_are_mapped() -> None:
    assert _flags({"keywords": ["ai"], "filters": {"type": "subvención", "scope": "nacional"}}) == (True, False, False)
    assert _flags({"keywords": ["ai"], "filters": {"type": "licitación", "scope": "Nacional"}}) == (False, False, True)
    assert _flags({"keywords": ["ai"], "filters": {"type": "grant", "scope": ["national", "european"]}}) == (
        True,
        True,
        False,
    )
    assert _flags({"keywords": ["ai"], "filters": {"scope": "europeo"}}) == (False, True, False)


def test_search_selecting_no_source_is_an_error() -> None:
    sources = _sources()
    registry = _registry(ScriptedGateway(), sources)

    result = asyncio.run(
        registry.execute(
            "searchOpportunities",
            {"keywords": ["ai"], "fundingTypes": {"nationalSubsidies": False, "internationalSubsidies": False}},
        )
    )

    assert not result.success
    assert "select no source" in result.payload["error"]
    assert sources.national.queries == [] and sources.international.queries == []
