"""Discovery tools: search and compare funding opportunities."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from grant_agent.agent.gateway import TextPart
from grant_agent.agent.registry import ToolDefinition
from grant_agent.tools.common import (
    EXPLORA,
    ToolContext,
    ToolParams,
    generate_structured,
    split_terms,
)
from grant_agent.tools.http import HttpFetcher
from grant_agent.tools.ranking import normalize_text
from grant_agent.tools.sources import (
    EuFundingSource,
    GazetteTenderSource,
    NationalSubsidySource,
    OpportunitySource,
    SearchQuery,
)
from grant_agent.types import Opportunity

logger = logging.getLogger(__name__)

_KEYWORD_SYSTEM = (
    "You translate funding-search keywords into English and expand them with closely "
    "related terms (synonyms, broader and narrower concepts). Return JSON only."
)

GLOSSARY = {
    "inteligencia artificial": "artificial intelligence",
    "energia": "energy",
    "energias renovables": "renewable energy",
    "salud": "health",
    "agricultura": "agriculture",
    "sostenibilidad": "sustainability",
    "innovacion": "innovation",
    "investigacion": "research",
    "digitalizacion": "digitalisation",
    "pagos digitales": "digital payments",
    "ciberseguridad": "cybersecurity",
    "movilidad": "mobility",
    "educacion": "education",
    "turismo": "tourism",
    "agua": "water",
    "clima": "climate",
    "cambio climatico": "climate change",
    "economia circular": "circular economy",
    "biotecnologia": "biotechnology",
    "transporte": "transport",
    "industria": "industry",
    "medio ambiente": "environment",
    "cultura": "culture",
    "empleo": "employment",
    "vivienda": "housing",
}


class FundingTypes(ToolParams):
    national_subsidies: bool | None = Field(
        default=None, validation_alias=AliasChoices("nationalSubsidies", "national_subsidies", "national")
    )
    international_subsidies: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("internationalSubsidies", "international_subsidies", "international"),
    )
    national_tenders: bool | None = Field(
        default=None, validation_alias=AliasChoices("nationalTenders", "national_tenders", "tenders")
    )

    def is_explicit(self) -> bool:
        return any(
            flag is not None
            for flag in (self.national_subsidies, self.international_subsidies, self.national_tenders)
        )


@dataclass(frozen=True, slots=True)
class ResolvedFundingTypes:
    national: bool
    international: bool
    tenders: bool


_ALL = {"all", "any", "todo", "todos", "todas", "ambos"}
_SUBSIDY_TYPES = {"subsidy", "subsidies", "grant", "grants", "subvencion", "subvenciones", "ayuda", "ayudas"}
_TENDER_TYPES = {"tender", "tenders", "licitacion", "licitaciones", "contrato", "contratos"}
_NATIONAL_SCOPES = {"national", "nacional", "espana", "spain"}
_INTERNATIONAL_SCOPES = {"international", "internacional", "european", "europeo", "europea", "eu", "ue"}


class SearchFilters(ToolParams):
    """Legacy ``{type, scope}`` filters, in English or Spanish.

    ``scope`` may be a single value or a list; an empty scope means all scopes.
    """

    type: str | None = None
    scope: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return normalize_text(value.strip()) or None
        return value

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value: Any) -> list[str]:
        return [normalize_text(term) for term in split_terms(value)]

    def is_set(self) -> bool:
        return bool(self.type or self.scope)

    def resolve(self) -> ResolvedFundingTypes:
        kind = self.type or "all"
        scopes = set(self.scope) or {"all"}
        every_scope = bool(scopes & _ALL)
        national_scope = every_scope or bool(scopes & _NATIONAL_SCOPES)
        international_scope = every_scope or bool(scopes & _INTERNATIONAL_SCOPES)
        subsidies = kind in _ALL or kind in _SUBSIDY_TYPES
        tenders = kind in _ALL or kind in _TENDER_TYPES
        return ResolvedFundingTypes(
            national=subsidies and national_scope,
            international=subsidies and international_scope,
            tenders=tenders and national_scope,
        )


class SearchOpportunitiesParams(ToolParams):
    keywords: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("keywords", "keyword", "query")
    )
    start_date: date | None = Field(
        default=None, validation_alias=AliasChoices("startDate", "start_date", "dateFrom")
    )
    end_date: date | None = Field(
        default=None, validation_alias=AliasChoices("endDate", "end_date", "dateTo")
    )
    funding_types: FundingTypes | None = Field(
        default=None, validation_alias=AliasChoices("fundingTypes", "funding_types")
    )
    filters: SearchFilters | None = None

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, value: Any) -> list[str]:
        return split_terms(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()[:10]
            return value or None
        return value

    def resolve_funding_types(self) -> ResolvedFundingTypes:
        """Explicit flags win; unset flags are off once any flag is explicit."""
        if self.funding_types is not None and self.funding_types.is_explicit():
            return ResolvedFundingTypes(
                national=self.funding_types.national_subsidies is True,
                international=self.funding_types.international_subsidies is True,
                tenders=self.funding_types.national_tenders is True,
            )
        if self.filters is not None and self.filters.is_set():
            return self.filters.resolve()
        return ResolvedFundingTypes(national=True, international=True, tenders=False)


class CompareGrantsParams(ToolParams):
    grant_urls: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("grantUrls", "grant_urls", "urls")
    )

    @field_validator("grant_urls", mode="before")
    @classmethod
    def _split_urls(cls, value: Any) -> list[str]:
        return split_terms(value)


class KeywordExpansion(BaseModel):
    translated: list[str] = Field(description="The keywords translated into English.")
    expanded: list[str] = Field(description="Related English terms for broader recall.")


@dataclass(slots=True)
class DiscoverySources:
    national: OpportunitySource
    international: OpportunitySource
    tenders: OpportunitySource

    @classmethod
    def default(cls, fetcher: HttpFetcher, context: ToolContext) -> DiscoverySources:
        return cls(
            national=NationalSubsidySource(fetcher, context.discovery),
            international=EuFundingSource(fetcher, context.discovery),
            tenders=GazetteTenderSource(fetcher, context.discovery),
        )


def glossary_translate(keywords: list[str]) -> list[str]:
    return [GLOSSARY.get(normalize_text(keyword), keyword) for keyword in keywords]


async def prepare_international_keywords(
    context: ToolContext, keywords: list[str]
) -> tuple[list[str], list[str]]:
    """Return ``(translated, expanded)`` English keywords for the EU index."""
    try:
        data = await generate_structured(
            context.gateway,
            system_instruction=_KEYWORD_SYSTEM,
            parts=[
                TextPart(
                    "Keywords: "
                    + ", ".join(keywords)
                    + '\nReturn {"translated": [...], "expanded": [...]} with at most 8 expanded terms.'
                )
            ],
            schema=KeywordExpansion,
        )
        expansion = KeywordExpansion.model_validate(data or {})
    except Exception as exc:
        logger.warning("Keyword expansion failed, using glossary: %s", exc)
        return glossary_translate(keywords), []
    translated = split_terms(expansion.translated) or glossary_translate(keywords)
    return translated, split_terms(expansion.expanded)


def build_discovery_tools(
    context: ToolContext,
    fetcher: HttpFetcher,
    sources: DiscoverySources | None = None,
) -> list[ToolDefinition]:
    active = sources or DiscoverySources.default(fetcher, context)

    async def _guarded(source: OpportunitySource, query: SearchQuery) -> list[Opportunity]:
        try:
            return await source.search(query)
        except Exception as exc:
            logger.warning("Source %s failed: %s", source.name, exc)
            return []

    async def _search(params: SearchOpportunitiesParams) -> dict[str, Any]:
        if not params.keywords:
            return {
                "error": "At least one keyword is required. Provide keywords as a list "
                "or a comma-separated string."
            }
        flags = params.resolve_funding_types()
        if not (flags.national or flags.international or flags.tenders):
            return {
                "error": "The requested funding types select no source. Enable at least one of "
                "nationalSubsidies, internationalSubsidies or nationalTenders, or use filters "
                "with type subsidy/tender and scope national/international."
            }
        today = context.today()
        base = SearchQuery(
            keywords=params.keywords,
            today=today,
            start=params.start_date,
            end=params.end_date,
        )
        notes: list[str] = []
        tasks = []
        if flags.national:
            tasks.append(_guarded(active.national, base))
        if flags.international:
            translated, expanded = await prepare_international_keywords(context, params.keywords)
            tasks.append(
                _guarded(
                    active.international,
                    SearchQuery(
                        keywords=translated,
                        today=today,
                        start=params.start_date,
                        end=params.end_date,
                        expanded_keywords=expanded,
                        original_keywords=params.keywords,
                    ),
                )
            )
        if flags.tenders:
            if params.start_date is None:
                notes.append("National tenders need a start date; tenders were not searched.")
            else:
                tasks.append(_guarded(active.tenders, base))

        batches = await asyncio.gather(*tasks)
        results = [item for batch in batches for item in batch]
        return {
            "success": True,
            "keywords": params.keywords,
            "fundingTypes": {
                "nationalSubsidies": flags.national,
                "internationalSubsidies": flags.international,
                "nationalTenders": flags.tenders,
            },
            "results": [item.to_dict() for item in results],
            "count": len(results),
            "summary": {
                "nationalGrants": sum(1 for item in results if item.category == "national"),
                "internationalGrants": sum(1 for item in results if item.category == "international"),
                "nationalTenders": sum(1 for item in results if item.category == "tenders"),
            },
            "notes": notes,
        }

    async def _compare(params: CompareGrantsParams) -> dict[str, Any]:
        if len(params.grant_urls) < 2:
            return {"error": "Provide at least two grant URLs to compare."}
        return {
            "success": True,
            "grantUrls": params.grant_urls,
            "message": (
                f"Prepared a comparison of {len(params.grant_urls)} calls. "
                "Run validateGrant on each call for detailed eligibility scores."
            ),
        }

    return [
        ToolDefinition(
            name="searchOpportunities",
            description=(
                "Search national subsidies, EU funding calls and national tenders. Params: "
                "keywords (list), startDate/endDate (YYYY-MM-DD, optional), fundingTypes "
                "{nationalSubsidies, internationalSubsidies, nationalTenders} (booleans)."
            ),
            args_schema=SearchOpportunitiesParams,
            handler=_search,
            specialist=EXPLORA,
            group="discovery",
            tags=["search", "funding"],
        ),
        ToolDefinition(
            name="compareGrants",
            description="Compare two or more funding calls. Params: grantUrls (list of URLs).",
            args_schema=CompareGrantsParams,
            handler=_compare,
            specialist=EXPLORA,
            group="discovery",
            tags=["compare"],
        ),
    ]
