"""External funding data sources used by the discovery tools.

Every source degrades to an empty list on upstream failure so that one broken
source never fails the whole search.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Protocol

from grant_agent.config import DiscoveryConfig
from grant_agent.tools.http import FetchError, HttpFetcher
from grant_agent.tools.ranking import rank_results, rank_weighted
from grant_agent.types import Opportunity

logger = logging.getLogger(__name__)

NATIONAL_SEARCH_URL = "https://www.infosubvenciones.es/bdnstrans/api/convocatorias/busqueda"
NATIONAL_CALL_URL = "https://www.infosubvenciones.es/bdnstrans/GE/es/convocatorias/{number}"
EU_SEARCH_URL = "https://api.tech.ec.europa.eu/search-api/prod/rest/search"
EU_TOPIC_URL = (
    "https://ec.europa.eu/info/funding-tenders/opportunities/portal/screen/"
    "opportunities/topic-details/{identifier}"
)
GAZETTE_SUMMARY_URL = "https://boe.es/datosabiertos/api/boe/sumario/{day}"

TENDER_PHRASE = "anuncio de licitación de:"

_DEADLINE_PATTERN = re.compile(r"hasta\s+(?:el\s+)?(\d{1,2})/(\d{1,2})/(\d{4})", re.IGNORECASE)
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_TAGS = re.compile(r"<[^>]+>")

_EU_DISPLAY_FIELDS = [
    "title",
    "identifier",
    "deadlineDate",
    "startDate",
    "descriptionByte",
    "description",
    "status",
    "frameworkProgramme",
    "budgetOverview",
    "callTitle",
]


@dataclass(slots=True)
class SearchQuery:
    keywords: list[str]
    today: date
    start: date | None = None
    end: date | None = None
    expanded_keywords: list[str] = field(default_factory=list)
    original_keywords: list[str] = field(default_factory=list)


class OpportunitySource(Protocol):
    name: str
    category: str

    async def search(self, query: SearchQuery) -> list[Opportunity]: ...


def parse_deadline(text: Any) -> date | None:
    """Parse "hasta dd/mm/yyyy" style deadlines, or an ISO date."""
    if not text:
        return None
    value = str(text)
    match = _DEADLINE_PATTERN.search(value)
    try:
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
        iso = _ISO_DATE.search(value)
        if iso:
            year, month, day = (int(part) for part in iso.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def format_euros(amount: Any) -> str | None:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return None
    return f"{value:,.0f} €".replace(",", ".")


def _strip_html(text: str) -> str:
    return " ".join(_TAGS.sub(" ", text).split())


class NationalSubsidySource:
    """National subsidies database, one search per keyword."""

    name = "Infosubvenciones"
    category = "national"

    def __init__(self, fetcher: HttpFetcher, config: DiscoveryConfig | None = None) -> None:
        self.fetcher = fetcher
        self.config = config or DiscoveryConfig()

    async def search(self, query: SearchQuery) -> list[Opportunity]:
        batches = await asyncio.gather(*(self._search_keyword(k) for k in query.keywords))
        unique: dict[Any, dict[str, Any]] = {}
        for batch in batches:
            for item in batch:
                unique.setdefault(item.get("id") or item.get("numeroConvocatoria"), item)

        candidates = []
        for item in unique.values():
            received = parse_deadline(item.get("fechaRecepcion"))
            if query.start is not None and (received is None or received < query.start):
                continue
            deadline = parse_deadline(item.get("plazoPresentacion"))
            if deadline is not None and deadline < query.today:
                continue
            candidates.append(item)

        ranked = rank_results(
            candidates,
            query.keywords,
            title_of=lambda item: str(item.get("title") or item.get("descripcion") or ""),
            description_of=lambda item: str(item.get("descripcion") or ""),
        )
        return [self._to_opportunity(item) for item in ranked[: self.config.top_n]]

    async def _search_keyword(self, keyword: str) -> list[dict[str, Any]]:
        try:
            payload = await self.fetcher.fetch(
                NATIONAL_SEARCH_URL,
                params={
                    "descripcion": keyword,
                    "size": self.config.national_page_size,
                    "page": 0,
                },
            )
        except FetchError as exc:
            logger.warning("%s search failed for %r: %s", self.name, keyword, exc)
            return []
        content = payload.get("content") if isinstance(payload, dict) else None
        return [item for item in content or [] if isinstance(item, dict)]

    def _to_opportunity(self, item: dict[str, Any]) -> Opportunity:
        number = item.get("numeroConvocatoria")
        return Opportunity(
            source=self.name,
            title=str(item.get("title") or item.get("descripcion") or "Untitled"),
            url=NATIONAL_CALL_URL.format(number=number) if number else "#",
            publication_date=item.get("fechaRecepcion"),
            deadline_date=item.get("plazoPresentacion") or "Not available",
            description=item.get("descripcion"),
            budget=format_euros(item.get("importe")) or "Not available",
            category=self.category,
        )


class EuFundingSource:
    """European Commission funding and tenders portal (English-only index)."""

    name = "European Commission"
    category = "international"

    def __init__(self, fetcher: HttpFetcher, config: DiscoveryConfig | None = None) -> None:
        self.fetcher = fetcher
        self.config = config or DiscoveryConfig()

    async def search(self, query: SearchQuery) -> list[Opportunity]:
        terms = list(dict.fromkeys([*query.keywords, *query.expanded_keywords]))
        form_query = json.dumps(self._build_query(query), ensure_ascii=False)
        results: list[dict[str, Any]] = []
        for page in range(1, self.config.eu_max_pages + 1):
            try:
                payload = await self.fetcher.fetch(
                    EU_SEARCH_URL,
                    method="POST",
                    params={
                        "apiKey": "SEDIA",
                        "text": " ".join(terms),
                        "pageSize": self.config.eu_page_size,
                        "pageNumber": page,
                    },
                    files={
                        "query": ("blob", form_query, "application/json"),
                        "sort": (
                            "blob",
                            json.dumps({"order": "DESC", "field": "startDate"}),
                            "application/json",
                        ),
                        "displayFields": ("blob", json.dumps(_EU_DISPLAY_FIELDS), "application/json"),
                    },
                )
            except FetchError as exc:
                logger.warning("%s search failed on page %d: %s", self.name, page, exc)
                break
            page_results = payload.get("results") if isinstance(payload, dict) else None
            page_results = [item for item in page_results or [] if isinstance(item, dict)]
            results.extend(page_results)
            if len(page_results) < self.config.eu_page_size:
                break

        unique: dict[str, dict[str, Any]] = {}
        for item in results:
            identifier = _eu_field(item, "identifier")
            if identifier:
                unique.setdefault(str(identifier), item)

        candidates = []
        for item in unique.values():
            deadline = parse_deadline(_eu_field(item, "deadlineDate"))
            if deadline is not None and deadline < query.today:
                continue
            candidates.append(item)

        primary = list(dict.fromkeys([*query.original_keywords, *query.keywords]))
        ranked = rank_weighted(
            candidates,
            primary,
            query.expanded_keywords,
            title_of=lambda item: f"{_eu_field(item, 'title') or ''} {_eu_field(item, 'callTitle') or ''}",
            description_of=_eu_description,
            short_query_threshold=self.config.short_keyword_threshold,
            query_length=len(query.original_keywords or query.keywords),
        )
        return [self._to_opportunity(item) for item in ranked[: self.config.top_n]]

    def _build_query(self, query: SearchQuery) -> dict[str, Any]:
        must: list[dict[str, Any]] = [
            {"terms": {"type": ["1", "2", "8"]}},
            {"terms": {"status": ["31094501", "31094502"]}},
            {"term": {"programmePeriod": "2021 - 2027"}},
            {"terms": {"language": ["en"]}},
        ]
        if query.start is not None:
            must.append({"range": {"startDate": {"gte": _epoch_ms(query.start)}}})
        end = query.end or (query.today + timedelta(days=self.config.default_window_days))
        must.append({"range": {"deadlineDate": {"lte": _epoch_ms(end, end_of_day=True)}}})
        return {"bool": {"must": must}}

    def _to_opportunity(self, item: dict[str, Any]) -> Opportunity:
        identifier = _eu_field(item, "identifier")
        return Opportunity(
            source=self.name,
            title=str(_eu_field(item, "title") or "Not available"),
            url=EU_TOPIC_URL.format(identifier=identifier) if identifier else "#",
            publication_date=_eu_field(item, "startDate"),
            deadline_date=_eu_field(item, "deadlineDate"),
            description=_eu_description(item) or None,
            budget=parse_budget_overview(_eu_field(item, "budgetOverview")),
            category=self.category,
        )


class GazetteTenderSource:
    """Official state gazette daily summaries, scanned for tender notices."""

    name = "BOE"
    category = "tenders"

    def __init__(self, fetcher: HttpFetcher, config: DiscoveryConfig | None = None) -> None:
        self.fetcher = fetcher
        self.config = config or DiscoveryConfig()

    async def search(self, query: SearchQuery) -> list[Opportunity]:
        if not query.keywords or query.start is None:
            return []
        end = query.end or (query.start + timedelta(days=self.config.tender_window_days))
        days = [query.start + timedelta(days=offset) for offset in range((end - query.start).days + 1)]
        batches = await asyncio.gather(*(self._items_for_day(day) for day in days))
        items = [item for batch in batches for item in batch]

        tenders = [item for item in items if TENDER_PHRASE in item["title"].lower()]
        others = [item for item in items if TENDER_PHRASE not in item["title"].lower()]
        ranked = [
            *rank_results(tenders, query.keywords, title_of=lambda i: i["title"], description_of=lambda i: ""),
            *rank_results(others, query.keywords, title_of=lambda i: i["title"], description_of=lambda i: ""),
        ]
        return [
            Opportunity(
                source=self.name,
                title=item["title"] or "Untitled",
                url=item["url"] or "#",
                publication_date=item["date"],
                deadline_date="Not available in summary",
                budget="Not available in summary",
                category=self.category,
            )
            for item in ranked[: self.config.top_n]
        ]

    async def _items_for_day(self, day: date) -> list[dict[str, str]]:
        url = GAZETTE_SUMMARY_URL.format(day=day.strftime("%Y%m%d"))
        try:
            xml_text = await self.fetcher.fetch(
                url,
                headers={"Accept": "application/xml"},
                response_type="text",
                empty_on_404=True,
            )
        except FetchError as exc:
            logger.warning("%s summary failed for %s: %s", self.name, day, exc)
            return []
        if not xml_text:
            return []
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            logger.warning("%s summary for %s is not valid XML: %s", self.name, day, exc)
            return []
        return [
            {
                "title": (item.findtext("titulo") or "").strip(),
                "url": (item.findtext("url_html") or "").strip(),
                "date": day.isoformat(),
            }
            for item in root.iter("item")
        ]


def parse_budget_overview(raw: Any) -> str:
    """Read the first yearly amount out of the portal's budget overview JSON."""
    if not raw:
        return "Not available"
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        year = (data.get("budgetYearsColumns") or [None])[0]
        actions = list((data.get("budgetTopicActionMap") or {}).values())
        details = actions[0][0] if actions and actions[0] else None
    except (ValueError, AttributeError, TypeError, IndexError) as exc:
        logger.debug("Unreadable budget overview: %s", exc)
        return "Not available"
    if not details:
        return "Not available"
    amount = (details.get("budgetYearMap") or {}).get(str(year)) if year else None
    return format_euros(amount) or "Not specified"


def _eu_field(item: dict[str, Any], name: str) -> Any:
    value = item.get(name)
    if value:
        return value
    values = (item.get("metadata") or {}).get(name)
    if isinstance(values, list) and values:
        return values[0]
    return None


def _eu_description(item: dict[str, Any]) -> str:
    raw = _eu_field(item, "descriptionByte") or _eu_field(item, "description") or ""
    return _strip_html(str(raw))


def _epoch_ms(day: date, *, end_of_day: bool = False) -> int:
    moment = datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)
