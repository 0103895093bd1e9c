import asyncio

import httpx
import pytest

from grant_agent.config import DiscoveryConfig
from grant_agent.tools.http import FetchError, HttpFetcher, RequestCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _fetcher(handler, *, cache: RequestCache | None = None, delays: list[float] | None = None) -> HttpFetcher:
    recorded = delays if delays is not None else []

    async def _sleep(seconds: float) -> None:
        recorded.append(seconds)

    return HttpFetcher(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        cache=cache,
        config=DiscoveryConfig(max_retries=3, backoff_base_seconds=1.0),
        sleep=_sleep,
    )


def test_retries_server_errors_with_exponential_backoff() -> None:
    calls = []
    delays: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    fetcher = _fetcher(handler, delays=delays)

    assert asyncio.run(fetcher.fetch("https://api.test/search")) == {"ok": True}
    assert len(calls) == 3
    assert delays == [1.0, 2.0]


def test_gives_up_after_max_retries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    fetcher = _fetcher(handler)

    with pytest.raises(FetchError) as info:
        asyncio.run(fetcher.fetch("https://api.test/search"))
    assert info.value.status_code == 429


def test_client_errors_are_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400)

    fetcher = _fetcher(handler)

    with pytest.raises(FetchError):
        asyncio.run(fetcher.fetch("https://api.test/search"))
    assert len(calls) == 1


def test_transport_errors_are_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text="<xml/>")

    fetcher = _fetcher(handler)

    assert asyncio.run(fetcher.fetch("https://api.test/day", response_type="text")) == "<xml/>"
    assert len(calls) == 2


def test_declared_404_is_empty_and_cached() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    fetcher = _fetcher(handler)

    async def scenario() -> list[object]:
        first = await fetcher.fetch("https://api.test/day", response_type="text", empty_on_404=True)
        second = await fetcher.fetch("https://api.test/day", response_type="text", empty_on_404=True)
        return [first, second]

    assert asyncio.run(scenario()) == [None, None]
    assert len(calls) == 1


def test_successful_responses_are_served_from_cache() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"page": request.url.params.get("page")})

    fetcher = _fetcher(handler)

    async def scenario() -> list[object]:
        return [
            await fetcher.fetch("https://api.test/s", params={"page": 1}),
            await fetcher.fetch("https://api.test/s", params={"page": 1}),
            await fetcher.fetch("https://api.test/s", params={"page": 2}),
        ]

    assert asyncio.run(scenario()) == [{"page": "1"}, {"page": "1"}, {"page": "2"}]
    assert len(calls) == 2


def test_request_cache_evicts_least_recent_and_expires() -> None:
    clock = _Clock()
    cache = RequestCache(max_entries=2, ttl_seconds=10, clock=clock)

    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == (True, 1)
    cache.set("c", 3)

    assert cache.get("b") == (False, None)
    assert len(cache) == 2

    clock.now = 11
    assert cache.get("a") == (False, None)
