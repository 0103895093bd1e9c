"""HTTP fetch helper with retries and an explicit bounded cache."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import httpx

from grant_agent.config import CacheConfig, DiscoveryConfig

logger = logging.getLogger(__name__)

ResponseType = Literal["json", "text"]


class FetchError(RuntimeError):
    """Raised when a request keeps failing after every retry."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class RequestCache:
    """LRU cache with a time-to-live, keyed by request signature."""

    def __init__(
        self,
        *,
        max_entries: int = 256,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    @classmethod
    def from_config(cls, config: CacheConfig) -> RequestCache:
        return cls(max_entries=config.max_entries, ttl_seconds=config.ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> tuple[bool, Any]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return False, None
        self._entries.move_to_end(key)
        return True, value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    @staticmethod
    def make_key(method: str, url: str, response_type: str, **parts: Any) -> str:
        return json.dumps(
            [method.upper(), url, response_type, parts], sort_keys=True, default=str
        )


class HttpFetcher:
    """Fetches JSON or text, retrying transport errors, 429 and 5xx responses.

    Backoff doubles from ``backoff_base_seconds`` on every attempt. Successful
    responses (and declared-empty 404s) are cached.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        cache: RequestCache | None = None,
        config: DiscoveryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or DiscoveryConfig()
        self.cache = cache if cache is not None else RequestCache()
        self._client = client
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        response_type: ResponseType = "json",
        empty_on_404: bool = False,
    ) -> Any:
        key = RequestCache.make_key(
            method, url, response_type, params=params, data=data, files=files
        )
        hit, cached = self.cache.get(key)
        if hit:
            return cached

        last_error = "request failed"
        last_status: int | None = None
        attempts = self.config.max_retries
        for attempt in range(attempts):
            try:
                response = await self._send(
                    method, url, params=params, data=data, files=files, headers=headers
                )
            except httpx.TransportError as exc:
                last_error = f"transport error: {exc.__class__.__name__}"
                last_status = None
            else:
                status = response.status_code
                if status == 404 and empty_on_404:
                    self.cache.set(key, None)
                    return None
                if status == 429 or status >= 500:
                    last_error = f"HTTP {status}"
                    last_status = status
                elif status >= 400:
                    raise FetchError(url, f"HTTP {status}", status)
                else:
                    value = _decode(response, response_type, url)
                    self.cache.set(key, value)
                    return value

            if attempt < attempts - 1:
                delay = self.config.backoff_base_seconds * (2**attempt)
                logger.info(
                    "Retrying %s in %.1fs (attempt %d/%d): %s",
                    url,
                    delay,
                    attempt + 2,
                    attempts,
                    last_error,
                )
                await self._sleep(delay)

        raise FetchError(url, last_error, last_status)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
            return await client.request(method, url, **kwargs)


def _decode(response: httpx.Response, response_type: ResponseType, url: str) -> Any:
    if response_type == "text":
        return response.text
    try:
        return response.json()
    except ValueError as exc:
        raise FetchError(url, "invalid JSON response", response.status_code) from exc
