"""Contract shared by every provider adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from jobsync.pipeline.models import CanonicalPosting, SearchParams

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

Sleep = Callable[[float], Awaitable[None]]


class SourceError(Exception):
    """Base error for provider adapters."""


class SourceUnavailableError(SourceError):
    """Raised on network failures, non-2xx responses, unreadable payloads or missing credentials."""


class SourceRateLimitedError(SourceUnavailableError):
    """Raised when the provider keeps answering 429 after the allowed retries."""


class JobSource(ABC):
    name: str
    rate_limit_retries: int = 0
    rate_limit_delay_seconds: float = 5.0

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    @abstractmethod
    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        """Return raw provider items, at most ``params.limit`` of them."""

    @abstractmethod
    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        """Map one raw provider item to the canonical record."""

    async def _get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        if self.client is not None:
            return await self._get_json_with(self.client, url, params=params, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as temp_client:
            return await self._get_json_with(temp_client, url, params=params, headers=headers)

    async def _get_json_with(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> Any:
        attempt = 0
        while True:
            try:
                response = await client.get(url, params=params, headers=headers, timeout=self.timeout_seconds)
            except httpx.HTTPError as exc:
                raise SourceUnavailableError(f"{self.name} request failed: {exc.__class__.__name__}") from exc

            if response.status_code == 429:
                if attempt < self.rate_limit_retries:
                    attempt += 1
                    logger.warning(
                        "rate limited source=%s; retrying in %.1fs (attempt %s)",
                        self.name,
                        self.rate_limit_delay_seconds,
                        attempt,
                    )
                    await self._sleep(self.rate_limit_delay_seconds)
                    continue
                raise SourceRateLimitedError(f"{self.name} rate limited (429)")

            if response.status_code >= 400:
                raise SourceUnavailableError(f"{self.name} upstream status {response.status_code}")

            try:
                return response.json()
            except ValueError as exc:
                raise SourceUnavailableError(f"{self.name} returned a non-JSON payload") from exc

    def _require(self, value: str | None, setting_name: str) -> str:
        if not value:
            raise SourceUnavailableError(f"{self.name} is not configured: {setting_name} is missing")
        return value


def take_list(payload: Any, key: str | None, limit: int) -> list[dict[str, Any]]:
    """Pull the item list out of a provider payload, dropping non-object entries."""
    items = payload.get(key) if key is not None and isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)][: max(limit, 0)]
