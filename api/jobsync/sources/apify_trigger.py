from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable
from urllib.parse import quote

import httpx

from jobsync.sources.apify import APIFY_API_BASE_URL
from jobsync.sources.base import Sleep

logger = logging.getLogger(__name__)

TERMINAL_RUN_STATUSES = {"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"}
LINKEDIN_KARNATAKA_GEO_ID = "105214831"


class ActorRunError(Exception):
    """Raised when an actor run cannot be started or inspected."""


class ActorRunTimeoutError(ActorRunError):
    """Raised when an actor run does not reach a terminal status in time."""


class ApifyActorTrigger:
    """Start an Apify actor run and poll it until it reaches a terminal status."""

    def __init__(
        self,
        *,
        api_token: str | None,
        client: httpx.AsyncClient | None = None,
        poll_interval_seconds: float = 10.0,
        timeout_seconds: float = 300.0,
        request_timeout_seconds: float = 30.0,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_token = api_token
        self.client = client
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def start_run(self, actor_id: str, run_input: dict[str, Any]) -> dict[str, Any]:
        actor_path = quote(actor_id.replace("/", "~"), safe="~")
        payload = await self._request("POST", f"{APIFY_API_BASE_URL}/acts/{actor_path}/runs", json=run_input)
        run = _unwrap(payload)
        logger.info("apify actor run started actor=%s run_id=%s status=%s", actor_id, run.get("id"), run.get("status"))
        return run

    async def get_run(self, run_id: str) -> dict[str, Any]:
        return _unwrap(await self._request("GET", f"{APIFY_API_BASE_URL}/actor-runs/{run_id}"))

    async def wait_for_completion(self, run_id: str) -> dict[str, Any]:
        started_at = self._clock()
        while self._clock() - started_at < self.timeout_seconds:
            run = await self.get_run(run_id)
            status = run.get("status")
            logger.info("apify run status run_id=%s status=%s elapsed_s=%.0f", run_id, status, self._clock() - started_at)
            if status in TERMINAL_RUN_STATUSES:
                return run
            await self._sleep(self.poll_interval_seconds)
        raise ActorRunTimeoutError(f"actor run {run_id} did not finish within {self.timeout_seconds:.0f}s")

    async def fetch_items(self, run_id: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"{APIFY_API_BASE_URL}/actor-runs/{run_id}/dataset/items")
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def run_and_collect(self, actor_id: str, run_input: dict[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        run = await self.start_run(actor_id, run_input)
        run_id = run.get("id")
        if not isinstance(run_id, str) or not run_id:
            raise ActorRunError("actor run response did not include an id")

        completed = await self.wait_for_completion(run_id)
        if completed.get("status") != "SUCCEEDED":
            logger.error("apify actor run did not succeed run_id=%s status=%s", run_id, completed.get("status"))
            return completed, []
        return completed, await self.fetch_items(run_id)

    async def _request(self, method: str, url: str, *, json: dict[str, Any] | None = None) -> Any:
        if not self.api_token:
            raise ActorRunError("APIFY_API_TOKEN is not configured")
        params = {"token": self.api_token}
        try:
            if self.client is not None:
                response = await self.client.request(
                    method, url, params=params, json=json, timeout=self.request_timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.request_timeout_seconds) as temp_client:
                    response = await temp_client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            raise ActorRunError(f"apify request failed: {exc.__class__.__name__}") from exc

        if response.status_code >= 400:
            raise ActorRunError(f"apify request failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ActorRunError("apify returned a non-JSON payload") from exc


def build_linkedin_search_input(
    keywords: str,
    *,
    location: str = "Bengaluru, Karnataka, India",
    number_of_jobs: int = 20,
) -> dict[str, Any]:
    search_url = (
        "https://www.linkedin.com/jobs/search"
        f"?keywords={quote(keywords)}&location={quote(location)}"
        f"&geoId={LINKEDIN_KARNATAKA_GEO_ID}&position=1&pageNum=0"
    )
    return {"urls": [search_url], "scrapeCompanyDetails": True, "numberOfJobs": number_of_jobs}


def _unwrap(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict):
            return data
        return payload
    raise ActorRunError("unexpected apify run payload")
