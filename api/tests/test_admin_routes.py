from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from jobsync.api.deps import get_actor_trigger, get_aggregator, get_scheduler
from jobsync.core.config import get_settings
from jobsync.main import app
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.services.aggregator import JobAggregator
from jobsync.services.persistence import JobPersistence
from jobsync.services.repository import InMemoryRepository, get_repository
from jobsync.services.scheduler import AggregationScheduler
from jobsync.sources.apify import ApifyLinkedInSource
from jobsync.sources.base import JobSource, SourceUnavailableError


ADMIN_HEADERS = {"X-Admin-Key": "secret-admin-key"}
NOW = datetime.now(timezone.utc)
POSTED = (NOW - timedelta(days=1)).isoformat()


class RecordingSource(JobSource):
    def __init__(self, name: str, items: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        super().__init__()
        self.name = name
        self.items = items or []
        self.error = error
        self.calls: list[SearchParams] = []

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.items[: params.limit]

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        return CanonicalPosting(
            source=self.name,
            external_id=raw["id"],
            title=raw.get("title", "Support Engineer"),
            company="Admin Co",
            location=raw.get("location", "Bengaluru"),
            description="Admin seeded posting",
            posted_date=NOW - timedelta(hours=3),
        )


class FakeActorTrigger:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def run_and_collect(self, actor_id: str, run_input: dict[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        self.calls.append((actor_id, run_input))
        return (
            {"id": "run-77", "status": "SUCCEEDED"},
            [
                {
                    "id": "9001",
                    "title": "Python Developer",
                    "companyName": "LinkedIn Client",
                    "location": "Bengaluru, Karnataka, India",
                    "link": "https://www.linkedin.com/jobs/view/9001",
                    "postedAt": POSTED,
                },
                {
                    "id": "9002",
                    "title": "Python Developer",
                    "companyName": "Overseas Client",
                    "location": "Toronto, Canada",
                    "postedAt": POSTED,
                },
            ],
        )


class Harness:
    def __init__(self) -> None:
        self.repository = InMemoryRepository()
        self.scrape_source = RecordingSource("jsearch", [{"id": "s-1"}, {"id": "s-2", "location": "Mangaluru"}])
        self.naukri = RecordingSource(
            "apify-naukri",
            [{"id": "n-1"}, {"id": "n-2", "location": "Chennai, Tamil Nadu"}],
        )
        self.indeed = RecordingSource("apify-indeed", error=SourceUnavailableError("apify-indeed has no actor run id to read from"))
        self.aggregator = JobAggregator(
            {
                source.name: source
                for source in (
                    self.scrape_source,
                    RecordingSource("adzuna"),
                    RecordingSource("careerjet"),
                    self.naukri,
                    self.indeed,
                    ApifyLinkedInSource(api_token="tok"),
                )
            },
            JobPersistence(self.repository),
            default_location="Karnataka,India",
            delay_seconds=0,
        )
        self.job_runs = 0

        async def job() -> None:
            self.job_runs += 1

        self.scheduler = AggregationScheduler(job, interval_hours=6, enabled=True)
        self.trigger = FakeActorTrigger()


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def admin_client(harness: Harness) -> TestClient:
    os.environ["ADMIN_API_KEY"] = ADMIN_HEADERS["X-Admin-Key"]
    os.environ["APIFY_API_TOKEN"] = "apify-token"
    os.environ["STORAGE_BACKEND"] = "memory"
    get_settings.cache_clear()

    app.dependency_overrides[get_repository] = lambda: harness.repository
    app.dependency_overrides[get_aggregator] = lambda: harness.aggregator
    app.dependency_overrides[get_scheduler] = lambda: harness.scheduler
    app.dependency_overrides[get_actor_trigger] = lambda: harness.trigger

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    for name in ("ADMIN_API_KEY", "APIFY_API_TOKEN", "STORAGE_BACKEND"):
        os.environ.pop(name, None)
    get_settings.cache_clear()


def test_admin_router_requires_key(admin_client: TestClient) -> None:
    assert admin_client.get("/external-jobs/admin/scheduler/status").status_code == 401
    assert admin_client.post("/external-jobs/admin/scrape").status_code == 401


def test_scrape_is_accepted_and_runs_in_background(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post("/external-jobs/admin/scrape", headers=ADMIN_HEADERS)

    assert response.status_code == 202
    body = response.json()
    assert body["sources"] == ["jsearch", "adzuna", "careerjet"]
    assert body["limitPerSource"] == 50
    assert body["location"] == "Karnataka,India"
    assert body["message"] == "Job aggregation initiated from 3 sources (jsearch, adzuna, careerjet)"

    assert harness.scrape_source.calls[0].limit == 50
    assert sorted(item["external_id"] for item in harness.repository.postings.values()) == ["s-1", "s-2"]


def test_scrape_accepts_overrides(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post(
        "/external-jobs/admin/scrape",
        json={"location": "Mysuru", "limitPerSource": 1, "sources": ["jsearch"]},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 202
    assert response.json()["sources"] == ["jsearch"]
    assert harness.scrape_source.calls[0].location == "Mysuru"
    assert len(harness.repository.postings) == 1


def test_apify_import_keeps_region_postings(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post(
        "/external-jobs/admin/apify/apify-naukri/import",
        json={"runId": "run-5", "limit": 10},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {
        "source": "apify-naukri",
        "runId": "run-5",
        "fetched": 2,
        "normalized": 2,
        "kept": 1,
        "database": {"savedCount": 1, "updatedCount": 0, "errorCount": 0, "duplicateCount": 0},
    }
    assert harness.naukri.calls[0].run_id == "run-5"
    assert harness.naukri.calls[0].limit == 10


def test_apify_import_can_skip_region_filter(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post(
        "/external-jobs/admin/apify/apify-naukri/import",
        json={"regionOnly": False},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["kept"] == 2


def test_apify_import_maps_source_errors(admin_client: TestClient) -> None:
    failed = admin_client.post("/external-jobs/admin/apify/apify-indeed/import", json={}, headers=ADMIN_HEADERS)
    assert failed.status_code == 502
    assert "run id" in failed.json()["detail"]

    unknown = admin_client.post("/external-jobs/admin/apify/apify-monster/import", json={}, headers=ADMIN_HEADERS)
    assert unknown.status_code == 422


def test_apify_linkedin_run_imports_results(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post(
        "/external-jobs/admin/apify/linkedin/run",
        json={"keywords": "python developer", "numberOfJobs": 2},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 202
    assert response.json()["actorId"] == "curious_coder/linkedin-jobs-scraper"
    actor_id, run_input = harness.trigger.calls[0]
    assert actor_id == "curious_coder/linkedin-jobs-scraper"
    assert run_input["numberOfJobs"] == 2
    stored = [item["external_id"] for item in harness.repository.postings.values()]
    assert stored == ["apify-linkedin-9001"]


def test_apify_linkedin_run_needs_token(admin_client: TestClient, harness: Harness) -> None:
    os.environ.pop("APIFY_API_TOKEN", None)
    get_settings.cache_clear()

    response = admin_client.post(
        "/external-jobs/admin/apify/linkedin/run",
        json={"keywords": "python developer"},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 503
    assert harness.trigger.calls == []


def test_scheduler_lifecycle(admin_client: TestClient, harness: Harness) -> None:
    status = admin_client.get("/external-jobs/admin/scheduler/status", headers=ADMIN_HEADERS).json()
    assert status["isRunning"] is False
    assert status["enabled"] is True
    assert status["cronExpression"] == "0 */6 * * *"

    started = admin_client.post("/external-jobs/admin/scheduler/start", headers=ADMIN_HEADERS).json()
    assert started["message"] == "Job scheduler started successfully"
    assert started["status"]["isRunning"] is True
    assert started["status"]["nextRun"] is not None

    again = admin_client.post("/external-jobs/admin/scheduler/start", headers=ADMIN_HEADERS).json()
    assert again["message"] == "Job scheduler is already running"

    stopped = admin_client.post("/external-jobs/admin/scheduler/stop", headers=ADMIN_HEADERS).json()
    assert stopped["message"] == "Job scheduler stopped successfully"
    assert stopped["status"]["isRunning"] is False

    stopped_again = admin_client.post("/external-jobs/admin/scheduler/stop", headers=ADMIN_HEADERS).json()
    assert stopped_again["message"] == "Job scheduler is not running"


def test_scheduler_start_reports_disabled_configuration(admin_client: TestClient, harness: Harness) -> None:
    harness.scheduler = AggregationScheduler(harness.scheduler._run_job, enabled=False)

    response = admin_client.post("/external-jobs/admin/scheduler/start", headers=ADMIN_HEADERS).json()

    assert response["message"] == "Job scraping is disabled by configuration"


def test_scheduler_trigger_runs_job_in_background(admin_client: TestClient, harness: Harness) -> None:
    response = admin_client.post("/external-jobs/admin/scheduler/trigger", headers=ADMIN_HEADERS)

    assert response.status_code == 202
    assert response.json() == {"message": "Job aggregation triggered successfully. Check logs for progress."}
    assert harness.job_runs == 1
    assert harness.scheduler.snapshot.run_count == 1


def test_delete_posting(admin_client: TestClient, harness: Harness) -> None:
    posting = CanonicalPosting(
        source="jsearch",
        external_id="del-1",
        title="Temp Role",
        company="Admin Co",
        location="Udupi",
        description="To be deleted",
    )
    posting_id = asyncio.run(JobPersistence(harness.repository).upsert(posting)).posting["id"]

    response = admin_client.delete(f"/external-jobs/admin/{posting_id}", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"message": "External job deleted"}
    assert posting_id not in harness.repository.postings

    missing = admin_client.delete(f"/external-jobs/admin/{posting_id}", headers=ADMIN_HEADERS)
    assert missing.status_code == 404
