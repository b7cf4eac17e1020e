from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.services.aggregator import AggregateOptions, JobAggregator, filter_recent
from jobsync.services.persistence import JobPersistence, SaveSummary
from jobsync.services.repository import InMemoryRepository, RepositoryUnavailableError
from jobsync.sources.base import JobSource, SourceUnavailableError


NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakeSource(JobSource):
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
        if raw.get("broken"):
            raise ValueError("broken item")
        return CanonicalPosting(
            source=self.name,
            external_id=raw["id"],
            title=raw.get("title", "Backend Engineer"),
            company="Acme",
            location=raw.get("location", "Bengaluru"),
            description="Python services",
            posted_date=raw.get("posted", NOW - timedelta(days=1)),
        )


class UnavailableRepository(InMemoryRepository):
    async def upsert_posting(self, record: dict[str, Any]) -> tuple[bool, dict[str, Any]]:
        raise RepositoryUnavailableError("DATABASE_URL is not configured")


def _aggregator(*sources: FakeSource, repository: InMemoryRepository | None = None) -> tuple[JobAggregator, list[float]]:
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    aggregator = JobAggregator(
        {source.name: source for source in sources},
        JobPersistence(repository or InMemoryRepository(), clock=lambda: NOW),
        default_location="Karnataka,India",
        delay_seconds=2.0,
        recent_days=7,
        sleep=fake_sleep,
        clock=lambda: NOW,
    )
    return aggregator, sleeps


def test_aggregate_all_isolates_source_failures() -> None:
    healthy = FakeSource("jsearch", [{"id": "1"}, {"id": "2"}, {"id": "3"}])
    failing = FakeSource("adzuna", error=SourceUnavailableError("adzuna upstream status 500"))
    aggregator, sleeps = _aggregator(healthy, failing)

    result = asyncio.run(
        aggregator.aggregate_all(AggregateOptions(limit_per_source=2, sources=("jsearch", "adzuna", "careerjet")))
    )

    assert result.total == 2
    assert result.by_source == {"jsearch": 2}
    assert result.errors == [
        {"source": "adzuna", "error": "adzuna upstream status 500"},
        {"source": "careerjet", "error": "unknown source careerjet"},
    ]
    assert healthy.calls[0].location == "Karnataka,India"
    assert healthy.calls[0].limit == 2
    assert sleeps == [2.0, 2.0]


def test_aggregate_all_uses_requested_location_and_skips_bad_items() -> None:
    source = FakeSource("remotive", [{"id": "1"}, {"id": "2", "broken": True}])
    aggregator, sleeps = _aggregator(source)

    result = asyncio.run(aggregator.aggregate_all(AggregateOptions(location="Mysuru", sources=("remotive",))))

    assert [job.external_id for job in result.jobs] == ["1"]
    assert result.by_source == {"remotive": 1}
    assert source.calls[0].location == "Mysuru"
    assert sleeps == []


def test_fetch_and_save_all_filters_region_and_recency() -> None:
    repository = InMemoryRepository()
    source = FakeSource(
        "jsearch",
        [
            {"id": "local"},
            {"id": "abroad", "location": "Berlin, Germany"},
            {"id": "stale", "posted": NOW - timedelta(days=30)},
        ],
    )
    aggregator, _ = _aggregator(source, repository=repository)

    outcome = asyncio.run(aggregator.fetch_and_save_all(AggregateOptions(sources=("jsearch",))))

    assert outcome.success is True
    assert outcome.message == "Successfully processed 3 jobs"
    assert outcome.database == SaveSummary(saved_count=1)
    assert [item["external_id"] for item in repository.postings.values()] == ["local"]


@pytest.mark.parametrize(
    ("items", "message"),
    [
        ([], "No jobs fetched"),
        ([{"id": "1", "location": "London, UK"}], "No Karnataka jobs found"),
        ([{"id": "1", "posted": NOW - timedelta(days=8)}], "No recent Karnataka jobs found"),
    ],
)
def test_fetch_and_save_all_reports_empty_stages(items: list[dict[str, Any]], message: str) -> None:
    aggregator, _ = _aggregator(FakeSource("jsearch", items))

    outcome = asyncio.run(aggregator.fetch_and_save_all(AggregateOptions(sources=("jsearch",))))

    assert outcome.success is False
    assert outcome.message == message
    assert outcome.database is None


def test_fetch_and_save_all_reports_unavailable_storage() -> None:
    aggregator, _ = _aggregator(FakeSource("jsearch", [{"id": "1"}]), repository=UnavailableRepository())

    outcome = asyncio.run(aggregator.fetch_and_save_all(AggregateOptions(sources=("jsearch",))))

    assert outcome.success is False
    assert "DATABASE_URL" in outcome.message


def test_import_source_passes_run_id_and_can_keep_all_regions() -> None:
    repository = InMemoryRepository()
    source = FakeSource("apify-naukri", [{"id": "blr"}, {"id": "nyc", "location": "New York"}])
    aggregator, _ = _aggregator(source, repository=repository)

    regional = asyncio.run(aggregator.import_source("apify-naukri", run_id="run-1", limit=10))
    assert source.calls[0].run_id == "run-1"
    assert (regional.fetched, regional.normalized, regional.kept) == (2, 2, 1)
    assert regional.run_id == "run-1"

    everything = asyncio.run(aggregator.import_source("apify-naukri", run_id="run-1", region_only=False))
    assert everything.kept == 2
    assert everything.database == SaveSummary(saved_count=1, updated_count=1)

    with pytest.raises(KeyError):
        asyncio.run(aggregator.import_source("apify-monster"))


def test_import_source_propagates_source_errors() -> None:
    failing = FakeSource("apify-indeed", error=SourceUnavailableError("apify-indeed has no actor run id to read from"))
    aggregator, _ = _aggregator(failing)

    with pytest.raises(SourceUnavailableError):
        asyncio.run(aggregator.import_source("apify-indeed"))


def test_filter_recent_drops_undated_postings() -> None:
    fresh = CanonicalPosting("jsearch", "1", "T", "C", "Bengaluru", "D", posted_date=NOW - timedelta(days=6))
    naive = CanonicalPosting("jsearch", "2", "T", "C", "Bengaluru", "D", posted_date=datetime(2025, 3, 9))
    undated = CanonicalPosting("jsearch", "3", "T", "C", "Bengaluru", "D")

    assert [job.external_id for job in filter_recent([fresh, naive, undated], 7, now=NOW)] == ["1", "2"]
