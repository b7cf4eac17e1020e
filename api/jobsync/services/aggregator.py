from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

from opentelemetry import trace

from jobsync.pipeline.location import filter_in_region
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.services.persistence import JobPersistence, SaveSummary
from jobsync.services.repository import RepositoryUnavailableError
from jobsync.sources.base import JobSource, Sleep
from jobsync.sources.registry import DEFAULT_AGGREGATE_SOURCES

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class AggregateOptions:
    location: str | None = None
    limit_per_source: int = 20
    sources: Sequence[str] = DEFAULT_AGGREGATE_SOURCES


@dataclass(slots=True)
class AggregationResult:
    jobs: list[CanonicalPosting] = field(default_factory=list)
    by_source: dict[str, int] = field(default_factory=dict)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.jobs)

    def summary(self) -> dict[str, Any]:
        return {"total": self.total, "by_source": dict(self.by_source), "errors": list(self.errors)}


@dataclass(slots=True)
class FetchOutcome:
    success: bool
    message: str
    aggregation: AggregationResult
    database: SaveSummary | None = None


@dataclass(slots=True)
class ImportOutcome:
    source: str
    run_id: str
    fetched: int
    normalized: int
    kept: int
    database: SaveSummary


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def filter_recent(
    jobs: Iterable[CanonicalPosting],
    days: int,
    *,
    now: datetime | None = None,
) -> list[CanonicalPosting]:
    cutoff = (now or _utc_now()) - timedelta(days=days)
    recent: list[CanonicalPosting] = []
    for job in jobs:
        posted = job.posted_date
        if posted is None:
            continue
        if posted.tzinfo is None:
            posted = posted.replace(tzinfo=timezone.utc)
        if posted >= cutoff:
            recent.append(job)
    return recent


class JobAggregator:
    """Runs the enabled adapters one after another and feeds the survivors to persistence."""

    def __init__(
        self,
        sources: Mapping[str, JobSource],
        persistence: JobPersistence,
        *,
        default_location: str,
        delay_seconds: float = 2.0,
        recent_days: int = 7,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.sources = dict(sources)
        self.persistence = persistence
        self.default_location = default_location
        self.delay_seconds = delay_seconds
        self.recent_days = recent_days
        self._sleep = sleep
        self._clock = clock

    async def aggregate_all(self, options: AggregateOptions | None = None) -> AggregationResult:
        options = options or AggregateOptions()
        location = options.location or self.default_location
        requested = list(dict.fromkeys(options.sources))
        result = AggregationResult()

        with tracer.start_as_current_span("aggregator.run") as span:
            span.set_attribute("aggregator.sources", ",".join(requested))
            logger.info(
                "aggregation started location=%s sources=%s limit_per_source=%s",
                location,
                ",".join(requested),
                options.limit_per_source,
            )

            for index, name in enumerate(requested):
                source = self.sources.get(name)
                if source is None:
                    result.errors.append({"source": name, "error": f"unknown source {name}"})
                    continue

                with tracer.start_as_current_span("aggregator.source") as source_span:
                    source_span.set_attribute("source", name)
                    try:
                        raw_items = await source.fetch(SearchParams(location=location, limit=options.limit_per_source))
                    except Exception as exc:
                        logger.warning("source failed source=%s error=%s", name, exc)
                        source_span.record_exception(exc)
                        result.errors.append({"source": name, "error": str(exc)})
                    else:
                        postings = self.normalize_items(source, raw_items)
                        result.jobs.extend(postings)
                        result.by_source[name] = len(postings)
                        logger.info("source fetched source=%s items=%s normalized=%s", name, len(raw_items), len(postings))

                if index < len(requested) - 1 and self.delay_seconds > 0:
                    await self._sleep(self.delay_seconds)

            span.set_attribute("aggregator.total", result.total)
            span.set_attribute("aggregator.errors", len(result.errors))

        logger.info(
            "aggregation finished total=%s by_source=%s errors=%s",
            result.total,
            result.by_source,
            len(result.errors),
        )
        return result

    @staticmethod
    def normalize_items(source: JobSource, raw_items: Iterable[dict[str, Any]]) -> list[CanonicalPosting]:
        postings: list[CanonicalPosting] = []
        for raw in raw_items:
            try:
                postings.append(source.normalize(raw))
            except Exception:
                logger.exception("failed to normalize item source=%s", source.name)
        return postings

    async def fetch_and_save_all(self, options: AggregateOptions | None = None) -> FetchOutcome:
        aggregation = await self.aggregate_all(options)
        if not aggregation.jobs:
            return FetchOutcome(success=False, message="No jobs fetched", aggregation=aggregation)

        regional = filter_in_region(aggregation.jobs)
        if not regional:
            return FetchOutcome(success=False, message="No Karnataka jobs found", aggregation=aggregation)

        recent = filter_recent(regional, self.recent_days, now=self._clock())
        logger.info("recency filter kept=%s of regional=%s total=%s", len(recent), len(regional), aggregation.total)
        if not recent:
            return FetchOutcome(success=False, message="No recent Karnataka jobs found", aggregation=aggregation)

        try:
            database = await self.persistence.save_batch(recent)
        except RepositoryUnavailableError as exc:
            logger.error("aggregation aborted: persistence unavailable: %s", exc)
            return FetchOutcome(success=False, message=str(exc), aggregation=aggregation)

        return FetchOutcome(
            success=True,
            message=f"Successfully processed {aggregation.total} jobs",
            aggregation=aggregation,
            database=database,
        )

    async def import_source(
        self,
        name: str,
        *,
        run_id: str | None = None,
        limit: int = 1000,
        region_only: bool = True,
    ) -> ImportOutcome:
        """Pull one provider's items (typically a finished Apify run) straight into persistence.

        Source errors propagate to the caller. No recency filter is applied, since
        imported datasets are usually backfills.
        """
        source = self.sources.get(name)
        if source is None:
            raise KeyError(name)

        params = SearchParams(location=self.default_location, limit=limit, run_id=run_id)
        with tracer.start_as_current_span("aggregator.source") as span:
            span.set_attribute("source", name)
            raw_items = await source.fetch(params)
        return await self.import_items(
            name,
            raw_items,
            run_id=run_id or getattr(source, "run_id", None) or "",
            region_only=region_only,
        )

    async def import_items(
        self,
        name: str,
        raw_items: list[dict[str, Any]],
        *,
        run_id: str,
        region_only: bool = True,
    ) -> ImportOutcome:
        source = self.sources.get(name)
        if source is None:
            raise KeyError(name)

        postings = self.normalize_items(source, raw_items)
        kept = filter_in_region(postings) if region_only else postings
        database = await self.persistence.save_batch(kept)
        logger.info(
            "import finished source=%s run_id=%s fetched=%s normalized=%s kept=%s",
            name,
            run_id,
            len(raw_items),
            len(postings),
            len(kept),
        )
        return ImportOutcome(
            source=name,
            run_id=run_id,
            fetched=len(raw_items),
            normalized=len(postings),
            kept=len(kept),
            database=database,
        )

