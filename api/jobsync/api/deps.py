"""Process-wide service wiring for the HTTP layer.

Each factory is cached so routes, the lifespan hook and background tasks share one
aggregator and one scheduler. Tests replace them through `app.dependency_overrides`.
"""

from functools import lru_cache

from jobsync.core.config import get_settings
from jobsync.services.aggregator import AggregateOptions, FetchOutcome, JobAggregator
from jobsync.services.enricher import DetailEnricher
from jobsync.services.persistence import JobPersistence
from jobsync.services.repository import get_repository
from jobsync.services.scheduler import AggregationScheduler
from jobsync.sources.apify_trigger import ApifyActorTrigger
from jobsync.sources.registry import DEFAULT_FETCH_SOURCES, build_sources


@lru_cache
def get_aggregator() -> JobAggregator:
    settings = get_settings()
    return JobAggregator(
        build_sources(settings),
        JobPersistence(get_repository()),
        default_location=settings.default_search_location,
        delay_seconds=settings.inter_source_delay_seconds,
        recent_days=settings.recent_days,
    )


async def run_scheduled_aggregation() -> FetchOutcome:
    settings = get_settings()
    return await get_aggregator().fetch_and_save_all(
        AggregateOptions(
            location=settings.default_search_location,
            limit_per_source=settings.max_jobs_per_scrape,
            sources=DEFAULT_FETCH_SOURCES,
        )
    )


@lru_cache
def get_scheduler() -> AggregationScheduler:
    settings = get_settings()
    return AggregationScheduler(
        run_scheduled_aggregation,
        interval_hours=settings.scraping_interval_hours,
        enabled=settings.scraping_enabled,
    )


def get_enricher() -> DetailEnricher:
    return DetailEnricher(get_repository(), timeout_seconds=get_settings().http_timeout_seconds)


def get_actor_trigger() -> ApifyActorTrigger:
    settings = get_settings()
    return ApifyActorTrigger(
        api_token=settings.apify_api_token,
        poll_interval_seconds=settings.apify_poll_interval_seconds,
        timeout_seconds=settings.apify_run_timeout_seconds,
    )


def clear_caches() -> None:
    get_aggregator.cache_clear()
    get_scheduler.cache_clear()
